"""
Unit tests for BillingWebhookHandler.

Tests cover:
- Ignored and no-op events never reach Stripe or Plex
- Grant and revoke flow through customer lookup and provisioning
- Grant failures propagate; revoke failures are acknowledged
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from plexshare.errors import BillingProviderError, IdentityResolutionError
from plexshare.integrations.plex import PlexConnectionError
from plexshare.integrations.stripe import BillingCustomer, StripeBillingClient
from plexshare.services.access_requests import AccessAction, ProvisioningResult
from plexshare.services.billing_webhook_handler import (
    STATUS_IGNORED,
    STATUS_NOOP,
    STATUS_REVOKE_FAILED,
    STATUS_SUCCESS,
    BillingWebhookHandler,
)
from plexshare.services.entitlement_interpreter import EntitlementInterpreter
from plexshare.services.provisioning_orchestrator import ProvisioningOrchestrator
from plexshare.tests.helpers.stripe_signing import entitlement_event


@pytest.fixture
def billing_client():
    client = MagicMock(spec=StripeBillingClient)
    client.get_customer = AsyncMock(
        return_value=BillingCustomer(
            id="cus_123",
            email="bob@example.com",
            metadata={"plex_user_id": "200"},
        )
    )
    return client


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock(spec=ProvisioningOrchestrator)

    async def apply(request):
        return ProvisioningResult(
            action=request.action,
            performed=True,
            correlation_id=request.correlation_id,
        )

    orchestrator.apply = AsyncMock(side_effect=apply)
    return orchestrator


@pytest.fixture
def handler(billing_client, orchestrator) -> BillingWebhookHandler:
    return BillingWebhookHandler(EntitlementInterpreter("plex"), billing_client, orchestrator)


class TestSkippedEvents:

    @pytest.mark.asyncio
    async def test_other_event_type_ignored(self, handler, billing_client, orchestrator):
        result = await handler.process({"id": "evt_9", "type": "customer.created", "data": {}})

        assert result.status == STATUS_IGNORED
        assert result.event_id == "evt_9"
        billing_client.get_customer.assert_not_awaited()
        orchestrator.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_noop_skips_customer_lookup(self, handler, billing_client, orchestrator):
        result = await handler.process(entitlement_event(current=["other"]))

        assert result.status == STATUS_NOOP
        assert result.customer_id == "cus_123"
        billing_client.get_customer.assert_not_awaited()
        orchestrator.apply.assert_not_awaited()


class TestProvisioning:

    @pytest.mark.asyncio
    async def test_grant(self, handler, billing_client, orchestrator):
        result = await handler.process(entitlement_event(current=["plex"]))

        billing_client.get_customer.assert_awaited_once_with("cus_123")
        request = orchestrator.apply.await_args.args[0]
        assert request.action == AccessAction.GRANT
        assert request.subject_email == "bob@example.com"
        assert request.correlation_id == "evt_123"

        assert result.status == STATUS_SUCCESS
        body = result.to_dict()
        assert body["event_id"] == "evt_123"
        assert body["result"]["action"] == "grant"

    @pytest.mark.asyncio
    async def test_revoke(self, handler, orchestrator):
        result = await handler.process(entitlement_event(current=[], previous=["plex"]))

        request = orchestrator.apply.await_args.args[0]
        assert request.action == AccessAction.REVOKE
        assert request.subject_user_id == 200
        assert result.status == STATUS_SUCCESS

    @pytest.mark.asyncio
    async def test_grant_failure_propagates(self, handler, orchestrator):
        orchestrator.apply.side_effect = PlexConnectionError()

        with pytest.raises(PlexConnectionError):
            await handler.process(entitlement_event(current=["plex"]))

    @pytest.mark.asyncio
    async def test_revoke_failure_acknowledged(self, handler, orchestrator):
        orchestrator.apply.side_effect = PlexConnectionError()

        result = await handler.process(entitlement_event(current=[], previous=["plex"]))

        assert result.status == STATUS_REVOKE_FAILED
        assert "result" not in result.to_dict()

    @pytest.mark.asyncio
    async def test_identity_error_propagates(self, handler, billing_client, orchestrator):
        billing_client.get_customer.return_value = BillingCustomer(id="cus_123", email="a@example.com")

        with pytest.raises(IdentityResolutionError):
            await handler.process(entitlement_event(current=[], previous=["plex"]))

        orchestrator.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_billing_error_propagates(self, handler, billing_client, orchestrator):
        billing_client.get_customer.side_effect = BillingProviderError("down")

        with pytest.raises(BillingProviderError):
            await handler.process(entitlement_event(current=["plex"]))

        orchestrator.apply.assert_not_awaited()
