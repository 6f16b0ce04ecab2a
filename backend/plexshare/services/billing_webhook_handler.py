"""
Stripe entitlement webhook handler.

Processes verified Stripe events:
- Non-entitlement event types are acknowledged and ignored
- Entitlement summaries are classified before any API call
- The customer is fetched only when the event needs action
- Grant failures propagate so Stripe retries the delivery
- Revoke failures at Plex are logged and acknowledged; the loss of
  entitlement is recorded at Stripe, not locally
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from plexshare.errors import ProviderError
from plexshare.integrations.stripe import StripeBillingClient
from plexshare.services.access_requests import AccessAction, ProvisioningResult
from plexshare.services.entitlement_interpreter import (
    EntitlementInterpreter,
    NoOp,
    is_entitlement_event,
)
from plexshare.services.provisioning_orchestrator import ProvisioningOrchestrator

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_IGNORED = "ignored"
STATUS_NOOP = "noop"
STATUS_REVOKE_FAILED = "revoke_failed"


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    status: str
    message: str
    event_id: Optional[str] = None
    customer_id: Optional[str] = None
    provisioning: Optional[ProvisioningResult] = None

    def to_dict(self) -> dict:
        body = {"status": self.status, "message": self.message}
        if self.event_id:
            body["event_id"] = self.event_id
        if self.provisioning is not None:
            body["result"] = self.provisioning.to_dict()
        return body


class BillingWebhookHandler:
    """Runs a verified Stripe event through interpretation and provisioning."""

    def __init__(
        self,
        interpreter: EntitlementInterpreter,
        billing_client: StripeBillingClient,
        orchestrator: ProvisioningOrchestrator,
    ):
        self.interpreter = interpreter
        self.billing_client = billing_client
        self.orchestrator = orchestrator

    async def process(self, event: Dict[str, Any]) -> WebhookProcessingResult:
        """
        Process one verified event.

        Raises:
            ValidationError: If the event payload is malformed
            IdentityResolutionError: If no Plex identity can be derived
            BillingProviderError: If the customer cannot be fetched
            ProviderError: If a grant fails at Plex
            StorageError: If the Access Directory fails
        """
        event_id = event.get("id")
        event_type = event.get("type")

        if not is_entitlement_event(event):
            logger.info(
                "Ignoring non-entitlements webhook event",
                extra={"event_id": event_id, "event_type": event_type},
            )
            return WebhookProcessingResult(
                status=STATUS_IGNORED,
                message=f"Event type {event_type} ignored",
                event_id=event_id,
            )

        outcome = self.interpreter.classify(event)
        if isinstance(outcome, NoOp):
            logger.info(
                "Entitlement event requires no action",
                extra={
                    "event_id": event_id,
                    "customer_id": outcome.customer_id,
                    "reason": outcome.reason,
                },
            )
            return WebhookProcessingResult(
                status=STATUS_NOOP,
                message=outcome.reason,
                event_id=event_id,
                customer_id=outcome.customer_id,
            )

        customer = await self.billing_client.get_customer(outcome.customer_id)
        request = self.interpreter.resolve(outcome, customer)

        try:
            result = await self.orchestrator.apply(request)
        except ProviderError as e:
            if request.action != AccessAction.REVOKE:
                logger.error(
                    "Failed to grant Plex access for entitlement",
                    extra={
                        "event_id": event_id,
                        "customer_id": customer.id,
                        "status_code": e.status_code,
                        "error": e.message,
                    },
                )
                raise
            logger.error(
                "Failed to revoke Plex access for entitlement",
                extra={
                    "event_id": event_id,
                    "customer_id": customer.id,
                    "plex_user_id": request.subject_user_id,
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
            return WebhookProcessingResult(
                status=STATUS_REVOKE_FAILED,
                message="Revocation failed at Plex",
                event_id=event_id,
                customer_id=customer.id,
            )

        logger.info(
            "Entitlement webhook processed",
            extra={
                "event_id": event_id,
                "customer_id": customer.id,
                "action": result.action.value,
                "performed": result.performed,
                "invite_accepted": result.invite_accepted,
            },
        )
        return WebhookProcessingResult(
            status=STATUS_SUCCESS,
            message=f"{result.action.value} applied",
            event_id=event_id,
            customer_id=customer.id,
            provisioning=result,
        )
