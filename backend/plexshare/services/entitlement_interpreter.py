"""
Interpret Stripe entitlement events as access changes.

Only entitlements.active_entitlement_summary.updated carries meaning
here. The decision rule, in order:

1. Current entitlements non-empty: grant if one of them has the
   configured lookup key, otherwise no-op.
2. Current empty and previous non-empty: revoke.
3. Anything else: no-op.

Addition is checked before removal, so losing one of several
entitlements is a no-op; only losing all of them revokes.

This module performs no I/O. The caller fetches the billing customer
between classify() and resolve().
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from plexshare.errors import IdentityResolutionError, ValidationError
from plexshare.integrations.stripe import BillingCustomer
from plexshare.services.access_requests import (
    AccessAction,
    AccessChangeRequest,
    EntitlementSource,
)

logger = logging.getLogger(__name__)

ENTITLEMENT_SUMMARY_UPDATED = "entitlements.active_entitlement_summary.updated"

PLEX_EMAIL_METADATA_KEY = "plex_email"
PLEX_USER_ID_METADATA_KEY = "plex_user_id"


@dataclass(frozen=True)
class EntitlementChange:
    """An entitlement event that requires action for one customer."""
    action: AccessAction
    customer_id: str
    event_id: Optional[str] = None
    lookup_key: Optional[str] = None


@dataclass(frozen=True)
class NoOp:
    """An entitlement event that requires no action."""
    reason: str
    customer_id: Optional[str] = None
    event_id: Optional[str] = None


def is_entitlement_event(event: Dict[str, Any]) -> bool:
    return event.get("type") == ENTITLEMENT_SUMMARY_UPDATED


def _entitlement_list(container: Any, where: str) -> List[Dict[str, Any]]:
    """Read container["entitlements"]["data"], tolerating its absence."""
    if container is None:
        return []
    if not isinstance(container, dict):
        raise ValidationError(f"{where} must be an object")
    entitlements = container.get("entitlements")
    if entitlements is None:
        return []
    if not isinstance(entitlements, dict):
        raise ValidationError(f"{where}.entitlements must be an object")
    data = entitlements.get("data") or []
    if not isinstance(data, list):
        raise ValidationError(f"{where}.entitlements.data must be a list")
    return [item for item in data if isinstance(item, dict)]


class EntitlementInterpreter:
    """Turns entitlement summary events into access change requests."""

    def __init__(self, entitlement_name: str):
        if not entitlement_name:
            raise ValueError("entitlement_name is required")
        self.entitlement_name = entitlement_name

    def classify(self, event: Dict[str, Any]) -> Union[EntitlementChange, NoOp]:
        """
        Decide whether an event grants, revokes or does nothing.

        Args:
            event: Verified Stripe event as a dictionary

        Returns:
            EntitlementChange for grant/revoke, NoOp otherwise

        Raises:
            ValidationError: If the event is not a well-formed summary update
        """
        event_id = event.get("id")
        if not is_entitlement_event(event):
            return NoOp(reason=f"ignored event type {event.get('type')!r}", event_id=event_id)

        data = event.get("data")
        if not isinstance(data, dict):
            raise ValidationError("Event is missing data")
        summary = data.get("object")
        if not isinstance(summary, dict):
            raise ValidationError("Event is missing data.object")

        customer_id = summary.get("customer")
        if not customer_id or not isinstance(customer_id, str):
            raise ValidationError("Entitlement summary is missing customer")

        current = _entitlement_list(summary, "data.object")
        previous = _entitlement_list(data.get("previous_attributes"), "data.previous_attributes")

        logger.info(
            "Classifying entitlement summary",
            extra={
                "event_id": event_id,
                "customer_id": customer_id,
                "current_count": len(current),
                "previous_count": len(previous),
            },
        )

        if current:
            for entitlement in current:
                if entitlement.get("lookup_key") == self.entitlement_name:
                    return EntitlementChange(
                        action=AccessAction.GRANT,
                        customer_id=customer_id,
                        event_id=event_id,
                        lookup_key=self.entitlement_name,
                    )
            return NoOp(
                reason="no matching entitlement",
                customer_id=customer_id,
                event_id=event_id,
            )

        if previous:
            return EntitlementChange(
                action=AccessAction.REVOKE,
                customer_id=customer_id,
                event_id=event_id,
            )

        return NoOp(
            reason="entitlements unchanged",
            customer_id=customer_id,
            event_id=event_id,
        )

    def resolve(
        self,
        change: EntitlementChange,
        customer: BillingCustomer,
    ) -> AccessChangeRequest:
        """
        Address a change to a Plex identity.

        Grants go to metadata plex_email, falling back to the customer's
        email. Revokes need metadata plex_user_id.

        Raises:
            IdentityResolutionError: If the required identity is missing
        """
        correlation_id = change.event_id or None

        if change.action == AccessAction.GRANT:
            email = customer.metadata.get(PLEX_EMAIL_METADATA_KEY) or customer.email
            if not email:
                raise IdentityResolutionError(
                    f"No Plex email found for customer {customer.id}",
                    customer_id=customer.id,
                    event_id=change.event_id,
                )
            if not customer.metadata.get(PLEX_EMAIL_METADATA_KEY):
                logger.info(
                    "Using customer email instead of metadata",
                    extra={"customer_id": customer.id, "event_id": change.event_id},
                )
            return AccessChangeRequest.grant(
                email=email,
                source=EntitlementSource.BILLING_ENTITLEMENT,
                user_id=self._optional_user_id(customer),
                correlation_id=correlation_id,
            )

        raw_user_id = customer.metadata.get(PLEX_USER_ID_METADATA_KEY)
        if not raw_user_id:
            raise IdentityResolutionError(
                f"No Plex user id found for customer {customer.id}",
                customer_id=customer.id,
                event_id=change.event_id,
            )
        try:
            user_id = int(raw_user_id)
        except ValueError:
            raise IdentityResolutionError(
                f"Invalid Plex user id {raw_user_id!r} for customer {customer.id}",
                customer_id=customer.id,
                event_id=change.event_id,
            )
        return AccessChangeRequest.revoke(
            user_id=user_id,
            source=EntitlementSource.BILLING_ENTITLEMENT,
            correlation_id=correlation_id,
        )

    @staticmethod
    def _optional_user_id(customer: BillingCustomer) -> Optional[int]:
        raw_user_id = customer.metadata.get(PLEX_USER_ID_METADATA_KEY)
        if not raw_user_id:
            return None
        try:
            return int(raw_user_id)
        except ValueError:
            return None

    def interpret(
        self,
        event: Dict[str, Any],
        customer: BillingCustomer,
    ) -> Union[AccessChangeRequest, NoOp]:
        """classify() followed by resolve() when the event needs action."""
        outcome = self.classify(event)
        if isinstance(outcome, NoOp):
            return outcome
        return self.resolve(outcome, customer)
