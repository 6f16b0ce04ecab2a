"""
Stripe client for entitlement webhooks and customer lookups.

Wraps the official stripe SDK:
- Webhook signature verification (Stripe-Signature header)
- Customer retrieval for resolving the Plex identity behind an event

Documentation: https://docs.stripe.com/webhooks/signature

SECURITY:
- The API key and webhook secret are never logged
- Payloads are only parsed after their signature has been verified
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from plexshare.config.settings import Settings
from plexshare.errors import BillingProviderError, ValidationError

logger = logging.getLogger(__name__)

# Stripe's recommended replay window for webhook timestamps
DEFAULT_SIGNATURE_TOLERANCE_SECONDS = 300


class WebhookSignatureError(ValidationError):
    """Stripe-Signature header missing or not matching the payload."""


@dataclass
class BillingCustomer:
    """The subset of a Stripe customer needed to resolve a Plex identity."""
    id: str
    email: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BillingCustomer":
        metadata = data.get("metadata") or {}
        return cls(
            id=data.get("id", ""),
            email=data.get("email") or None,
            metadata={str(k): str(v) for k, v in metadata.items() if v is not None},
        )


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = DEFAULT_SIGNATURE_TOLERANCE_SECONDS,
) -> Dict[str, Any]:
    """
    Verify a Stripe webhook and return the parsed event.

    Args:
        payload: Raw request body
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_...)
        tolerance: Maximum age of the signed timestamp in seconds

    Returns:
        The event as a plain dictionary

    Raises:
        WebhookSignatureError: If the header is missing or does not verify
        ValidationError: If the verified body is not a JSON object
    """
    if not signature_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("Webhook body is not valid UTF-8")

    try:
        stripe.WebhookSignature.verify_header(body, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe webhook signature verification failed", extra={"error": str(e)})
        raise WebhookSignatureError("Invalid webhook signature")

    try:
        event = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON payload: {e}")

    if not isinstance(event, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    return event


class StripeBillingClient:
    """Async wrapper over stripe.StripeClient, using httpx with a bounded timeout."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        stripe_client: Optional[stripe.StripeClient] = None,
    ):
        """
        Initialize Stripe client.

        Args:
            api_key: Stripe secret key
            timeout: Request timeout in seconds
            stripe_client: Preconfigured SDK client (tests)
        """
        if stripe_client is None:
            if not api_key:
                raise ValueError("Stripe secret key is required. Set PLEXSHARE_STRIPE_SECRET_KEY.")
            stripe_client = stripe.StripeClient(
                api_key,
                http_client=stripe.HTTPXClient(timeout=timeout),
                max_network_retries=0,
            )
        self._client = stripe_client

    async def get_customer(self, customer_id: str) -> BillingCustomer:
        """
        Fetch a customer by id.

        Raises:
            BillingProviderError: On any Stripe API or network error
        """
        try:
            customer = await self._client.customers.retrieve_async(customer_id)
        except stripe.StripeError as e:
            logger.error(
                "Failed to retrieve Stripe customer",
                extra={
                    "customer_id": customer_id,
                    "http_status": getattr(e, "http_status", None),
                    "error": str(e),
                },
            )
            raise BillingProviderError(f"Failed to retrieve customer {customer_id}")

        return BillingCustomer.from_dict(customer.to_dict())


def get_stripe_billing_client(settings: Settings) -> StripeBillingClient:
    """Factory function to create a StripeBillingClient from settings."""
    return StripeBillingClient(
        api_key=settings.stripe_secret_key.value(),
        timeout=settings.stripe_timeout_seconds,
    )
