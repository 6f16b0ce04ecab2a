"""
Stripe integration for entitlement webhooks.

Verifies webhook signatures and looks up customers through the
official stripe SDK.
"""

from plexshare.integrations.stripe.billing_client import (
    BillingCustomer,
    StripeBillingClient,
    WebhookSignatureError,
    get_stripe_billing_client,
    verify_webhook_signature,
)

__all__ = [
    # Client
    "StripeBillingClient",
    "get_stripe_billing_client",
    "verify_webhook_signature",
    # Exceptions
    "WebhookSignatureError",
    # Models
    "BillingCustomer",
]
