"""
Stripe webhook endpoint for entitlement changes.

SECURITY: Every request is verified against the configured signing
secret before the body is parsed. Unverifiable requests get 400 and
cause no side effects.

Status codes are chosen for Stripe's retry behaviour: anything we
intentionally skip is acknowledged with 200, anything that should be
retried returns 5xx.

Documentation: https://docs.stripe.com/webhooks
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from plexshare.config.settings import Settings, get_settings
from plexshare.errors import (
    BillingProviderError,
    IdentityResolutionError,
    ProviderError,
    StorageError,
    ValidationError,
)
from plexshare.integrations.stripe import WebhookSignatureError, verify_webhook_signature
from plexshare.api.dependencies import get_webhook_handler
from plexshare.services.billing_webhook_handler import BillingWebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["webhooks"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    settings: Settings = Depends(get_settings),
    handler: BillingWebhookHandler = Depends(get_webhook_handler),
):
    """
    Handle entitlements.active_entitlement_summary.updated events.

    Returns:
        {"status": "success" | "ignored" | "noop" | "revoke_failed", ...}
    """
    if not stripe_signature:
        logger.warning("Missing Stripe-Signature header in webhook")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header"
        )

    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook secret not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured"
        )

    payload = await request.body()

    try:
        event = verify_webhook_signature(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret.value(),
        )
    except WebhookSignatureError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )

    event_id = event.get("id")

    try:
        result = await handler.process(event)
    except ValidationError as e:
        logger.warning(
            "Malformed Stripe webhook payload",
            extra={"event_id": event_id, "error": e.message},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload"
        )
    except IdentityResolutionError as e:
        logger.error(
            "Could not resolve Plex identity for Stripe customer",
            extra={"event_id": event_id, "customer_id": e.customer_id, "error": e.message},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not resolve Plex identity"
        )
    except BillingProviderError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Billing provider unavailable"
        )
    except ProviderError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update Plex access"
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage failure"
        )

    return result.to_dict()
