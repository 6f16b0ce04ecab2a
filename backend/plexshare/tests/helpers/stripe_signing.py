"""
Stripe webhook signing for tests.

Builds Stripe-Signature headers the same way Stripe does:
    t=<unix timestamp>,v1=<hex HMAC-SHA256(secret, "<t>.<payload>")>
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional, Tuple


def compute_stripe_signature(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Return a Stripe-Signature header value for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.{payload}"
    digest = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def signed_event(event: Dict[str, Any], secret: str) -> Tuple[bytes, str]:
    """Serialize an event and sign it. Returns (body, header)."""
    payload = json.dumps(event)
    return payload.encode("utf-8"), compute_stripe_signature(payload, secret)


def entitlement_event(
    current=(),
    previous=None,
    customer: str = "cus_123",
    event_id: str = "evt_123",
) -> Dict[str, Any]:
    """
    Build an entitlements.active_entitlement_summary.updated event.

    Args:
        current: Lookup keys currently active
        previous: Lookup keys before the change; None omits previous_attributes
    """
    data: Dict[str, Any] = {
        "object": {
            "object": "entitlements.active_entitlement_summary",
            "customer": customer,
            "livemode": False,
            "entitlements": {
                "object": "list",
                "data": [
                    {"id": f"ent_{key}", "object": "entitlements.active_entitlement", "lookup_key": key}
                    for key in current
                ],
            },
        }
    }
    if previous is not None:
        data["previous_attributes"] = {
            "entitlements": {
                "data": [
                    {"id": f"ent_{key}", "object": "entitlements.active_entitlement", "lookup_key": key}
                    for key in previous
                ],
            }
        }
    return {
        "id": event_id,
        "object": "event",
        "type": "entitlements.active_entitlement_summary.updated",
        "data": data,
    }
