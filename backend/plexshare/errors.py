"""
Domain errors for access provisioning.

Every failure the provisioning core can surface is a subclass of
ProvisioningError. Routers map these onto HTTP responses; the core
itself never builds HTTP errors.
"""

from typing import Any, Dict, Optional


class ProvisioningError(Exception):
    """Base class for all provisioning errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            **self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r})"


class ValidationError(ProvisioningError):
    """Malformed webhook payload or missing required request field."""


class IdentityResolutionError(ProvisioningError):
    """The target Plex email or user id could not be derived from a billing event."""

    def __init__(
        self,
        message: str,
        customer_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ):
        super().__init__(message, {"customer_id": customer_id, "event_id": event_id})
        self.customer_id = customer_id
        self.event_id = event_id


class InviteCodeNotFoundError(ProvisioningError):
    """No invite code exists for the given code or id."""


class InvalidOrExpiredCodeError(ProvisioningError):
    """The invite code exists but is disabled, expired or exhausted."""


class ProviderError(ProvisioningError):
    """Failure talking to the media provider."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class StorageError(ProvisioningError):
    """Access Directory read or write failed."""


class BillingProviderError(ProvisioningError):
    """Failure talking to the billing provider."""
