"""
Plex-specific exceptions for error handling.

All of them are ProviderError subclasses so the provisioning core can
handle any media-provider failure in one place.
"""

from typing import Optional, Any

from plexshare.errors import ProviderError


class PlexError(ProviderError):
    """Base exception for Plex API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message, status_code=status_code, response=response)


class PlexAuthenticationError(PlexError):
    """Raised when the Plex token is rejected (401)."""

    def __init__(
        self,
        message: str = "Invalid Plex token",
        **kwargs,
    ):
        super().__init__(message, status_code=401, **kwargs)


class PlexBadRequestError(PlexError):
    """Raised on 400; message is the first provider-supplied error when present."""

    def __init__(
        self,
        message: str = "Bad request",
        **kwargs,
    ):
        super().__init__(message, status_code=400, **kwargs)


class PlexUnexpectedStatusError(PlexError):
    """Raised for any status the endpoint does not document as success."""

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message or f"Unexpected status code: {status_code}",
            status_code=status_code,
            **kwargs,
        )


class PlexConnectionError(PlexError):
    """Raised when network/connection errors occur."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach Plex",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class PlexTimeoutError(PlexError):
    """Raised when request times out."""

    def __init__(
        self,
        message: str = "Request timed out",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class PlexResponseError(PlexError):
    """Raised when a successful response body cannot be parsed."""
