"""Caller identity resolved from the signed session cookie."""

from plexshare.auth.identity import (
    CallerIdentity,
    get_optional_caller,
    require_caller,
    require_admin,
)

__all__ = [
    "CallerIdentity",
    "get_optional_caller",
    "require_caller",
    "require_admin",
]
