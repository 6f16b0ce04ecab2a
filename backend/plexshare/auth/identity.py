"""
Caller identity for request handlers.

The login callback stores the Plex account in the signed session cookie
(starlette SessionMiddleware) under "user_info". Handlers never read the
session directly; they depend on one of:

- get_optional_caller: CallerIdentity or None for anonymous requests
- require_caller: 401 when anonymous
- require_admin: 403 unless the caller is the configured server owner

is_admin is always recomputed from Settings, never taken from the cookie.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status

from plexshare.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_info"


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated Plex account making the request."""
    id: int
    uuid: str = ""
    username: str = ""
    email: Optional[str] = None
    is_admin: bool = False

    @classmethod
    def from_session(cls, data: Dict[str, Any], settings: Settings) -> Optional["CallerIdentity"]:
        try:
            user_id = int(data["id"])
        except (KeyError, TypeError, ValueError):
            return None
        return cls(
            id=user_id,
            uuid=str(data.get("uuid") or ""),
            username=str(data.get("username") or ""),
            email=data.get("email") or None,
            is_admin=settings.is_admin(user_id),
        )

    def to_session(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "username": self.username,
            "email": self.email,
        }


def get_optional_caller(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[CallerIdentity]:
    """The caller's identity, or None when the session carries none."""
    data = request.session.get(SESSION_USER_KEY)
    if not isinstance(data, dict):
        return None
    caller = CallerIdentity.from_session(data, settings)
    if caller is None:
        logger.warning("Discarding malformed session identity")
    return caller


def require_caller(
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
) -> CallerIdentity:
    """
    Require an authenticated caller.

    Raises:
        HTTPException: 401 if anonymous
    """
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return caller


def require_admin(
    caller: CallerIdentity = Depends(require_caller),
) -> CallerIdentity:
    """
    Require the configured server owner.

    Raises:
        HTTPException: 403 for any other caller
    """
    if not caller.is_admin:
        logger.warning("Admin access denied", extra={"user_id": caller.id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return caller
