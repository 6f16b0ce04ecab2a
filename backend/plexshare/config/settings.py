"""
Application settings.

All configuration is read once from the environment into an immutable
Settings value which is passed explicitly to each component. Nothing in
the provisioning core reads os.environ directly, so tests can build a
Settings per case without touching process state.

Environment variables use the PLEXSHARE_ prefix, e.g.:
    PLEXSHARE_STRIPE_WEBHOOK_SECRET=whsec_...
    PLEXSHARE_PLEX_SHARED_LIBRARIES=Movies,TV Shows
    PLEXSHARE_PLEX_ADMIN_USER_ID=1234567

Usage:
    from plexshare.config.settings import get_settings

    @router.get("/items")
    async def get_items(settings: Settings = Depends(get_settings)):
        ...
"""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from plexshare.platform.secrets import Secret

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLEXSHARE_"

DEFAULT_ENTITLEMENT_NAME = "plex"
DEFAULT_DATABASE_URL = "sqlite:///./plexshare.db"
DEFAULT_PLEX_TIMEOUT_SECONDS = 10.0
DEFAULT_STRIPE_TIMEOUT_SECONDS = 10.0


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma separated value, dropping blanks."""
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_int(raw: Optional[str], name: str) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def _parse_float(raw: Optional[str], name: str, default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")


def _parse_bool(raw: Optional[str], name: str, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be true or false, got {raw!r}")


def normalize_database_url(url: str) -> str:
    """SQLAlchemy requires postgresql:// rather than the postgres:// alias."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


@dataclass(frozen=True)
class Settings:
    """Immutable application configuration."""

    database_url: str = DEFAULT_DATABASE_URL

    # Stripe
    stripe_secret_key: Secret = field(default_factory=Secret)
    stripe_webhook_secret: Secret = field(default_factory=Secret)
    stripe_entitlement_name: str = DEFAULT_ENTITLEMENT_NAME
    stripe_timeout_seconds: float = DEFAULT_STRIPE_TIMEOUT_SECONDS

    # Plex
    plex_token: Secret = field(default_factory=Secret)
    plex_client_id: str = ""
    plex_machine_identifier: str = ""
    plex_admin_user_id: Optional[int] = None
    plex_shared_libraries: Tuple[str, ...] = ()
    plex_timeout_seconds: float = DEFAULT_PLEX_TIMEOUT_SECONDS

    # Invite codes
    invite_default_entitlement: str = DEFAULT_ENTITLEMENT_NAME

    # HTTP layer
    session_secret: Secret = field(default_factory=lambda: Secret("changeme"))
    session_cookie_name: str = "plexshare_session"
    session_https_only: bool = False
    cors_origins: Tuple[str, ...] = ("http://localhost:3000",)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return env.get(f"{ENV_PREFIX}{name}", default)

        database_url = get("DATABASE_URL") or env.get("DATABASE_URL") or DEFAULT_DATABASE_URL

        return cls(
            database_url=normalize_database_url(database_url),
            stripe_secret_key=Secret(get("STRIPE_SECRET_KEY", "")),
            stripe_webhook_secret=Secret(get("STRIPE_WEBHOOK_SECRET", "")),
            stripe_entitlement_name=get("STRIPE_ENTITLEMENT_NAME") or DEFAULT_ENTITLEMENT_NAME,
            stripe_timeout_seconds=_parse_float(
                get("STRIPE_TIMEOUT_SECONDS"), "STRIPE_TIMEOUT_SECONDS", DEFAULT_STRIPE_TIMEOUT_SECONDS
            ),
            plex_token=Secret(get("PLEX_TOKEN", "")),
            plex_client_id=get("PLEX_CLIENT_ID", "") or "",
            plex_machine_identifier=get("PLEX_MACHINE_IDENTIFIER", "") or "",
            plex_admin_user_id=_parse_int(get("PLEX_ADMIN_USER_ID"), "PLEX_ADMIN_USER_ID"),
            plex_shared_libraries=_split_csv(get("PLEX_SHARED_LIBRARIES")),
            plex_timeout_seconds=_parse_float(
                get("PLEX_TIMEOUT_SECONDS"), "PLEX_TIMEOUT_SECONDS", DEFAULT_PLEX_TIMEOUT_SECONDS
            ),
            invite_default_entitlement=get("INVITE_DEFAULT_ENTITLEMENT") or DEFAULT_ENTITLEMENT_NAME,
            session_secret=Secret(get("SESSION_SECRET") or "changeme"),
            session_cookie_name=get("SESSION_COOKIE_NAME") or "plexshare_session",
            session_https_only=_parse_bool(get("SESSION_HTTPS_ONLY"), "SESSION_HTTPS_ONLY", False),
            cors_origins=_split_csv(get("CORS_ORIGINS")) or ("http://localhost:3000",),
        )

    def is_admin(self, user_id: Optional[int]) -> bool:
        """True iff user_id is the configured server owner."""
        return (
            user_id is not None
            and self.plex_admin_user_id is not None
            and int(user_id) == self.plex_admin_user_id
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process settings, read once from the environment.

    FastAPI dependency; tests override it via app.dependency_overrides.
    """
    settings = Settings.from_env()

    missing = [
        name for name, value in (
            ("STRIPE_WEBHOOK_SECRET", settings.stripe_webhook_secret),
            ("PLEX_TOKEN", settings.plex_token),
            ("PLEX_MACHINE_IDENTIFIER", settings.plex_machine_identifier),
            ("PLEX_ADMIN_USER_ID", settings.plex_admin_user_id),
        )
        if not value
    ]
    if missing:
        logger.warning(
            "Settings incomplete; dependent endpoints will fail",
            extra={"missing": [f"{ENV_PREFIX}{name}" for name in missing]},
        )
    if settings.session_secret.value() == "changeme":
        logger.warning("Using default session secret; set PLEXSHARE_SESSION_SECRET in production")

    return settings
