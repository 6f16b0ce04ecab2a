"""
Secret handling for configuration values and log output.

SECURITY REQUIREMENTS:
- Plex tokens, Stripe keys and webhook secrets must never reach the logs
- Configuration secrets are wrapped in Secret so that printing a Settings
  object cannot leak them
- Any dictionary key naming a token/secret/key is redacted before logging

Usage:
    from plexshare.platform.secrets import Secret, redact_secrets

    token = Secret(os.getenv("PLEXSHARE_PLEX_TOKEN", ""))
    headers = {"X-Plex-Token": token.value()}

    logger.info("Request data", extra=redact_secrets({"plex_token": "abc", "email": "a@b.c"}))
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# Patterns for detecting secrets in logs
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(secret[_-]?key)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(auth[_-]?token)", re.IGNORECASE),
    re.compile(r"(plex[_-]?token)", re.IGNORECASE),
    re.compile(r"(x-plex-token)", re.IGNORECASE),
    re.compile(r"(invite[_-]?token)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
    re.compile(r"(session[_-]?secret)", re.IGNORECASE),
    re.compile(r"(webhook[_-]?secret)", re.IGNORECASE),
    re.compile(r"(database[_-]?url)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
]

# Common secret value patterns to redact
SECRET_VALUE_PATTERNS = [
    re.compile(r"(sk_(live|test)_[a-zA-Z0-9]{10,})"),  # Stripe secret keys
    re.compile(r"(rk_(live|test)_[a-zA-Z0-9]{10,})"),  # Stripe restricted keys
    re.compile(r"(whsec_[a-zA-Z0-9]{10,})"),  # Stripe webhook secrets
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),  # Bearer tokens
]

REDACTED_VALUE = "[REDACTED]"
MASKED_VALUE = "*****"


class Secret:
    """
    String wrapper that never renders its value.

    str() and repr() return a mask; call value() to get the raw string
    at the point where it is actually sent somewhere.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str = ""):
        self._value = value or ""

    def value(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Secret):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return MASKED_VALUE if self._value else ""

    def __repr__(self) -> str:
        return f"Secret({str(self)!r})"


def is_secret_key(key: str) -> bool:
    """
    Check if a dictionary key likely contains a secret.

    Args:
        key: The key name to check

    Returns:
        True if the key name suggests it contains a secret
    """
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    """
    Redact secret patterns from a value.

    Args:
        value: The value to redact

    Returns:
        Redacted value
    """
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)

    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Use this before logging any data that might contain secrets.

    Args:
        data: Dictionary, list, or other data structure

    Returns:
        Copy of data with secrets redacted
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, Secret):
        return str(data)

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and is_secret_key(key):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_secrets(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts secrets from log records.

    Usage:
        logging.getLogger().addFilter(SecretRedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_secrets(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        # Redact extra fields
        for key in list(record.__dict__.keys()):
            if is_secret_key(key):
                setattr(record, key, REDACTED_VALUE)

        return True
