"""
Unit tests for secret redaction.
"""

import logging

from plexshare.platform.secrets import (
    REDACTED_VALUE,
    Secret,
    SecretRedactingFilter,
    is_secret_key,
    redact_secrets,
    redact_value,
)


class TestRedaction:
    """Tests for redact_secrets and friends."""

    def test_secret_keys_detected(self):
        assert is_secret_key("plex_token")
        assert is_secret_key("X-Plex-Token")
        assert is_secret_key("webhook_secret")
        assert not is_secret_key("email")

    def test_redact_nested_dict(self):
        data = {"email": "a@b.c", "nested": {"access_token": "abc"}, "items": [{"api_key": "k"}]}
        redacted = redact_secrets(data)

        assert redacted["email"] == "a@b.c"
        assert redacted["nested"]["access_token"] == REDACTED_VALUE
        assert redacted["items"][0]["api_key"] == REDACTED_VALUE

    def test_stripe_key_values_redacted(self):
        assert redact_value("key is sk_test_abcdefghijkl") == f"key is {REDACTED_VALUE}"
        assert redact_value("whsec_abcdefghijklmnop") == REDACTED_VALUE

    def test_secret_wrapper_masks(self):
        secret = Secret("value")
        assert str(secret) == "*****"
        assert "value" not in repr(secret)
        assert secret.value() == "value"
        assert redact_secrets(secret) == "*****"

    def test_empty_secret_is_falsy(self):
        assert not Secret("")
        assert str(Secret("")) == ""


class TestSecretRedactingFilter:
    """Tests for the logging filter."""

    def test_filter_redacts_message_and_extra(self):
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname=__file__, lineno=1,
            msg="using sk_live_abcdefghijklmnop", args=(), exc_info=None,
        )
        record.plex_token = "abc"

        assert SecretRedactingFilter().filter(record) is True
        assert "sk_live_" not in record.msg
        assert record.plex_token == REDACTED_VALUE
