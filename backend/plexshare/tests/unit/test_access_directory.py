"""
Unit tests for SqlAccessDirectory.

Tests cover:
- Invite code storage, lookup and conditional usage increment
- User upsert, listing, notes and cascading delete
- Redemption upsert uniqueness and joined listing
- Token upsert
- SQLAlchemy failures surfacing as StorageError
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from plexshare.errors import StorageError, ValidationError
from plexshare.models import InviteCode, PlexToken, PlexUser, PlexUserInvite


def make_code(directory, code="ABCD1234", max_uses=None, **kwargs) -> InviteCode:
    return directory.save_invite_code(
        InviteCode(code=code, entitlement_name="plex", max_uses=max_uses, **kwargs)
    )


def make_user(directory, user_id=100, username="alice", email="alice@example.com") -> PlexUser:
    return directory.save_plex_user(
        PlexUser(id=user_id, uuid=f"uuid-{user_id}", username=username, email=email)
    )


class TestInviteCodes:
    """Tests for invite code operations."""

    def test_save_assigns_id_and_defaults(self, directory):
        invite_code = make_code(directory)

        assert invite_code.id is not None
        assert invite_code.used_count == 0
        assert invite_code.is_disabled is False
        assert invite_code.created_at is not None

    def test_duplicate_code_rejected(self, directory):
        """Code strings are unique."""
        make_code(directory, code="SAME")
        with pytest.raises(ValidationError):
            make_code(directory, code="SAME")

    def test_get_by_id_and_code(self, directory):
        invite_code = make_code(directory, code="FINDME")

        assert directory.get_invite_code(invite_code.id).code == "FINDME"
        assert directory.get_invite_code_by_code("FINDME").id == invite_code.id
        assert directory.get_invite_code_by_code("missing") is None
        assert directory.get_invite_code(9999) is None

    def test_increment_respects_max_uses(self, directory):
        """The increment stops at max_uses."""
        invite_code = make_code(directory, max_uses=2)

        assert directory.increment_invite_code_usage(invite_code.id) is True
        assert directory.increment_invite_code_usage(invite_code.id) is True
        assert directory.increment_invite_code_usage(invite_code.id) is False

        assert directory.get_invite_code(invite_code.id).used_count == 2

    def test_increment_unlimited(self, directory):
        invite_code = make_code(directory, max_uses=None)
        for _ in range(5):
            assert directory.increment_invite_code_usage(invite_code.id)
        assert directory.get_invite_code(invite_code.id).used_count == 5

    def test_increment_unknown_code(self, directory):
        assert directory.increment_invite_code_usage(12345) is False

    def test_increment_rejects_disabled_code(self, directory):
        invite_code = make_code(directory, is_disabled=True)

        assert directory.increment_invite_code_usage(invite_code.id) is False
        assert directory.get_invite_code(invite_code.id).used_count == 0

    def test_increment_rejects_expired_code(self, directory):
        invite_code = make_code(
            directory, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
        )

        assert directory.increment_invite_code_usage(invite_code.id) is False
        assert directory.get_invite_code(invite_code.id).used_count == 0

    def test_increment_expiry_is_strict(self, directory):
        """A claim at exactly expires_at or duration is rejected."""
        boundary = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)
        expiring = make_code(directory, code="EXPIRES", expires_at=boundary)
        lapsing = make_code(directory, code="LAPSES", duration=boundary)

        assert directory.increment_invite_code_usage(expiring.id, now=boundary) is False
        assert directory.increment_invite_code_usage(lapsing.id, now=boundary) is False
        assert directory.increment_invite_code_usage(expiring.id, now=boundary - timedelta(seconds=1)) is True
        assert directory.increment_invite_code_usage(lapsing.id, now=boundary - timedelta(seconds=1)) is True

    def test_list_active_excludes_disabled_newest_first(self, directory):
        """Disabled codes are hidden; expired ones are still listed."""
        now = datetime.now(timezone.utc)
        make_code(directory, code="OLDER", created_at=now - timedelta(days=2))
        make_code(
            directory, code="EXPIRED",
            created_at=now - timedelta(days=1),
            expires_at=now - timedelta(hours=1),
        )
        disabled = make_code(directory, code="DISABLED", created_at=now)
        directory.disable_invite_code(disabled.id)

        codes = [c.code for c in directory.list_active_invite_codes()]
        assert codes == ["EXPIRED", "OLDER"]

    def test_disable_is_idempotent(self, directory):
        invite_code = make_code(directory)

        assert directory.disable_invite_code(invite_code.id) is True
        assert directory.disable_invite_code(invite_code.id) is True
        assert directory.get_invite_code(invite_code.id).is_disabled is True

    def test_disable_unknown_code(self, directory):
        assert directory.disable_invite_code(4242) is False


class TestPlexUsers:
    """Tests for user operations."""

    def test_save_and_get(self, directory):
        make_user(directory)

        user = directory.get_plex_user(100)
        assert user.username == "alice"
        assert directory.get_plex_user_by_email("alice@example.com").id == 100
        assert directory.get_plex_user(999) is None

    def test_save_upserts_and_preserves_notes(self, directory):
        """A second save refreshes profile fields but keeps admin notes."""
        make_user(directory)
        directory.update_user_notes(100, "paid in cash")

        user = make_user(directory, username="alice2", email="new@example.com")

        assert user.username == "alice2"
        assert user.email == "new@example.com"
        assert user.notes == "paid in cash"
        assert len(directory.list_plex_users()) == 1

    def test_list_ordered_by_username(self, directory):
        make_user(directory, user_id=1, username="zoe")
        make_user(directory, user_id=2, username="adam")

        assert [u.username for u in directory.list_plex_users()] == ["adam", "zoe"]

    def test_update_notes_unknown_user(self, directory):
        assert directory.update_user_notes(5, "x") is None

    def test_delete_cascades(self, directory, db_session):
        """Deleting a user removes their token and redemptions too."""
        make_user(directory)
        invite_code = make_code(directory)
        directory.associate_user_with_invite_code(100, invite_code.id)
        directory.save_plex_token(100, "user-token")

        assert directory.delete_plex_user(100) is True

        assert directory.get_plex_user(100) is None
        assert directory.get_plex_token(100) is None
        count = db_session.execute(select(func.count()).select_from(PlexUserInvite)).scalar()
        assert count == 0
        assert directory.get_invite_code(invite_code.id) is not None

    def test_delete_unknown_user(self, directory):
        assert directory.delete_plex_user(999) is False


class TestRedemptions:
    """Tests for user/invite code association."""

    def test_reassociation_updates_used_at(self, directory, db_session):
        """Redeeming twice keeps a single row and refreshes used_at."""
        make_user(directory)
        invite_code = make_code(directory)

        directory.associate_user_with_invite_code(100, invite_code.id)
        first = db_session.execute(select(PlexUserInvite.used_at)).scalar_one()
        directory.associate_user_with_invite_code(100, invite_code.id)

        rows = db_session.execute(select(PlexUserInvite)).scalars().all()
        assert len(rows) == 1
        assert rows[0].used_at >= first

    def test_list_user_invites_joins_code(self, directory):
        make_user(directory)
        invite_code = make_code(directory, code="JOINED")
        expires_at = datetime.now(timezone.utc) + timedelta(days=30)

        directory.associate_user_with_invite_code(100, invite_code.id, expires_at=expires_at)

        invites = directory.list_user_invites(100)
        assert len(invites) == 1
        assert invites[0].code == "JOINED"
        assert invites[0].entitlement_name == "plex"
        assert invites[0].has_valid_access is True
        assert invites[0].expires_at.tzinfo is not None

    def test_expired_redemption_has_no_valid_access(self, directory):
        make_user(directory)
        invite_code = make_code(directory)
        directory.associate_user_with_invite_code(
            100, invite_code.id, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )

        assert directory.list_user_invites(100)[0].has_valid_access is False

    def test_list_invite_code_users(self, directory):
        make_user(directory, user_id=1, username="zoe", email="z@example.com")
        make_user(directory, user_id=2, username="adam", email="a@example.com")
        invite_code = make_code(directory)
        directory.associate_user_with_invite_code(1, invite_code.id)
        directory.associate_user_with_invite_code(2, invite_code.id)

        users = directory.list_invite_code_users(invite_code.id)
        assert [u.username for u in users] == ["adam", "zoe"]


class TestTokens:
    """Tests for Plex token storage."""

    def test_save_and_replace_token(self, directory, db_session):
        make_user(directory)
        directory.save_plex_token(100, "first")
        directory.save_plex_token(100, "second")

        assert directory.get_plex_token(100) == "second"
        assert db_session.execute(select(func.count()).select_from(PlexToken)).scalar() == 1

    def test_missing_token_is_none(self, directory):
        assert directory.get_plex_token(100) is None


class TestTransactions:
    """Tests for grouped writes and error conversion."""

    def test_transaction_rolls_back_on_error(self, directory):
        """Writes inside a failed transaction are discarded together."""
        invite_code = make_code(directory, max_uses=5)

        with pytest.raises(RuntimeError):
            with directory.transaction():
                make_user(directory)
                directory.increment_invite_code_usage(invite_code.id)
                raise RuntimeError("boom")

        assert directory.get_plex_user(100) is None
        assert directory.get_invite_code(invite_code.id).used_count == 0

    def test_sqlalchemy_error_becomes_storage_error(self, directory, db_session):
        with patch.object(
            db_session, "execute",
            side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
        ):
            with pytest.raises(StorageError):
                directory.get_invite_code_by_code("ANY")
