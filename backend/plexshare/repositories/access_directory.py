"""
Access Directory: durable records for invite codes, redemptions,
known Plex users and their tokens.

AccessDirectory is the storage-provider interface the services depend on.
SqlAccessDirectory implements it on SQLAlchemy for PostgreSQL and SQLite,
using each dialect's native INSERT ... ON CONFLICT for upserts.

GUARANTEES:
- At most one redemption row per (user_id, invite_code_id)
- used_count never exceeds max_uses: the increment is a single
  conditional UPDATE, so concurrent redemptions cannot overshoot
- Every SQLAlchemyError is rolled back and re-raised as StorageError
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from plexshare.errors import StorageError, ValidationError
from plexshare.models import InviteCode, PlexToken, PlexUser, PlexUserInvite
from plexshare.models.base import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class UserInviteView:
    """A user's redemption joined with the code it redeemed."""

    invite_code_id: int
    code: str
    entitlement_name: str
    used_at: datetime
    expires_at: Optional[datetime]
    has_valid_access: bool


class AccessDirectory(ABC):
    """Storage-provider interface for the Access Directory."""

    @contextmanager
    def transaction(self) -> Iterator["AccessDirectory"]:
        """Group several writes so they commit or roll back together."""
        yield self

    # Invite codes

    @abstractmethod
    def save_invite_code(self, invite_code: InviteCode) -> InviteCode:
        ...

    @abstractmethod
    def get_invite_code(self, code_id: int) -> Optional[InviteCode]:
        ...

    @abstractmethod
    def get_invite_code_by_code(self, code: str) -> Optional[InviteCode]:
        ...

    @abstractmethod
    def increment_invite_code_usage(self, code_id: int, now: Optional[datetime] = None) -> bool:
        ...

    @abstractmethod
    def list_active_invite_codes(self) -> List[InviteCode]:
        ...

    @abstractmethod
    def disable_invite_code(self, code_id: int) -> bool:
        ...

    # Users

    @abstractmethod
    def save_plex_user(self, user: PlexUser) -> PlexUser:
        ...

    @abstractmethod
    def get_plex_user(self, user_id: int) -> Optional[PlexUser]:
        ...

    @abstractmethod
    def get_plex_user_by_email(self, email: str) -> Optional[PlexUser]:
        ...

    @abstractmethod
    def list_plex_users(self) -> List[PlexUser]:
        ...

    @abstractmethod
    def delete_plex_user(self, user_id: int) -> bool:
        ...

    @abstractmethod
    def update_user_notes(self, user_id: int, notes: Optional[str]) -> Optional[PlexUser]:
        ...

    # Redemptions

    @abstractmethod
    def associate_user_with_invite_code(
        self,
        user_id: int,
        invite_code_id: int,
        expires_at: Optional[datetime] = None,
    ) -> None:
        ...

    @abstractmethod
    def list_user_invites(self, user_id: int) -> List[UserInviteView]:
        ...

    @abstractmethod
    def list_invite_code_users(self, invite_code_id: int) -> List[PlexUser]:
        ...

    # Tokens

    @abstractmethod
    def save_plex_token(self, user_id: int, access_token: str) -> None:
        ...

    @abstractmethod
    def get_plex_token(self, user_id: int) -> Optional[str]:
        ...


class SqlAccessDirectory(AccessDirectory):
    """
    SQLAlchemy implementation of the Access Directory.

    Each write commits on its own unless it runs inside transaction(),
    in which case writes are flushed and committed once on exit.
    """

    def __init__(self, db_session: Session):
        self.db_session = db_session
        self._transaction_depth = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def dialect_name(self) -> str:
        return self.db_session.get_bind().dialect.name

    def _insert(self, model):
        if self.dialect_name == "postgresql":
            return pg_insert(model)
        if self.dialect_name == "sqlite":
            return sqlite_insert(model)
        return None

    def _commit(self) -> None:
        if self._transaction_depth:
            self.db_session.flush()
        else:
            self.db_session.commit()

    def _fail(self, operation: str, error: SQLAlchemyError, **context) -> StorageError:
        self.db_session.rollback()
        logger.error(
            "Access directory operation failed",
            extra={"operation": operation, "error": str(error), **context},
        )
        return StorageError(f"Storage operation failed: {operation}")

    @contextmanager
    def transaction(self) -> Iterator["SqlAccessDirectory"]:
        self._transaction_depth += 1
        try:
            yield self
        except Exception:
            self._transaction_depth -= 1
            if not self._transaction_depth:
                self.db_session.rollback()
            raise
        else:
            self._transaction_depth -= 1
            if not self._transaction_depth:
                try:
                    self.db_session.commit()
                except SQLAlchemyError as e:
                    raise self._fail("commit", e)

    # ------------------------------------------------------------------
    # Invite codes
    # ------------------------------------------------------------------

    def save_invite_code(self, invite_code: InviteCode) -> InviteCode:
        """
        Persist a new or modified invite code.

        Raises:
            ValidationError: If the code string is already taken
            StorageError: On any other database failure
        """
        try:
            self.db_session.add(invite_code)
            self._commit()
            self.db_session.refresh(invite_code)
        except IntegrityError as e:
            self.db_session.rollback()
            logger.warning(
                "Invite code rejected by constraint",
                extra={"code": invite_code.code, "error": str(e.orig)},
            )
            raise ValidationError("An invite code with this value already exists")
        except SQLAlchemyError as e:
            raise self._fail("save_invite_code", e, code=invite_code.code)
        return invite_code

    def get_invite_code(self, code_id: int) -> Optional[InviteCode]:
        try:
            return self.db_session.get(InviteCode, code_id)
        except SQLAlchemyError as e:
            raise self._fail("get_invite_code", e, invite_code_id=code_id)

    def get_invite_code_by_code(self, code: str) -> Optional[InviteCode]:
        try:
            return self.db_session.execute(
                select(InviteCode).where(InviteCode.code == code)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("get_invite_code_by_code", e)

    def increment_invite_code_usage(self, code_id: int, now: Optional[datetime] = None) -> bool:
        """
        Claim one use of an invite code.

        The increment is conditional on the code still being redeemable at
        `now`: not disabled, not expired and with uses left. The database
        evaluates all of it in the same statement.

        Returns:
            True if a use was claimed, False if the code is no longer
            redeemable or absent
        """
        now = as_utc(now) if now is not None else utcnow()
        statement = (
            update(InviteCode)
            .where(InviteCode.id == code_id)
            .where(InviteCode.is_disabled.is_(False))
            .where(or_(InviteCode.expires_at.is_(None), InviteCode.expires_at > now))
            .where(or_(InviteCode.duration.is_(None), InviteCode.duration > now))
            .where(
                or_(
                    InviteCode.max_uses.is_(None),
                    InviteCode.used_count < InviteCode.max_uses,
                )
            )
            .values(used_count=InviteCode.used_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db_session.execute(statement)
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail("increment_invite_code_usage", e, invite_code_id=code_id)

        claimed = result.rowcount == 1
        invite_code = self.db_session.get(InviteCode, code_id)
        if invite_code is not None:
            self.db_session.expire(invite_code)
        return claimed

    def list_active_invite_codes(self) -> List[InviteCode]:
        """All codes that are not disabled, newest first."""
        try:
            return list(
                self.db_session.execute(
                    select(InviteCode)
                    .where(InviteCode.is_disabled.is_(False))
                    .order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
                ).scalars()
            )
        except SQLAlchemyError as e:
            raise self._fail("list_active_invite_codes", e)

    def disable_invite_code(self, code_id: int) -> bool:
        """
        Soft-disable an invite code.

        Returns:
            True if the code exists (whether or not it was already disabled)
        """
        try:
            invite_code = self.db_session.get(InviteCode, code_id)
            if invite_code is None:
                return False
            if not invite_code.is_disabled:
                invite_code.is_disabled = True
                self._commit()
        except SQLAlchemyError as e:
            raise self._fail("disable_invite_code", e, invite_code_id=code_id)
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def save_plex_user(self, user: PlexUser) -> PlexUser:
        """
        Insert or refresh a Plex user by id.

        Profile fields and is_admin are overwritten; notes are preserved.
        """
        values = {
            "id": user.id,
            "uuid": user.uuid or "",
            "username": user.username or "",
            "email": user.email,
            "is_admin": bool(user.is_admin),
        }
        refreshed = {key: values[key] for key in ("uuid", "username", "email", "is_admin")}
        now = utcnow()

        try:
            insert = self._insert(PlexUser)
            if insert is not None:
                statement = insert.values(**values, created_at=now, updated_at=now)
                statement = statement.on_conflict_do_update(
                    index_elements=[PlexUser.id],
                    set_={**refreshed, "updated_at": now},
                )
                self.db_session.execute(statement)
            else:
                existing = self.db_session.get(PlexUser, user.id)
                if existing is None:
                    self.db_session.add(PlexUser(**values))
                else:
                    for key, value in refreshed.items():
                        setattr(existing, key, value)
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail("save_plex_user", e, user_id=user.id)

        return self._reload(PlexUser, user.id)

    def _reload(self, model, key):
        instance = self.db_session.get(model, key)
        if instance is not None:
            self.db_session.refresh(instance)
        return instance

    def get_plex_user(self, user_id: int) -> Optional[PlexUser]:
        try:
            return self.db_session.get(PlexUser, user_id)
        except SQLAlchemyError as e:
            raise self._fail("get_plex_user", e, user_id=user_id)

    def get_plex_user_by_email(self, email: str) -> Optional[PlexUser]:
        try:
            return self.db_session.execute(
                select(PlexUser).where(PlexUser.email == email).limit(1)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("get_plex_user_by_email", e)

    def list_plex_users(self) -> List[PlexUser]:
        try:
            return list(
                self.db_session.execute(
                    select(PlexUser).order_by(PlexUser.username, PlexUser.id)
                ).scalars()
            )
        except SQLAlchemyError as e:
            raise self._fail("list_plex_users", e)

    def delete_plex_user(self, user_id: int) -> bool:
        """
        Delete a user together with their redemptions and token.

        Returns:
            True if the user existed
        """
        try:
            self.db_session.execute(
                delete(PlexUserInvite)
                .where(PlexUserInvite.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            self.db_session.execute(
                delete(PlexToken)
                .where(PlexToken.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            result = self.db_session.execute(
                delete(PlexUser)
                .where(PlexUser.id == user_id)
                .execution_options(synchronize_session=False)
            )
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail("delete_plex_user", e, user_id=user_id)

        self.db_session.expire_all()
        deleted = result.rowcount == 1
        logger.info("Plex user deleted", extra={"user_id": user_id, "existed": deleted})
        return deleted

    def update_user_notes(self, user_id: int, notes: Optional[str]) -> Optional[PlexUser]:
        try:
            user = self.db_session.get(PlexUser, user_id)
            if user is None:
                return None
            user.notes = notes
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail("update_user_notes", e, user_id=user_id)
        return user

    # ------------------------------------------------------------------
    # Redemptions
    # ------------------------------------------------------------------

    def associate_user_with_invite_code(
        self,
        user_id: int,
        invite_code_id: int,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Record a redemption; an existing (user, code) row gets a fresh used_at."""
        now = utcnow()
        try:
            insert = self._insert(PlexUserInvite)
            if insert is not None:
                statement = insert.values(
                    user_id=user_id,
                    invite_code_id=invite_code_id,
                    used_at=now,
                    expires_at=expires_at,
                ).on_conflict_do_update(
                    index_elements=[PlexUserInvite.user_id, PlexUserInvite.invite_code_id],
                    set_={"used_at": now},
                )
                self.db_session.execute(statement)
            else:
                existing = self.db_session.execute(
                    select(PlexUserInvite).where(
                        PlexUserInvite.user_id == user_id,
                        PlexUserInvite.invite_code_id == invite_code_id,
                    )
                ).scalar_one_or_none()
                if existing is None:
                    self.db_session.add(
                        PlexUserInvite(
                            user_id=user_id,
                            invite_code_id=invite_code_id,
                            used_at=now,
                            expires_at=expires_at,
                        )
                    )
                else:
                    existing.used_at = now
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail(
                "associate_user_with_invite_code",
                e,
                user_id=user_id,
                invite_code_id=invite_code_id,
            )

    def list_user_invites(self, user_id: int) -> List[UserInviteView]:
        """A user's redemptions with the redeemed code, most recent first."""
        now = utcnow()
        try:
            rows = self.db_session.execute(
                select(PlexUserInvite, InviteCode.code, InviteCode.entitlement_name)
                .join(InviteCode, InviteCode.id == PlexUserInvite.invite_code_id)
                .where(PlexUserInvite.user_id == user_id)
                .order_by(PlexUserInvite.used_at.desc(), PlexUserInvite.id.desc())
            ).all()
        except SQLAlchemyError as e:
            raise self._fail("list_user_invites", e, user_id=user_id)

        return [
            UserInviteView(
                invite_code_id=invite.invite_code_id,
                code=code,
                entitlement_name=entitlement_name,
                used_at=as_utc(invite.used_at),
                expires_at=as_utc(invite.expires_at),
                has_valid_access=invite.has_valid_access(now),
            )
            for invite, code, entitlement_name in rows
        ]

    def list_invite_code_users(self, invite_code_id: int) -> List[PlexUser]:
        try:
            return list(
                self.db_session.execute(
                    select(PlexUser)
                    .join(PlexUserInvite, PlexUserInvite.user_id == PlexUser.id)
                    .where(PlexUserInvite.invite_code_id == invite_code_id)
                    .order_by(PlexUser.username, PlexUser.id)
                ).scalars()
            )
        except SQLAlchemyError as e:
            raise self._fail("list_invite_code_users", e, invite_code_id=invite_code_id)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def save_plex_token(self, user_id: int, access_token: str) -> None:
        now = utcnow()
        try:
            insert = self._insert(PlexToken)
            if insert is not None:
                statement = insert.values(
                    user_id=user_id,
                    access_token=access_token,
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_update(
                    index_elements=[PlexToken.user_id],
                    set_={"access_token": access_token, "updated_at": now},
                )
                self.db_session.execute(statement)
            else:
                existing = self.db_session.get(PlexToken, user_id)
                if existing is None:
                    self.db_session.add(PlexToken(user_id=user_id, access_token=access_token))
                else:
                    existing.access_token = access_token
            self._commit()
        except SQLAlchemyError as e:
            raise self._fail("save_plex_token", e, user_id=user_id)

        token = self.db_session.get(PlexToken, user_id)
        if token is not None:
            self.db_session.expire(token)

    def get_plex_token(self, user_id: int) -> Optional[str]:
        try:
            token = self.db_session.get(PlexToken, user_id)
        except SQLAlchemyError as e:
            raise self._fail("get_plex_token", e, user_id=user_id)
        return token.access_token if token is not None else None
