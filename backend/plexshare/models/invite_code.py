"""
InviteCode model.

An invite code is a locally issued, limited-use string that grants
media access independently of billing. Codes are never deleted;
administrators soft-disable them.

Validity is always computed, never stored:
    valid = not disabled
        and (expires_at is None or now < expires_at)
        and (duration is None or now < duration)
        and (max_uses is None or used_count < max_uses)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index, CheckConstraint

from plexshare.db_base import Base
from plexshare.models.base import TimestampMixin, as_utc, utcnow


class InviteCode(Base, TimestampMixin):
    """Redeemable invite code."""

    __tablename__ = "invite_codes"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Primary key"
    )

    code = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="Code string users type in"
    )

    entitlement_name = Column(
        String(255),
        nullable=False,
        comment="Entitlement tag this code grants (e.g. plex)"
    )

    max_uses = Column(
        Integer,
        nullable=True,
        comment="Maximum redemptions; NULL means unlimited"
    )

    used_count = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Successful redemptions so far"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Code can no longer be redeemed from this instant"
    )

    duration = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Absolute cutoff bounding the lifetime of access granted by this code"
    )

    is_disabled = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
        comment="Soft-disable flag; disabled codes are terminal"
    )

    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses",
            name="ck_invite_codes_usage_within_max"
        ),
        Index("idx_invite_codes_disabled_created", "is_disabled", "created_at"),
    )

    def is_valid_for_redemption(self, now: Optional[datetime] = None) -> bool:
        """
        Check whether the code can be redeemed at `now`.

        Expiry comparisons are strict: a code whose expires_at equals now
        is already expired.
        """
        now = as_utc(now) if now is not None else utcnow()

        if self.is_disabled:
            return False
        expires_at = as_utc(self.expires_at)
        if expires_at is not None and not now < expires_at:
            return False
        duration = as_utc(self.duration)
        if duration is not None and not now < duration:
            return False
        if self.max_uses is not None and (self.used_count or 0) >= self.max_uses:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<InviteCode(id={self.id}, code={self.code!r}, "
            f"used={self.used_count}/{self.max_uses}, disabled={self.is_disabled})>"
        )
