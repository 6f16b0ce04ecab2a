"""
PlexUserInvite model.

Redemption record linking a PlexUser to an InviteCode. At most one row
exists per (user_id, invite_code_id); redeeming again refreshes used_at.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint, Index

from plexshare.db_base import Base
from plexshare.models.base import as_utc, utcnow


class PlexUserInvite(Base):
    """A user's redemption of an invite code."""

    __tablename__ = "plex_user_invites"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Primary key"
    )

    user_id = Column(
        BigInteger,
        ForeignKey("plex_users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Redeeming Plex user"
    )

    invite_code_id = Column(
        Integer,
        ForeignKey("invite_codes.id"),
        nullable=False,
        comment="Redeemed invite code"
    )

    used_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Most recent redemption time"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Access granted by this redemption ends here (from the code's duration)"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "invite_code_id", name="uq_plex_user_invites_user_code"),
        Index("idx_plex_user_invites_code", "invite_code_id"),
    )

    def has_valid_access(self, now: Optional[datetime] = None) -> bool:
        """True when the redemption has no expiry or has not reached it."""
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return True
        now = as_utc(now) if now is not None else utcnow()
        return now < expires_at

    def __repr__(self) -> str:
        return f"<PlexUserInvite(user_id={self.user_id}, invite_code_id={self.invite_code_id})>"
