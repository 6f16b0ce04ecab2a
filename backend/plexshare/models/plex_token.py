"""
PlexToken model.

Per-user Plex auth token captured at login. Used to accept pending
library-share invitations on the user's behalf.

SECURITY: access_token is a credential. Never log it.
"""

from sqlalchemy import Column, BigInteger, Text, ForeignKey

from plexshare.db_base import Base
from plexshare.models.base import TimestampMixin


class PlexToken(Base, TimestampMixin):
    """Stored Plex token, one row per user."""

    __tablename__ = "plex_tokens"

    user_id = Column(
        BigInteger,
        ForeignKey("plex_users.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
        comment="Plex account id"
    )

    access_token = Column(
        Text,
        nullable=False,
        comment="Plex auth token (secret)"
    )

    def __repr__(self) -> str:
        return f"<PlexToken(user_id={self.user_id})>"
