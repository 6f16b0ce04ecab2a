"""
PlexUser model.

A Plex account known to this system. Rows are created or refreshed on
every successful login and deleted when an administrator removes the
user, which cascades to the user's token and redemption rows.
"""

from sqlalchemy import Column, BigInteger, String, Boolean, Text, Index

from plexshare.db_base import Base
from plexshare.models.base import TimestampMixin


class PlexUser(Base, TimestampMixin):
    """Local record of a Plex account."""

    __tablename__ = "plex_users"

    id = Column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        comment="Plex account id (external, source of truth)"
    )

    uuid = Column(
        String(255),
        nullable=False,
        default="",
        comment="Plex account uuid"
    )

    username = Column(
        String(255),
        nullable=False,
        default="",
        comment="Plex username"
    )

    email = Column(
        String(255),
        nullable=True,
        comment="Plex account email, used as the share target"
    )

    is_admin = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="True iff id is the configured server owner"
    )

    notes = Column(
        Text,
        nullable=True,
        comment="Free-text administrator notes"
    )

    __table_args__ = (
        Index("idx_plex_users_email", "email"),
        Index("idx_plex_users_username", "username"),
    )

    def __repr__(self) -> str:
        return f"<PlexUser(id={self.id}, username={self.username!r}, is_admin={self.is_admin})>"
