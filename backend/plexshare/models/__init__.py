"""
Database models for the Access Directory.

Four tables: invite codes, redemptions, known Plex users and their tokens.
"""

from plexshare.models.base import TimestampMixin
from plexshare.models.invite_code import InviteCode
from plexshare.models.plex_user import PlexUser
from plexshare.models.plex_user_invite import PlexUserInvite
from plexshare.models.plex_token import PlexToken

__all__ = [
    "TimestampMixin",
    "InviteCode",
    "PlexUser",
    "PlexUserInvite",
    "PlexToken",
]
