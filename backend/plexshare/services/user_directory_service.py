"""
Known Plex users and their tokens.

record_login() is the hook the login callback calls once Plex has
authenticated a user: it refreshes the user record and stores the token
later used to accept share invites on the user's behalf.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from plexshare.config.settings import Settings
from plexshare.models import PlexUser
from plexshare.repositories.access_directory import AccessDirectory, UserInviteView

logger = logging.getLogger(__name__)


@dataclass
class PlexAccountDetails:
    """Account details returned by Plex after login."""
    id: int
    uuid: str = ""
    username: str = ""
    email: Optional[str] = None


class UserDirectoryService:
    """Reads and writes PlexUser records."""

    def __init__(self, directory: AccessDirectory, settings: Settings):
        self.directory = directory
        self.settings = settings

    def record_login(self, details: PlexAccountDetails, access_token: str) -> PlexUser:
        """
        Upsert the user and their token after a successful login.

        Args:
            details: Account details from Plex
            access_token: The user's Plex token

        Returns:
            The stored PlexUser
        """
        if not access_token:
            raise ValueError("access_token is required")

        with self.directory.transaction():
            user = self.directory.save_plex_user(
                PlexUser(
                    id=details.id,
                    uuid=details.uuid,
                    username=details.username,
                    email=details.email,
                    is_admin=self.settings.is_admin(details.id),
                )
            )
            self.directory.save_plex_token(details.id, access_token)

        logger.info(
            "Plex login recorded",
            extra={"user_id": details.id, "is_admin": user.is_admin},
        )
        return user

    def get_user(self, user_id: int) -> Optional[PlexUser]:
        return self.directory.get_plex_user(user_id)

    def list_users(self) -> List[PlexUser]:
        return self.directory.list_plex_users()

    def list_invites(self, user_id: int) -> List[UserInviteView]:
        return self.directory.list_user_invites(user_id)

    def update_notes(self, user_id: int, notes: Optional[str]) -> Optional[PlexUser]:
        return self.directory.update_user_notes(user_id, notes)

    def delete_user(self, user_id: int) -> bool:
        return self.directory.delete_plex_user(user_id)
