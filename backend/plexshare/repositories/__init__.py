"""Storage adapters for the Access Directory."""

from plexshare.repositories.access_directory import (
    AccessDirectory,
    SqlAccessDirectory,
    UserInviteView,
)

__all__ = ["AccessDirectory", "SqlAccessDirectory", "UserInviteView"]
