"""
Plex integration for library sharing.

Wraps the plex.tv endpoints used to share and unshare the server's
libraries, list users with access and accept pending invites.
"""

from plexshare.integrations.plex.client import (
    PlexClient,
    get_plex_client,
)
from plexshare.integrations.plex.exceptions import (
    PlexError,
    PlexAuthenticationError,
    PlexBadRequestError,
    PlexUnexpectedStatusError,
    PlexConnectionError,
    PlexTimeoutError,
    PlexResponseError,
)
from plexshare.integrations.plex.models import (
    LibrarySection,
    InvitedUser,
    ShareResult,
    PlexServerUser,
)

__all__ = [
    # Client
    "PlexClient",
    "get_plex_client",
    # Exceptions
    "PlexError",
    "PlexAuthenticationError",
    "PlexBadRequestError",
    "PlexUnexpectedStatusError",
    "PlexConnectionError",
    "PlexTimeoutError",
    "PlexResponseError",
    # Models
    "LibrarySection",
    "InvitedUser",
    "ShareResult",
    "PlexServerUser",
]
