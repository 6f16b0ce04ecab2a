"""
Provisioning orchestrator.

Applies an AccessChangeRequest against Plex. This is the only place that
sequences calls across systems:

Grant:
    1. share_library(email)            errors propagate
    2. look up the invited user's token
    3. accept_invite(token, share id)  best effort, failures only logged

Revoke:
    unshare_library(user id); a 404 means the share is already gone.

The configured admin id is never shared with or revoked from, also when
a grant only names the email of a known admin user. Grants
are not pre-checked against current access: re-sharing is idempotent
at Plex and a check-then-act would race.
"""

import logging
from typing import Optional

from plexshare.config.settings import Settings
from plexshare.integrations.plex import PlexClient, PlexError, PlexUnexpectedStatusError
from plexshare.repositories.access_directory import AccessDirectory
from plexshare.services.access_requests import (
    AccessAction,
    AccessChangeRequest,
    ProvisioningResult,
)

logger = logging.getLogger(__name__)

SKIP_ADMIN = "admin always has access"
SKIP_ALREADY_REVOKED = "share already removed"


class ProvisioningOrchestrator:
    """Turns access change requests into Plex share/unshare calls."""

    def __init__(
        self,
        plex_client: PlexClient,
        directory: AccessDirectory,
        settings: Settings,
    ):
        self.plex = plex_client
        self.directory = directory
        self.settings = settings

    async def apply(self, request: AccessChangeRequest) -> ProvisioningResult:
        """
        Apply a grant or revoke.

        Args:
            request: The access change to apply

        Returns:
            ProvisioningResult describing what was done

        Raises:
            ProviderError: If the share or unshare call fails
            StorageError: If a user or token lookup fails
        """
        if self.settings.is_admin(self._known_user_id(request)):
            logger.info(
                "Skipping provisioning for admin user",
                extra={
                    "action": request.action.value,
                    "correlation_id": request.correlation_id,
                },
            )
            return ProvisioningResult(
                action=request.action,
                performed=False,
                correlation_id=request.correlation_id,
                skipped_reason=SKIP_ADMIN,
            )

        if request.action == AccessAction.GRANT:
            return await self._grant(request)
        return await self._revoke(request)

    def _known_user_id(self, request: AccessChangeRequest) -> Optional[int]:
        """The request's user id, or the id of a known user with the grant email."""
        if request.subject_user_id is not None or not request.subject_email:
            return request.subject_user_id
        user = self.directory.get_plex_user_by_email(request.subject_email)
        return user.id if user is not None else None

    async def _grant(self, request: AccessChangeRequest) -> ProvisioningResult:
        logger.info(
            "Sharing Plex library",
            extra={
                "source": request.source.value,
                "plex_user_id": request.subject_user_id,
                "correlation_id": request.correlation_id,
            },
        )

        share = await self.plex.share_library(request.subject_email)

        result = ProvisioningResult(
            action=AccessAction.GRANT,
            performed=True,
            correlation_id=request.correlation_id,
            share_id=share.id,
            invited_id=share.invited_id,
        )

        if share.accepted:
            result.invite_accepted = True
            return result

        token_user_id = request.subject_user_id or share.invited_id
        token = self.directory.get_plex_token(token_user_id) if token_user_id else None
        if not token:
            logger.info(
                "No stored Plex token; invite left pending for manual acceptance",
                extra={
                    "plex_user_id": token_user_id,
                    "share_id": share.id,
                    "correlation_id": request.correlation_id,
                },
            )
            return result

        result.invite_accepted = await self._accept_invite(token, share.id, token_user_id, request)
        return result

    async def _accept_invite(
        self,
        token: str,
        share_id: int,
        user_id: Optional[int],
        request: AccessChangeRequest,
    ) -> bool:
        try:
            await self.plex.accept_invite(token, share_id)
        except PlexError as e:
            logger.warning(
                "Failed to auto-accept Plex invite; share remains pending",
                extra={
                    "plex_user_id": user_id,
                    "share_id": share_id,
                    "status_code": e.status_code,
                    "error": e.message,
                    "correlation_id": request.correlation_id,
                },
            )
            return False
        return True

    async def _revoke(self, request: AccessChangeRequest) -> ProvisioningResult:
        logger.info(
            "Unsharing Plex library",
            extra={
                "source": request.source.value,
                "plex_user_id": request.subject_user_id,
                "correlation_id": request.correlation_id,
            },
        )

        try:
            await self.plex.unshare_library(request.subject_user_id)
        except PlexUnexpectedStatusError as e:
            if e.status_code != 404:
                raise
            logger.info(
                "Plex share already removed",
                extra={
                    "plex_user_id": request.subject_user_id,
                    "correlation_id": request.correlation_id,
                },
            )
            return ProvisioningResult(
                action=AccessAction.REVOKE,
                performed=False,
                correlation_id=request.correlation_id,
                skipped_reason=SKIP_ALREADY_REVOKED,
            )

        return ProvisioningResult(
            action=AccessAction.REVOKE,
            performed=True,
            correlation_id=request.correlation_id,
        )
