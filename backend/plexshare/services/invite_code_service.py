"""
Invite code lifecycle: create, redeem, disable, list.

States per code:
    Active --redeem(valid)--> Active (used_count + 1)
    Active --disable--> Disabled (terminal)
    Active --time passes--> Expired (terminal, computed, never stored)

Redemption only produces an AccessChangeRequest; it never calls Plex.
Not-found and not-redeemable are separate exception types internally
but carry the same message, so callers cannot tell which codes exist.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from plexshare.config.settings import Settings
from plexshare.errors import (
    InvalidOrExpiredCodeError,
    InviteCodeNotFoundError,
    ValidationError,
)
from plexshare.models import InviteCode, PlexUser
from plexshare.models.base import as_utc
from plexshare.repositories.access_directory import AccessDirectory
from plexshare.services.access_requests import AccessChangeRequest, EntitlementSource

logger = logging.getLogger(__name__)

CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_letters + string.digits
MAX_GENERATION_ATTEMPTS = 5

GENERIC_CODE_ERROR = "code not found"


def generate_code(length: int = CODE_LENGTH) -> str:
    """Random code drawn uniformly from [A-Za-z0-9]."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class Redemption:
    """A successful redemption and the grant it produced."""
    invite_code: InviteCode
    access_request: AccessChangeRequest


class InviteCodeService:
    """Manages invite codes stored in the Access Directory."""

    def __init__(self, directory: AccessDirectory, settings: Settings):
        self.directory = directory
        self.settings = settings

    def create(
        self,
        code: Optional[str] = None,
        max_uses: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        entitlement_name: Optional[str] = None,
        duration: Optional[datetime] = None,
    ) -> InviteCode:
        """
        Create an invite code.

        Args:
            code: Code string; generated when empty
            max_uses: Redemption limit; None for unlimited
            expires_at: Last instant (exclusive) the code can be redeemed
            entitlement_name: Tag for the granted access; defaults to the configured baseline
            duration: Absolute cutoff for access granted by this code

        Returns:
            The stored InviteCode with its id assigned

        Raises:
            ValidationError: If max_uses is not positive or the code already exists
        """
        if max_uses is not None and max_uses < 1:
            raise ValidationError("max_uses must be at least 1")

        entitlement_name = (entitlement_name or "").strip() or self.settings.invite_default_entitlement
        requested = (code or "").strip()

        attempts = 1 if requested else MAX_GENERATION_ATTEMPTS
        for attempt in range(attempts):
            candidate = requested or generate_code()
            invite_code = InviteCode(
                code=candidate,
                entitlement_name=entitlement_name,
                max_uses=max_uses,
                used_count=0,
                expires_at=as_utc(expires_at),
                duration=as_utc(duration),
                is_disabled=False,
            )
            try:
                saved = self.directory.save_invite_code(invite_code)
            except ValidationError:
                if requested or attempt == attempts - 1:
                    raise
                continue

            logger.info(
                "Invite code created",
                extra={
                    "invite_code_id": saved.id,
                    "entitlement_name": entitlement_name,
                    "max_uses": max_uses,
                    "generated": not requested,
                },
            )
            return saved

        raise ValidationError("Could not generate a unique invite code")

    def redeem(
        self,
        code: str,
        user_id: int,
        email: Optional[str],
        username: str = "",
        user_uuid: str = "",
        now: Optional[datetime] = None,
    ) -> Redemption:
        """
        Redeem a code for a user.

        Records the redemption and claims one use in a single transaction,
        then returns a grant addressed to the user's email.

        Raises:
            ValidationError: If the code or the user's email is missing
            InviteCodeNotFoundError: If no code matches
            InvalidOrExpiredCodeError: If the code is disabled, expired or exhausted
        """
        code = (code or "").strip()
        if not code:
            raise ValidationError("code is required")
        if not email:
            raise ValidationError("Your Plex account has no email address")

        invite_code = self.directory.get_invite_code_by_code(code)
        if invite_code is None:
            logger.info("Invite code redemption failed: unknown code", extra={"user_id": user_id})
            raise InviteCodeNotFoundError(GENERIC_CODE_ERROR)

        if not invite_code.is_valid_for_redemption(now):
            logger.info(
                "Invite code redemption failed: not redeemable",
                extra={"invite_code_id": invite_code.id, "user_id": user_id},
            )
            raise InvalidOrExpiredCodeError(GENERIC_CODE_ERROR)

        with self.directory.transaction():
            if self.directory.get_plex_user(user_id) is None:
                self.directory.save_plex_user(
                    PlexUser(
                        id=user_id,
                        uuid=user_uuid,
                        username=username,
                        email=email,
                        is_admin=self.settings.is_admin(user_id),
                    )
                )

            # The conditional increment is the only validity check that holds under concurrency.
            if not self.directory.increment_invite_code_usage(invite_code.id, now=now):
                logger.info(
                    "Invite code redemption failed: claim rejected",
                    extra={"invite_code_id": invite_code.id, "user_id": user_id},
                )
                raise InvalidOrExpiredCodeError(GENERIC_CODE_ERROR)

            self.directory.associate_user_with_invite_code(
                user_id,
                invite_code.id,
                expires_at=as_utc(invite_code.duration),
            )

        invite_code = self.directory.get_invite_code(invite_code.id)
        request = AccessChangeRequest.grant(
            email=email,
            source=EntitlementSource.INVITE_REDEMPTION,
            user_id=user_id,
        )

        logger.info(
            "Invite code redeemed",
            extra={
                "invite_code_id": invite_code.id,
                "user_id": user_id,
                "used_count": invite_code.used_count,
                "correlation_id": request.correlation_id,
            },
        )
        return Redemption(invite_code=invite_code, access_request=request)

    def disable(self, code_id: int) -> None:
        """
        Disable a code. Disabling an already-disabled code succeeds.

        Raises:
            InviteCodeNotFoundError: If no code has this id
        """
        if not self.directory.disable_invite_code(code_id):
            raise InviteCodeNotFoundError(GENERIC_CODE_ERROR)
        logger.info("Invite code disabled", extra={"invite_code_id": code_id})

    def list_active(self) -> List[InviteCode]:
        """Codes that are not disabled, including expired ones."""
        return self.directory.list_active_invite_codes()

    def get_detail(self, code_id: int) -> Tuple[InviteCode, List[PlexUser]]:
        """
        A code and the users who redeemed it.

        Raises:
            InviteCodeNotFoundError: If no code has this id
        """
        invite_code = self.directory.get_invite_code(code_id)
        if invite_code is None:
            raise InviteCodeNotFoundError(GENERIC_CODE_ERROR)
        return invite_code, self.directory.list_invite_code_users(code_id)

