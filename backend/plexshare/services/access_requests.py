"""
Access change requests and provisioning results.

An AccessChangeRequest is the normalised form of every inbound signal:
billing entitlement events and invite-code redemptions both become one
of these before anything touches Plex. Requests are never persisted.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AccessAction(str, Enum):
    """What to do with a user's library access."""
    GRANT = "grant"
    REVOKE = "revoke"


class EntitlementSource(str, Enum):
    """Where an access change originated."""
    BILLING_ENTITLEMENT = "billing_entitlement"
    INVITE_REDEMPTION = "invite_redemption"
    ADMIN = "admin"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AccessChangeRequest:
    """
    Grant or revoke library access for one user.

    Grants are addressed by email, revokes by Plex user id. A grant may
    also carry the subject's Plex user id when it is already known, which
    lets the orchestrator find the user's token without waiting for Plex
    to echo it back.
    """
    action: AccessAction
    source: EntitlementSource
    subject_email: Optional[str] = None
    subject_user_id: Optional[int] = None
    correlation_id: str = field(default_factory=new_correlation_id)

    def __post_init__(self):
        if self.action == AccessAction.GRANT and not self.subject_email:
            raise ValueError("Grant requests require subject_email")
        if self.action == AccessAction.REVOKE and self.subject_user_id is None:
            raise ValueError("Revoke requests require subject_user_id")

    @classmethod
    def grant(
        cls,
        email: str,
        source: EntitlementSource,
        user_id: Optional[int] = None,
        correlation_id: Optional[str] = None,
    ) -> "AccessChangeRequest":
        return cls(
            action=AccessAction.GRANT,
            source=source,
            subject_email=email,
            subject_user_id=user_id,
            correlation_id=correlation_id or new_correlation_id(),
        )

    @classmethod
    def revoke(
        cls,
        user_id: int,
        source: EntitlementSource,
        correlation_id: Optional[str] = None,
    ) -> "AccessChangeRequest":
        return cls(
            action=AccessAction.REVOKE,
            source=source,
            subject_user_id=user_id,
            correlation_id=correlation_id or new_correlation_id(),
        )


@dataclass
class ProvisioningResult:
    """Outcome of applying an AccessChangeRequest."""
    action: AccessAction
    performed: bool
    correlation_id: str
    skipped_reason: Optional[str] = None
    share_id: Optional[int] = None
    invited_id: Optional[int] = None
    invite_accepted: bool = False

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "performed": self.performed,
            "correlation_id": self.correlation_id,
            "skipped_reason": self.skipped_reason,
            "share_id": self.share_id,
            "invited_id": self.invited_id,
            "invite_accepted": self.invite_accepted,
        }
