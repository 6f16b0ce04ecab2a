"""
Invite code API routes.

Administration (admin identity required):
    POST   /api/v1/codes             create
    GET    /api/v1/codes             list codes that are not disabled
    GET    /api/v1/codes/{code_id}   detail with redeemers
    DELETE /api/v1/codes/{code_id}   disable (idempotent)

Redemption (any authenticated user):
    POST   /api/v1/codes/claim       redeem and share libraries

Claim failures for unknown, disabled, expired and exhausted codes all
return the same 400 "code not found".
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from plexshare.api.dependencies import get_invite_code_service, get_orchestrator
from plexshare.auth.identity import CallerIdentity, require_admin, require_caller
from plexshare.errors import (
    InvalidOrExpiredCodeError,
    InviteCodeNotFoundError,
    ProviderError,
    StorageError,
    ValidationError,
)
from plexshare.models import InviteCode, PlexUser
from plexshare.models.base import as_utc
from plexshare.services.invite_code_service import GENERIC_CODE_ERROR, InviteCodeService
from plexshare.services.provisioning_orchestrator import ProvisioningOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/codes", tags=["invite-codes"])


# Request/Response models
class CreateInviteCodeRequest(BaseModel):
    """Request to create an invite code."""
    code: Optional[str] = Field(None, max_length=64, description="Code string; generated when omitted")
    max_uses: Optional[int] = Field(None, ge=1, description="Redemption limit; unlimited when omitted")
    expires_at: Optional[datetime] = Field(None, description="Code cannot be redeemed from this instant")
    entitlement_name: Optional[str] = Field(None, max_length=255, description="Access tag granted by the code")
    duration: Optional[datetime] = Field(None, description="Absolute end of access granted by the code")


class ClaimInviteCodeRequest(BaseModel):
    """Request to redeem an invite code."""
    code: str = Field(..., min_length=1, max_length=64)


class InviteCodeResponse(BaseModel):
    """Invite code record."""
    id: int
    code: str
    entitlement_name: str
    max_uses: Optional[int]
    used_count: int
    expires_at: Optional[datetime]
    duration: Optional[datetime]
    is_disabled: bool
    is_valid: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_model(cls, invite_code: InviteCode) -> "InviteCodeResponse":
        return cls(
            id=invite_code.id,
            code=invite_code.code,
            entitlement_name=invite_code.entitlement_name,
            max_uses=invite_code.max_uses,
            used_count=invite_code.used_count or 0,
            expires_at=as_utc(invite_code.expires_at),
            duration=as_utc(invite_code.duration),
            is_disabled=bool(invite_code.is_disabled),
            is_valid=invite_code.is_valid_for_redemption(),
            created_at=as_utc(invite_code.created_at),
            updated_at=as_utc(invite_code.updated_at),
        )


class RedeemerResponse(BaseModel):
    """A user who redeemed a code."""
    id: int
    username: str
    email: Optional[str]

    @classmethod
    def from_model(cls, user: PlexUser) -> "RedeemerResponse":
        return cls(id=user.id, username=user.username, email=user.email)


class InviteCodeDetailResponse(BaseModel):
    """Invite code with its redeemers."""
    invite_code: InviteCodeResponse
    users: List[RedeemerResponse]


class InviteCodeListResponse(BaseModel):
    """Codes that are not disabled."""
    invite_codes: List[InviteCodeResponse]


@router.post("", response_model=InviteCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_invite_code(
    body: CreateInviteCodeRequest,
    admin: CallerIdentity = Depends(require_admin),
    service: InviteCodeService = Depends(get_invite_code_service),
):
    """Create an invite code; a random 8-character code is generated when none is given."""
    try:
        invite_code = service.create(
            code=body.code,
            max_uses=body.max_uses,
            expires_at=body.expires_at,
            entitlement_name=body.entitlement_name,
            duration=body.duration,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create invite code"
        )

    logger.info("Invite code created by admin", extra={"admin_id": admin.id, "invite_code_id": invite_code.id})
    return InviteCodeResponse.from_model(invite_code)


@router.get("", response_model=InviteCodeListResponse)
async def list_invite_codes(
    admin: CallerIdentity = Depends(require_admin),
    service: InviteCodeService = Depends(get_invite_code_service),
):
    """List codes that are not disabled, newest first. Expired codes are included."""
    try:
        codes = service.list_active()
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list invite codes"
        )
    return InviteCodeListResponse(invite_codes=[InviteCodeResponse.from_model(c) for c in codes])


@router.post("/claim", response_model=InviteCodeResponse)
async def claim_invite_code(
    body: ClaimInviteCodeRequest,
    caller: CallerIdentity = Depends(require_caller),
    service: InviteCodeService = Depends(get_invite_code_service),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
):
    """
    Redeem an invite code and share the libraries with the caller.

    The redemption is recorded before Plex is called. If sharing then
    fails the redemption stands and the request returns 502; an admin
    can retry through the user grant endpoint.
    """
    try:
        redemption = service.redeem(
            code=body.code,
            user_id=caller.id,
            email=caller.email,
            username=caller.username,
            user_uuid=caller.uuid,
        )
    except (InviteCodeNotFoundError, InvalidOrExpiredCodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=GENERIC_CODE_ERROR
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to redeem invite code"
        )

    try:
        await orchestrator.apply(redemption.access_request)
    except ProviderError as e:
        logger.error(
            "Invite code redeemed but sharing failed",
            extra={
                "user_id": caller.id,
                "invite_code_id": redemption.invite_code.id,
                "correlation_id": redemption.access_request.correlation_id,
                "status_code": e.status_code,
                "error": e.message,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to share Plex library"
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage failure"
        )

    return InviteCodeResponse.from_model(redemption.invite_code)


@router.get("/{code_id}", response_model=InviteCodeDetailResponse)
async def get_invite_code(
    code_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: InviteCodeService = Depends(get_invite_code_service),
):
    """A code and the users who redeemed it."""
    try:
        invite_code, users = service.get_detail(code_id)
    except InviteCodeNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invite code not found"
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load invite code"
        )
    return InviteCodeDetailResponse(
        invite_code=InviteCodeResponse.from_model(invite_code),
        users=[RedeemerResponse.from_model(u) for u in users],
    )


@router.delete("/{code_id}")
async def disable_invite_code(
    code_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: InviteCodeService = Depends(get_invite_code_service),
):
    """Disable a code. Disabling twice is not an error."""
    try:
        service.disable(code_id)
    except InviteCodeNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invite code not found"
        )
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to disable invite code"
        )
    logger.info("Invite code disabled by admin", extra={"admin_id": admin.id, "invite_code_id": code_id})
    return {"status": "success"}
