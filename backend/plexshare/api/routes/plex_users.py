"""
Plex user API routes.

Administration (admin identity required):
    GET    /api/v1/plex/users                    users with live access flag
    GET    /api/v1/plex/users/{user_id}          one user
    GET    /api/v1/plex/users/{user_id}/invites  the user's redemptions
    PATCH  /api/v1/plex/users/{user_id}/notes    set notes
    GET    /api/v1/plex/users/{user_id}/access   live access check
    POST   /api/v1/plex/users/{user_id}/grant    share libraries
    POST   /api/v1/plex/users/{user_id}/revoke   unshare libraries
    DELETE /api/v1/plex/users/{user_id}          unshare, then delete the user

End user:
    GET    /api/v1/plex/access                   whether the caller has access

The configured admin id always has access and can never be revoked or deleted.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from plexshare.api.dependencies import get_orchestrator, get_plex, get_user_directory_service
from plexshare.auth.identity import CallerIdentity, require_admin, require_caller
from plexshare.config.settings import Settings, get_settings
from plexshare.errors import ProviderError, StorageError
from plexshare.integrations.plex import PlexClient
from plexshare.models import PlexUser
from plexshare.models.base import as_utc
from plexshare.services.access_requests import AccessChangeRequest, EntitlementSource
from plexshare.services.provisioning_orchestrator import ProvisioningOrchestrator
from plexshare.services.user_directory_service import UserDirectoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/plex", tags=["plex-users"])


# Request/Response models
class PlexUserResponse(BaseModel):
    """Known Plex user."""
    id: int
    uuid: str
    username: str
    email: Optional[str]
    is_admin: bool
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    has_access: Optional[bool] = None

    @classmethod
    def from_model(cls, user: PlexUser, has_access: Optional[bool] = None) -> "PlexUserResponse":
        return cls(
            id=user.id,
            uuid=user.uuid or "",
            username=user.username or "",
            email=user.email,
            is_admin=bool(user.is_admin),
            notes=user.notes,
            created_at=as_utc(user.created_at),
            updated_at=as_utc(user.updated_at),
            has_access=has_access,
        )


class PlexUserListResponse(BaseModel):
    users: List[PlexUserResponse]


class UserInviteResponse(BaseModel):
    """One redemption by a user."""
    invite_code_id: int
    code: str
    entitlement_name: str
    used_at: datetime
    expires_at: Optional[datetime]
    has_valid_access: bool


class UserInviteListResponse(BaseModel):
    invites: List[UserInviteResponse]


class UpdateNotesRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=10000)


class AccessResponse(BaseModel):
    user_id: int
    has_access: bool


class ProvisioningResponse(BaseModel):
    status: str
    action: str
    performed: bool
    skipped_reason: Optional[str] = None
    invite_accepted: bool = False
    correlation_id: str


def _load_user(service: UserDirectoryService, user_id: int) -> PlexUser:
    try:
        user = service.get_user(user_id)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load user"
        )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def _provider_failure(action: str, user_id: int, error: ProviderError) -> HTTPException:
    logger.error(
        f"Plex {action} failed",
        extra={"plex_user_id": user_id, "status_code": error.status_code, "error": error.message},
    )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Plex {action} failed"
    )


async def _has_access(plex: PlexClient, settings: Settings, user_id: int) -> bool:
    if settings.is_admin(user_id):
        return True
    try:
        return await plex.user_has_access(user_id)
    except ProviderError as e:
        raise _provider_failure("access check", user_id, e)


@router.get("/users", response_model=PlexUserListResponse)
async def list_users(
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
    plex: PlexClient = Depends(get_plex),
    settings: Settings = Depends(get_settings),
):
    """All known users, each annotated with whether Plex currently lists them."""
    try:
        users = service.list_users()
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list users"
        )

    try:
        with_access = await plex.get_user_ids_with_access()
    except ProviderError as e:
        raise _provider_failure("user listing", admin.id, e)

    return PlexUserListResponse(
        users=[
            PlexUserResponse.from_model(
                user,
                has_access=settings.is_admin(user.id) or user.id in with_access,
            )
            for user in users
        ]
    )


@router.get("/users/{user_id}", response_model=PlexUserResponse)
async def get_user(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
):
    return PlexUserResponse.from_model(_load_user(service, user_id))


@router.get("/users/{user_id}/invites", response_model=UserInviteListResponse)
async def list_user_invites(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
):
    """The user's redemptions, most recent first."""
    _load_user(service, user_id)
    try:
        invites = service.list_invites(user_id)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list invites"
        )
    return UserInviteListResponse(
        invites=[
            UserInviteResponse(
                invite_code_id=invite.invite_code_id,
                code=invite.code,
                entitlement_name=invite.entitlement_name,
                used_at=invite.used_at,
                expires_at=invite.expires_at,
                has_valid_access=invite.has_valid_access,
            )
            for invite in invites
        ]
    )


@router.patch("/users/{user_id}/notes", response_model=PlexUserResponse)
async def update_user_notes(
    user_id: int,
    body: UpdateNotesRequest,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
):
    try:
        user = service.update_notes(user_id, body.notes)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notes"
        )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return PlexUserResponse.from_model(user)


@router.get("/users/{user_id}/access", response_model=AccessResponse)
async def check_user_access(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    plex: PlexClient = Depends(get_plex),
    settings: Settings = Depends(get_settings),
):
    return AccessResponse(user_id=user_id, has_access=await _has_access(plex, settings, user_id))


@router.post("/users/{user_id}/grant", response_model=ProvisioningResponse)
async def grant_user_access(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
    plex: PlexClient = Depends(get_plex),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Share the libraries with a known user, using their stored email."""
    user = _load_user(service, user_id)
    if not user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User has no email address"
        )
    if await _has_access(plex, settings, user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already has access"
        )

    request = AccessChangeRequest.grant(
        email=user.email,
        source=EntitlementSource.ADMIN,
        user_id=user_id,
    )
    try:
        result = await orchestrator.apply(request)
    except ProviderError as e:
        raise _provider_failure("share", user_id, e)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage failure"
        )

    logger.info("Access granted by admin", extra={"admin_id": admin.id, "plex_user_id": user_id})
    return ProvisioningResponse(status="success", **result.to_dict())


def _forbid_admin_target(settings: Settings, user: PlexUser) -> None:
    if user.is_admin or settings.is_admin(user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot revoke access for the admin user"
        )


@router.post("/users/{user_id}/revoke", response_model=ProvisioningResponse)
async def revoke_user_access(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Unshare the libraries from a known user."""
    user = _load_user(service, user_id)
    _forbid_admin_target(settings, user)

    try:
        result = await orchestrator.apply(
            AccessChangeRequest.revoke(user_id=user_id, source=EntitlementSource.ADMIN)
        )
    except ProviderError as e:
        raise _provider_failure("unshare", user_id, e)

    logger.info("Access revoked by admin", extra={"admin_id": admin.id, "plex_user_id": user_id})
    return ProvisioningResponse(status="success", **result.to_dict())


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    admin: CallerIdentity = Depends(require_admin),
    service: UserDirectoryService = Depends(get_user_directory_service),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Unshare the libraries, then delete the user with their token and redemptions."""
    if settings.is_admin(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot delete the admin user"
        )
    user = _load_user(service, user_id)
    _forbid_admin_target(settings, user)

    try:
        await orchestrator.apply(
            AccessChangeRequest.revoke(user_id=user_id, source=EntitlementSource.ADMIN)
        )
    except ProviderError as e:
        raise _provider_failure("unshare", user_id, e)

    try:
        service.delete_user(user_id)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete user"
        )

    logger.info("User deleted by admin", extra={"admin_id": admin.id, "plex_user_id": user_id})
    return {"status": "success"}


@router.get("/access", response_model=AccessResponse)
async def check_own_access(
    caller: CallerIdentity = Depends(require_caller),
    plex: PlexClient = Depends(get_plex),
    settings: Settings = Depends(get_settings),
):
    """Whether the caller can currently reach the server."""
    return AccessResponse(user_id=caller.id, has_access=await _has_access(plex, settings, caller.id))
