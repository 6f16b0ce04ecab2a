"""
FastAPI dependencies wiring settings, storage and clients into services.

Every component receives its Settings explicitly; tests replace any
of these through app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from plexshare.config.settings import Settings, get_settings
from plexshare.database.session import get_db_session
from plexshare.integrations.plex import PlexClient, get_plex_client
from plexshare.integrations.stripe import StripeBillingClient, get_stripe_billing_client
from plexshare.repositories.access_directory import AccessDirectory, SqlAccessDirectory
from plexshare.services.billing_webhook_handler import BillingWebhookHandler
from plexshare.services.entitlement_interpreter import EntitlementInterpreter
from plexshare.services.invite_code_service import InviteCodeService
from plexshare.services.provisioning_orchestrator import ProvisioningOrchestrator
from plexshare.services.user_directory_service import UserDirectoryService


def get_access_directory(db: Session = Depends(get_db_session)) -> AccessDirectory:
    return SqlAccessDirectory(db)


async def get_plex(settings: Settings = Depends(get_settings)) -> AsyncGenerator[PlexClient, None]:
    """Request-scoped Plex client, closed when the request finishes."""
    try:
        client = get_plex_client(settings)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Plex integration not configured"
        )
    async with client:
        yield client


def get_billing_client(settings: Settings = Depends(get_settings)) -> StripeBillingClient:
    try:
        return get_stripe_billing_client(settings)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe integration not configured"
        )


def get_invite_code_service(
    directory: AccessDirectory = Depends(get_access_directory),
    settings: Settings = Depends(get_settings),
) -> InviteCodeService:
    return InviteCodeService(directory, settings)


def get_user_directory_service(
    directory: AccessDirectory = Depends(get_access_directory),
    settings: Settings = Depends(get_settings),
) -> UserDirectoryService:
    return UserDirectoryService(directory, settings)


def get_orchestrator(
    plex: PlexClient = Depends(get_plex),
    directory: AccessDirectory = Depends(get_access_directory),
    settings: Settings = Depends(get_settings),
) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(plex, directory, settings)


def get_webhook_handler(
    billing_client: StripeBillingClient = Depends(get_billing_client),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> BillingWebhookHandler:
    return BillingWebhookHandler(
        interpreter=EntitlementInterpreter(settings.stripe_entitlement_name),
        billing_client=billing_client,
        orchestrator=orchestrator,
    )
