"""
Integrations router for OAuth flows, syncs and connection management.
"""
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.integration import IntegrationCredential, IntegrationLog
from app.schemas.integration import (
    ConnectionStatus,
    IntegrationCapabilities,
    IntegrationCredentialRead,
    IntegrationInfo,
    IntegrationType,
    OAuthURL,
    SyncEntity,
    SyncResultRead,
)
from app.services.auth import get_current_user_id
from app.services.integrations import (
    BaseConnector,
    IntegrationError,
    IntegrationFactory,
    IntegrationToken,
    SyncResult,
)
from app.services.oauth import generate_state, oauth_state_store, parse_callback_params

router = APIRouter(prefix="/integrations", tags=["Integrations"])

logger = logging.getLogger(__name__)

# All Microsoft connectors share one app registration and redirect URI.
MICROSOFT_CALLBACK = "microsoft"
MICROSOFT_TYPES = {
    IntegrationType.ONEDRIVE,
    IntegrationType.ONENOTE,
    IntegrationType.OUTLOOK,
    IntegrationType.TEAMS,
}

# Token endpoint failures: rejected grants, transport errors, malformed payloads.
EXCHANGE_ERRORS = (IntegrationError, httpx.HTTPError, KeyError)


def connector_for(credential: IntegrationCredential) -> BaseConnector:
    """Build a connector bound to a stored credential."""
    return IntegrationFactory.create_connector(
        credential.integration_type,
        token=IntegrationToken(
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            expires_at=credential.token_expires_at,
            scope=credential.scope,
        ),
    )


async def get_credential(
    db: AsyncSession,
    user_id: str,
    integration_type: IntegrationType,
    active_only: bool = True,
) -> IntegrationCredential | None:
    query = select(IntegrationCredential).where(
        IntegrationCredential.user_id == user_id,
        IntegrationCredential.integration_type == integration_type.value,
    )
    if active_only:
        query = query.where(IntegrationCredential.is_active == True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def require_credential(
    db: AsyncSession,
    user_id: str,
    integration_type: IntegrationType,
) -> IntegrationCredential:
    credential = await get_credential(db, user_id, integration_type)
    if not credential:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{integration_type.value} is not connected",
        )
    return credential


def add_log(
    db: AsyncSession,
    integration_type: IntegrationType,
    user_id: str | None,
    action: str,
    success: bool,
    message: str | None = None,
    details: dict | None = None,
) -> None:
    db.add(
        IntegrationLog(
            integration_type=integration_type.value,
            user_id=user_id,
            action=action,
            status="success" if success else "error",
            message=message,
            details=details or {},
        )
    )


@router.get("", response_model=list[IntegrationInfo])
async def list_available_integrations() -> list[IntegrationInfo]:
    """List every integration that can be connected."""
    return IntegrationFactory.get_available_integrations()


@router.get("/connected", response_model=list[IntegrationCredentialRead])
async def list_connected_integrations(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[IntegrationCredential]:
    """List the integrations the current user has connected."""
    result = await db.execute(
        select(IntegrationCredential).where(
            IntegrationCredential.user_id == user_id,
            IntegrationCredential.is_active == True,
        )
    )
    return list(result.scalars().all())


@router.get("/{integration_type}/capabilities", response_model=IntegrationCapabilities)
async def get_capabilities(integration_type: IntegrationType) -> IntegrationCapabilities:
    return IntegrationFactory.get_capabilities(integration_type)


@router.get("/{integration_type}/auth", response_model=OAuthURL)
async def get_oauth_url(
    integration_type: IntegrationType,
    user_id: str = Depends(get_current_user_id),
) -> OAuthURL:
    """Get the OAuth authorization URL for an integration."""
    connector = IntegrationFactory.create_connector(integration_type)

    state = generate_state()
    oauth_state_store.set(state, user_id, integration_type)

    return OAuthURL(auth_url=connector.get_authorization_url(state), state=state)


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Handle the OAuth redirect from a provider."""
    params = parse_callback_params(str(request.url))
    if not params.state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing state",
        )

    pending = oauth_state_store.pop(params.state)
    if pending is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state",
        )

    integration_type = pending.integration_type
    is_microsoft_callback = (
        provider == MICROSOFT_CALLBACK and integration_type in MICROSOFT_TYPES
    )
    if provider != integration_type.value and not is_microsoft_callback:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="State does not match this provider",
        )

    if params.error:
        # The user declined or the provider refused the request.
        reason = params.error_description or params.error
        add_log(db, integration_type, pending.user_id, "connect", False, reason)
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Authorization failed: {reason}",
        )
    if not params.code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing authorization code",
        )

    connector = IntegrationFactory.create_connector(integration_type)

    try:
        tokens = await connector.exchange_code_for_token(params.code)
    except EXCHANGE_ERRORS as e:
        logger.warning("OAuth code exchange for %s failed: %s", integration_type.value, e)
        add_log(db, integration_type, pending.user_id, "connect", False, str(e))
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to exchange code: {str(e)}",
        )

    token = tokens.to_token()
    existing = await get_credential(db, pending.user_id, integration_type, active_only=False)

    if existing:
        existing.access_token = token.access_token
        existing.refresh_token = token.refresh_token
        existing.token_expires_at = token.expires_at
        existing.scope = token.scope
        existing.is_active = True
    else:
        db.add(
            IntegrationCredential(
                user_id=pending.user_id,
                integration_type=integration_type.value,
                access_token=token.access_token,
                refresh_token=token.refresh_token,
                token_expires_at=token.expires_at,
                scope=token.scope,
            )
        )

    add_log(db, integration_type, pending.user_id, "connect", True)
    await db.commit()
    logger.info("Connected %s for user %s", integration_type.value, pending.user_id)

    return RedirectResponse(url=f"/integrations/success?integration={integration_type.value}")


@router.post("/{integration_type}/sync/{entity}", response_model=SyncResultRead)
async def sync_integration(
    integration_type: IntegrationType,
    entity: SyncEntity,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SyncResult:
    """Run a full sync of one entity type."""
    credential = await require_credential(db, user_id, integration_type)
    connector = connector_for(credential)

    sync = getattr(connector, f"sync_{entity.value}", None)
    if sync is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{integration_type.value} does not support syncing {entity.value}",
        )

    result: SyncResult = await sync()

    add_log(
        db,
        integration_type,
        user_id,
        f"sync:{entity.value}",
        result.success,
        "; ".join(result.errors or []) or None,
        {"items_synced": result.items_synced},
    )
    await db.commit()

    return result


@router.get("/{integration_type}/test", response_model=ConnectionStatus)
async def test_integration(
    integration_type: IntegrationType,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ConnectionStatus:
    """Check that the stored token still reaches the provider."""
    credential = await require_credential(db, user_id, integration_type)
    connected = await connector_for(credential).test_connection()
    return ConnectionStatus(integration_type=integration_type, connected=connected)


@router.post("/{integration_type}/refresh", response_model=IntegrationCredentialRead)
async def refresh_integration_token(
    integration_type: IntegrationType,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> IntegrationCredential:
    """Manually refresh an integration's access token."""
    credential = await require_credential(db, user_id, integration_type)

    if not credential.refresh_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No refresh token available",
        )

    connector = connector_for(credential)

    try:
        tokens = await connector.refresh_access_token(credential.refresh_token)
    except EXCHANGE_ERRORS as e:
        logger.warning("Token refresh for %s failed: %s", integration_type.value, e)
        add_log(db, integration_type, user_id, "refresh", False, str(e))
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to refresh token: {str(e)}",
        )

    token = tokens.to_token(fallback_refresh_token=credential.refresh_token)
    credential.access_token = token.access_token
    credential.refresh_token = token.refresh_token
    credential.token_expires_at = token.expires_at
    if token.scope:
        credential.scope = token.scope

    add_log(db, integration_type, user_id, "refresh", True)
    await db.commit()
    await db.refresh(credential)

    return credential


@router.delete("/{integration_type}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_integration(
    integration_type: IntegrationType,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Disconnect an integration."""
    credential = await require_credential(db, user_id, integration_type)
    credential.is_active = False
    add_log(db, integration_type, user_id, "disconnect", True)
    await db.commit()
