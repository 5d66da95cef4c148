"""
Webhooks router: inbound deliveries and subscription management.
"""
import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.models.webhook import Webhook, WebhookLog
from app.routers.integrations import connector_for, get_credential
from app.schemas.integration import IntegrationType
from app.schemas.webhook import (
    WebhookCreate,
    WebhookPayload,
    WebhookRead,
    WebhookResult,
    WebhookRetry,
    WebhookStats,
    WebhookTest,
)
from app.services.auth import get_current_user_id
from app.services.webhooks import WebhookService, webhook_service

settings = get_settings()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = {
    IntegrationType.HUBSPOT: "X-HubSpot-Signature",
    IntegrationType.TRELLO: "X-Trello-Webhook",
    IntegrationType.BIGIN: "X-Zoho-Webhook-Signature",
}

MICROSOFT_TYPES = {
    IntegrationType.ONEDRIVE,
    IntegrationType.ONENOTE,
    IntegrationType.OUTLOOK,
    IntegrationType.TEAMS,
}


def first_notification(body: Any) -> dict | None:
    """First Graph change notification in a delivery, if the body has one."""
    notifications = body.get("value") if isinstance(body, dict) else None
    if isinstance(notifications, list) and notifications and isinstance(notifications[0], dict):
        return notifications[0]
    return None


def describe_event(integration_type: IntegrationType, body: Any) -> str:
    """Pull the provider's event name out of a delivery body."""
    if integration_type == IntegrationType.HUBSPOT:
        # HubSpot batches events into a list.
        first = body[0] if isinstance(body, list) and body else body
        if isinstance(first, dict):
            return str(first.get("subscriptionType") or first.get("event") or "unknown")
        return "unknown"

    if not isinstance(body, dict):
        return "unknown"

    if integration_type == IntegrationType.TRELLO:
        action = body.get("action")
        return str(action.get("type") or "unknown") if isinstance(action, dict) else "unknown"
    if integration_type == IntegrationType.BIGIN:
        return str(body.get("operation") or body.get("module") or "unknown")
    if integration_type in MICROSOFT_TYPES:
        first = first_notification(body)
        if first is not None:
            return f"{first.get('resource', '')}.{first.get('changeType', 'unknown')}"
    return str(body.get("event") or "unknown")


def extract_signature(
    request: Request,
    integration_type: IntegrationType,
    body: Any,
) -> str | None:
    if integration_type in MICROSOFT_TYPES:
        # Graph echoes the subscription's clientState instead of signing.
        first = first_notification(body)
        return first.get("clientState") if first is not None else None
    header = SIGNATURE_HEADERS.get(integration_type)
    return request.headers.get(header) if header else None


def callback_url(request: Request) -> str:
    """The public URL a provider delivered to."""
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{request.url.path}"
    return str(request.url)


async def get_webhook(db: AsyncSession, webhook_id: str) -> Webhook:
    result = await db.execute(select(Webhook).where(Webhook.id == webhook_id))
    webhook = result.scalar_one_or_none()
    if not webhook:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Webhook not found",
        )
    return webhook


@router.head("/{webhook_id}/receive")
async def verify_webhook_endpoint(
    webhook_id: str,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Trello probes the callback URL with HEAD before creating a webhook."""
    await get_webhook(db, webhook_id)
    return Response(status_code=status.HTTP_200_OK)


@router.post("/{webhook_id}/receive", response_model=WebhookResult)
async def receive_webhook(
    webhook_id: str,
    request: Request,
    validation_token: Annotated[str | None, Query(alias="validationToken")] = None,
    db: AsyncSession = Depends(get_db),
):
    """Accept a delivery from a provider."""
    webhook = await get_webhook(db, webhook_id)
    integration_type = IntegrationType(webhook.integration_type)

    if validation_token is not None and integration_type in MICROSOFT_TYPES:
        # Graph subscription handshake: echo the token as plain text.
        return PlainTextResponse(validation_token)

    if not webhook.is_active:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Webhook is inactive",
        )

    try:
        # UnicodeDecodeError is a ValueError too.
        raw = (await request.body()).decode("utf-8")
        body = json.loads(raw) if raw else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body must be JSON",
        )

    signature = extract_signature(request, integration_type, body)
    if webhook.secret and not signature:
        logger.warning("Rejected unsigned delivery for webhook %s", webhook.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook signature",
        )

    signed = raw
    if integration_type == IntegrationType.TRELLO:
        # Trello signs the body followed by the callback URL it posted to.
        signed = raw + callback_url(request)

    payload = WebhookPayload(
        integration_id=webhook.id,
        integration_type=integration_type,
        event=describe_event(integration_type, body),
        data=body,
        signature=signature,
        raw_body=signed,
    )

    # Dispatch with the owner's stored token so routed syncs can reach the provider.
    credential = await get_credential(db, webhook.created_by, integration_type)
    if credential is None:
        logger.warning(
            "No %s connection for webhook owner %s; syncs will fail",
            integration_type.value,
            webhook.created_by,
        )
        service = webhook_service
    else:
        service = WebhookService(
            connector_factory=lambda integration_type: connector_for(credential)
        )

    result = await service.process_webhook(payload, webhook)

    db.add(
        WebhookLog(
            webhook_id=webhook.id,
            event=payload.event,
            payload=body if body is not None else {},
            response=result.model_dump(),
            status="success" if result.success else "failed",
        )
    )
    await db.commit()

    if not result.success and result.message == "Invalid webhook signature":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.message,
        )
    return result


@router.post("", response_model=WebhookRead, status_code=status.HTTP_201_CREATED)
async def register_webhook(
    webhook_data: WebhookCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Webhook:
    """Register a webhook endpoint for an integration."""
    registration = await webhook_service.register_webhook(
        webhook_data.integration_type,
        webhook_data.url,
        webhook_data.events,
        webhook_data.secret,
    )
    if not registration.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=registration.message,
        )

    webhook = Webhook(
        id=registration.webhook_id,
        name=webhook_data.name,
        integration_type=webhook_data.integration_type.value,
        url=webhook_data.url,
        events=webhook_data.events,
        secret=registration.secret,
        created_by=user_id,
    )
    db.add(webhook)
    await db.commit()
    await db.refresh(webhook)

    return webhook


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unregister_webhook(
    webhook_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Deactivate a webhook."""
    webhook = await get_webhook(db, webhook_id)
    if webhook.created_by != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Webhook not found",
        )

    await webhook_service.unregister_webhook(IntegrationType(webhook.integration_type), webhook.id)
    webhook.is_active = False
    await db.commit()


@router.post("/test", response_model=WebhookResult)
async def test_webhook(
    test_data: WebhookTest,
    user_id: str = Depends(get_current_user_id),
) -> WebhookResult:
    """Send a test delivery to a callback URL."""
    return await webhook_service.test_webhook(test_data.url, test_data.integration_type)


@router.post("/retry", response_model=WebhookResult)
async def retry_webhook(
    retry_data: WebhookRetry,
    user_id: str = Depends(get_current_user_id),
) -> WebhookResult:
    """Re-send a payload to a callback URL."""
    return await webhook_service.retry_webhook(retry_data.url, retry_data.payload)


@router.get("/{webhook_id}/stats", response_model=WebhookStats)
async def get_webhook_stats(
    webhook_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> WebhookStats:
    await get_webhook(db, webhook_id)
    return await webhook_service.get_webhook_stats(webhook_id)
