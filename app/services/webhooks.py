"""
Webhook handling service.
"""
import json
import logging
import secrets
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from app.config import get_settings
from app.schemas.integration import IntegrationType
from app.schemas.webhook import (
    WebhookPayload,
    WebhookRegistration,
    WebhookResult,
    WebhookStats,
)
from app.services.integrations.base import BaseConnector, WebhookData
from app.services.integrations.factory import IntegrationFactory

settings = get_settings()

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[IntegrationType], BaseConnector]


class WebhookSecretHolder(Protocol):
    secret: str | None


def signed_body(payload: WebhookPayload) -> str:
    """Bytes the signature is checked against."""
    if payload.raw_body is not None:
        return payload.raw_body
    return json.dumps(payload.data, separators=(",", ":"), ensure_ascii=False)


class WebhookService:
    """
    Orchestrates inbound webhook deliveries.

    A delivery moves received -> signature checked -> dispatched to the
    connector -> automations triggered -> acknowledged. Failures end the
    flow for that delivery and are reported, never raised; nothing is
    retried or queued.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        connector_factory: ConnectorFactory | None = None,
    ):
        self._client = client
        self._connector_factory = connector_factory or IntegrationFactory.create_connector

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            yield client

    async def process_webhook(
        self,
        payload: WebhookPayload,
        webhook: WebhookSecretHolder,
    ) -> WebhookResult:
        """Validate, dispatch and acknowledge one delivery."""
        try:
            if payload.signature and webhook.secret:
                is_valid = self.validate_signature(
                    signed_body(payload),
                    payload.signature,
                    webhook.secret,
                    payload.integration_type,
                )
                if not is_valid:
                    return WebhookResult(success=False, message="Invalid webhook signature")

            connector = self._connector_factory(payload.integration_type)
            await connector.process_webhook(
                WebhookData(
                    event=payload.event,
                    data=payload.data,
                    timestamp=payload.timestamp,
                )
            )

            await self.trigger_automations(payload)

            return WebhookResult(success=True, message="Webhook processed successfully")
        except Exception as exc:
            logger.exception("Webhook processing failed")
            return WebhookResult(success=False, message=str(exc))

    def validate_signature(
        self,
        payload: str,
        signature: str,
        secret: str,
        integration_type: IntegrationType,
    ) -> bool:
        """Any error while validating counts as an invalid signature."""
        try:
            connector = self._connector_factory(integration_type)
            return connector.validate_webhook(payload, signature, secret)
        except Exception as exc:
            logger.error("Signature validation failed: %s", exc)
            return False

    async def trigger_automations(self, payload: WebhookPayload) -> None:
        """Hook for automation rules matching the event; only logs for now."""
        logger.info(
            "Checking for automation rules triggered by %s (%s)",
            payload.event,
            payload.integration_type.value,
        )

    async def register_webhook(
        self,
        integration_type: IntegrationType,
        callback_url: str,
        events: list[str],
        secret: str | None = None,
    ) -> WebhookRegistration:
        """Allocate an id and secret for a new subscription."""
        try:
            IntegrationFactory.get_capabilities(integration_type)
            logger.info(
                "Registering webhook for %s at %s (events: %s)",
                integration_type,
                callback_url,
                ", ".join(events) or "all",
            )
            return WebhookRegistration(
                success=True,
                message="Webhook registered successfully",
                webhook_id=str(uuid.uuid4()),
                secret=secret or secrets.token_hex(32),
            )
        except Exception as exc:
            logger.error("Webhook registration failed: %s", exc)
            return WebhookRegistration(success=False, message=str(exc))

    async def unregister_webhook(
        self,
        integration_type: IntegrationType,
        webhook_id: str,
    ) -> WebhookResult:
        logger.info("Unregistering webhook %s for %s", webhook_id, integration_type)
        return WebhookResult(success=True, message="Webhook unregistered successfully")

    async def test_webhook(
        self,
        webhook_url: str,
        integration_type: IntegrationType,
    ) -> WebhookResult:
        """Send a single test event to ``webhook_url``."""
        test_payload = {
            "event": "test",
            "data": {
                "message": f"This is a test webhook from {settings.app_name}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
        headers = {
            f"{settings.webhook_header_prefix}-Event": "test",
            f"{settings.webhook_header_prefix}-Integration": IntegrationType(integration_type).value,
        }
        return await self._deliver(webhook_url, test_payload, headers, "Webhook test")

    async def retry_webhook(self, webhook_url: str, payload: dict[str, Any]) -> WebhookResult:
        """Re-send a payload once."""
        return await self._deliver(webhook_url, payload, {}, "Webhook retry")

    async def _deliver(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        label: str,
    ) -> WebhookResult:
        try:
            async with self._http() as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("%s failed: %s", label, exc)
            return WebhookResult(success=False, message=str(exc) or exc.__class__.__name__)

        if not response.is_success:
            message = f"{label} failed: {response.reason_phrase}"
            logger.error(message)
            return WebhookResult(success=False, message=message)

        return WebhookResult(success=True, message=f"{label} successful")

    async def get_webhook_stats(self, webhook_id: str) -> WebhookStats:
        """Delivery statistics are not tracked yet; always zero."""
        return WebhookStats()


webhook_service = WebhookService()
