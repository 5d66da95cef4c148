"""
Webhook-related Pydantic schemas.
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.integration import IntegrationType


class WebhookPayload(BaseModel):
    """Inbound webhook as handed to the webhook service."""
    integration_id: str | None = None
    integration_type: IntegrationType
    event: str
    data: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    signature: str | None = None
    # Exact bytes the provider signed; falls back to compact JSON of ``data``.
    raw_body: str | None = None


class WebhookResult(BaseModel):
    """Outcome of handling one webhook delivery."""
    success: bool
    message: str


class WebhookCreate(BaseModel):
    """Schema for registering a webhook."""
    name: str
    integration_type: IntegrationType
    url: str
    events: list[str] = []
    secret: str | None = None


class WebhookRegistration(BaseModel):
    """Result of registering a webhook."""
    success: bool
    message: str
    webhook_id: str | None = None
    secret: str | None = None


class WebhookRead(BaseModel):
    """Schema for reading a webhook (the secret is never returned)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    integration_type: IntegrationType
    url: str
    events: list[str]
    is_active: bool
    created_at: datetime


class WebhookTest(BaseModel):
    """Request to send a test delivery."""
    url: str
    integration_type: IntegrationType


class WebhookRetry(BaseModel):
    """Request to re-send a payload."""
    url: str
    payload: dict[str, Any]


class WebhookStats(BaseModel):
    """Delivery statistics for one webhook."""
    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    last_delivery: datetime | None = None
    average_response_time: float | None = None
