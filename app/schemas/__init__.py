"""
Pydantic schemas package.
"""
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
from app.schemas.webhook import (
    WebhookCreate,
    WebhookPayload,
    WebhookRead,
    WebhookRegistration,
    WebhookResult,
    WebhookRetry,
    WebhookStats,
    WebhookTest,
)

__all__ = [
    "ConnectionStatus",
    "IntegrationCapabilities",
    "IntegrationCredentialRead",
    "IntegrationInfo",
    "IntegrationType",
    "OAuthURL",
    "SyncEntity",
    "SyncResultRead",
    "WebhookCreate",
    "WebhookPayload",
    "WebhookRead",
    "WebhookRegistration",
    "WebhookResult",
    "WebhookRetry",
    "WebhookStats",
    "WebhookTest",
]
