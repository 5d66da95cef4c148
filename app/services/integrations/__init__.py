"""
Integration connectors package.
"""
from app.services.integrations.base import (
    BaseConnector,
    IntegrationToken,
    OAuthConfig,
    SyncResult,
    TokenResponse,
    WebhookData,
)
from app.services.integrations.bigin import BiginConnector
from app.services.integrations.errors import (
    ApiRequestError,
    IntegrationError,
    TokenExchangeError,
    TokenMissingError,
    UnknownIntegrationError,
    UnsupportedOperationError,
)
from app.services.integrations.factory import IntegrationFactory
from app.services.integrations.hubspot import HubSpotConnector
from app.services.integrations.microsoft import (
    MicrosoftConnector,
    OneDriveConnector,
    OneNoteConnector,
    OutlookConnector,
    TeamsConnector,
)
from app.services.integrations.trello import TrelloConnector

__all__ = [
    "BaseConnector",
    "IntegrationToken",
    "OAuthConfig",
    "SyncResult",
    "TokenResponse",
    "WebhookData",
    "ApiRequestError",
    "IntegrationError",
    "TokenExchangeError",
    "TokenMissingError",
    "UnknownIntegrationError",
    "UnsupportedOperationError",
    "IntegrationFactory",
    "HubSpotConnector",
    "TrelloConnector",
    "BiginConnector",
    "MicrosoftConnector",
    "OneDriveConnector",
    "OneNoteConnector",
    "OutlookConnector",
    "TeamsConnector",
]
