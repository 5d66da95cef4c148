"""
Application configuration using Pydantic Settings.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "TradeFlow"
    debug: bool = False
    # Externally visible origin, used to rebuild signed callback URLs behind a proxy
    public_base_url: str = ""

    # CORS
    cors_origins: list[str] = ["http://localhost:5000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./tradeflow.db"

    # Outbound HTTP
    http_timeout: float = 30.0

    # OAuth state
    oauth_state_ttl_seconds: int = 600

    # HubSpot OAuth
    hubspot_client_id: str = ""
    hubspot_client_secret: str = ""
    hubspot_redirect_uri: str = "http://localhost:5000/api/v1/integrations/hubspot/callback"

    # Bigin (Zoho) OAuth
    bigin_client_id: str = ""
    bigin_client_secret: str = ""
    bigin_redirect_uri: str = "http://localhost:5000/api/v1/integrations/bigin/callback"

    # Trello key + token
    trello_api_key: str = ""
    trello_api_secret: str = ""
    trello_redirect_uri: str = "http://localhost:5000/api/v1/integrations/trello/callback"

    # Microsoft Graph OAuth (OneDrive, OneNote, Outlook, Teams)
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = "http://localhost:5000/api/v1/integrations/microsoft/callback"

    # Webhooks
    webhook_header_prefix: str = "X-TradeFlow"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
