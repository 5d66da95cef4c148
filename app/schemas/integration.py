"""
Integration-related Pydantic schemas.
"""
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict


class IntegrationType(str, Enum):
    """Supported integration providers."""
    HUBSPOT = "hubspot"
    TRELLO = "trello"
    BIGIN = "bigin"
    ONEDRIVE = "onedrive"
    ONENOTE = "onenote"
    OUTLOOK = "outlook"
    TEAMS = "teams"


class SyncEntity(str, Enum):
    """Entities a sync request can target."""
    CONTACTS = "contacts"
    COMPANIES = "companies"
    DEALS = "deals"
    BOARDS = "boards"
    FILES = "files"
    NOTES = "notes"
    EMAILS = "emails"
    TEAMS = "teams"


class IntegrationInfo(BaseModel):
    """Descriptive metadata shown in the integrations catalogue."""
    type: IntegrationType
    name: str
    description: str
    category: str
    features: list[str]


class IntegrationCapabilities(BaseModel):
    """Which entity families an integration can work with."""
    supports_contacts: bool = False
    supports_companies: bool = False
    supports_deals: bool = False
    supports_boards: bool = False
    supports_files: bool = False
    supports_notes: bool = False
    supports_email: bool = False
    supports_chat: bool = False


class IntegrationCredentialRead(BaseModel):
    """Schema for reading a stored connection (tokens are never returned)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    integration_type: IntegrationType
    scope: str | None = None
    token_expires_at: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class OAuthURL(BaseModel):
    """OAuth authorization URL response."""
    auth_url: str
    state: str


class SyncResultRead(BaseModel):
    """Sync outcome returned to API clients."""
    model_config = ConfigDict(from_attributes=True)

    success: bool
    items_synced: int
    errors: list[str] | None = None


class ConnectionStatus(BaseModel):
    """Result of a connection test."""
    integration_type: IntegrationType
    connected: bool
