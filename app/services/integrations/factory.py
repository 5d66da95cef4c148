"""
Integration factory: resolves an integration type to a connector.
"""
import httpx

from app.schemas.integration import IntegrationCapabilities, IntegrationInfo, IntegrationType
from app.services.integrations.base import BaseConnector, IntegrationToken
from app.services.integrations.bigin import BiginConnector
from app.services.integrations.errors import UnknownIntegrationError
from app.services.integrations.hubspot import HubSpotConnector
from app.services.integrations.microsoft import (
    OneDriveConnector,
    OneNoteConnector,
    OutlookConnector,
    TeamsConnector,
)
from app.services.integrations.trello import TrelloConnector

CONNECTORS: dict[IntegrationType, type[BaseConnector]] = {
    IntegrationType.HUBSPOT: HubSpotConnector,
    IntegrationType.TRELLO: TrelloConnector,
    IntegrationType.BIGIN: BiginConnector,
    IntegrationType.ONEDRIVE: OneDriveConnector,
    IntegrationType.ONENOTE: OneNoteConnector,
    IntegrationType.OUTLOOK: OutlookConnector,
    IntegrationType.TEAMS: TeamsConnector,
}

AVAILABLE_INTEGRATIONS = [
    IntegrationInfo(
        type=IntegrationType.HUBSPOT,
        name="HubSpot",
        description="CRM and marketing automation platform",
        category="CRM",
        features=["Contacts", "Companies", "Deals", "Email Integration"],
    ),
    IntegrationInfo(
        type=IntegrationType.TRELLO,
        name="Trello",
        description="Project management and collaboration tool",
        category="Project Management",
        features=["Boards", "Lists", "Cards", "Checklists", "Comments"],
    ),
    IntegrationInfo(
        type=IntegrationType.BIGIN,
        name="Bigin by Zoho CRM",
        description="Simple CRM for small businesses",
        category="CRM",
        features=["Contacts", "Companies", "Pipelines", "Activities"],
    ),
    IntegrationInfo(
        type=IntegrationType.ONEDRIVE,
        name="Microsoft OneDrive",
        description="Cloud file storage and sharing",
        category="Storage",
        features=["File Storage", "File Sharing", "Document Sync"],
    ),
    IntegrationInfo(
        type=IntegrationType.ONENOTE,
        name="Microsoft OneNote",
        description="Digital note-taking application",
        category="Productivity",
        features=["Notes", "Notebooks", "Sections", "Pages"],
    ),
    IntegrationInfo(
        type=IntegrationType.OUTLOOK,
        name="Microsoft Outlook",
        description="Email and calendar management",
        category="Email",
        features=["Email Sync", "Calendar", "Contacts", "Send Emails"],
    ),
    IntegrationInfo(
        type=IntegrationType.TEAMS,
        name="Microsoft Teams",
        description="Team collaboration and messaging",
        category="Communication",
        features=["Teams", "Channels", "Messages", "Chat"],
    ),
]

CAPABILITIES: dict[IntegrationType, IntegrationCapabilities] = {
    IntegrationType.HUBSPOT: IntegrationCapabilities(
        supports_contacts=True,
        supports_companies=True,
        supports_deals=True,
        supports_email=True,
    ),
    IntegrationType.TRELLO: IntegrationCapabilities(supports_boards=True),
    IntegrationType.BIGIN: IntegrationCapabilities(
        supports_contacts=True,
        supports_companies=True,
        supports_deals=True,
    ),
    IntegrationType.ONEDRIVE: IntegrationCapabilities(supports_files=True),
    IntegrationType.ONENOTE: IntegrationCapabilities(supports_notes=True),
    IntegrationType.OUTLOOK: IntegrationCapabilities(
        supports_contacts=True,
        supports_email=True,
    ),
    IntegrationType.TEAMS: IntegrationCapabilities(supports_chat=True),
}


def _resolve(integration_type: IntegrationType | str) -> IntegrationType:
    try:
        return IntegrationType(integration_type)
    except ValueError:
        raise UnknownIntegrationError(getattr(integration_type, "value", integration_type)) from None


class IntegrationFactory:
    """Maps integration types to connector classes and static metadata."""

    @staticmethod
    def create_connector(
        integration_type: IntegrationType | str,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> BaseConnector:
        """
        Create a fresh connector for one logical operation.

        Raises:
            UnknownIntegrationError: the type is not a supported integration
        """
        connector_cls = CONNECTORS[_resolve(integration_type)]
        return connector_cls(token=token, client=client)

    @staticmethod
    def get_available_integrations() -> list[IntegrationInfo]:
        return list(AVAILABLE_INTEGRATIONS)

    @staticmethod
    def requires_oauth(integration_type: IntegrationType | str) -> bool:
        """Every supported integration connects through an OAuth-style flow."""
        _resolve(integration_type)
        return True

    @staticmethod
    def get_capabilities(integration_type: IntegrationType | str) -> IntegrationCapabilities:
        return CAPABILITIES[_resolve(integration_type)]

    @staticmethod
    def supported_types() -> list[IntegrationType]:
        return list(CONNECTORS)
