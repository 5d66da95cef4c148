"""
Tests for the integration factory.
"""
import pytest

from app.schemas.integration import IntegrationType
from app.services.integrations import (
    BaseConnector,
    IntegrationFactory,
    OneDriveConnector,
    UnknownIntegrationError,
)
from app.services.integrations.hubspot import HubSpotConnector

REQUIRED_OPERATIONS = (
    "get_authorization_url",
    "exchange_code_for_token",
    "refresh_access_token",
    "set_token",
    "make_request",
    "validate_webhook",
    "process_webhook",
    "sync_contacts",
    "sync_companies",
    "sync_deals",
    "test_connection",
    "get_user_info",
)


@pytest.mark.parametrize("integration_type", list(IntegrationType))
def test_every_type_builds_a_full_connector(integration_type):
    connector = IntegrationFactory.create_connector(integration_type)

    assert isinstance(connector, BaseConnector)
    assert connector.provider == integration_type.value
    assert connector.token is None
    for name in REQUIRED_OPERATIONS:
        assert callable(getattr(connector, name)), name


def test_accepts_plain_strings():
    assert isinstance(IntegrationFactory.create_connector("hubspot"), HubSpotConnector)
    assert isinstance(IntegrationFactory.create_connector("onedrive"), OneDriveConnector)


def test_each_call_returns_a_fresh_connector(token):
    first = IntegrationFactory.create_connector("hubspot", token=token)
    second = IntegrationFactory.create_connector("hubspot")

    assert first is not second
    assert first.token is token
    assert second.token is None


def test_unknown_type_raises():
    with pytest.raises(UnknownIntegrationError, match="Unknown integration type: not-a-real-type"):
        IntegrationFactory.create_connector("not-a-real-type")


def test_unknown_type_is_a_value_error():
    with pytest.raises(ValueError):
        IntegrationFactory.get_capabilities("salesforce")


def test_available_integrations_cover_every_type():
    available = IntegrationFactory.get_available_integrations()

    assert [info.type for info in available] == list(IntegrationType)
    hubspot = available[0]
    assert hubspot.name == "HubSpot"
    assert hubspot.category == "CRM"
    assert "Deals" in hubspot.features


def test_available_integrations_is_a_copy():
    IntegrationFactory.get_available_integrations().clear()

    assert len(IntegrationFactory.get_available_integrations()) == len(IntegrationType)


@pytest.mark.parametrize("integration_type", list(IntegrationType))
def test_every_type_requires_oauth(integration_type):
    assert IntegrationFactory.requires_oauth(integration_type) is True


def test_capabilities():
    hubspot = IntegrationFactory.get_capabilities("hubspot")
    assert hubspot.supports_contacts and hubspot.supports_companies and hubspot.supports_deals
    assert hubspot.supports_email
    assert not hubspot.supports_files

    trello = IntegrationFactory.get_capabilities(IntegrationType.TRELLO)
    assert trello.supports_boards
    assert not trello.supports_contacts

    assert IntegrationFactory.get_capabilities("onedrive").supports_files
    assert IntegrationFactory.get_capabilities("onenote").supports_notes
    assert IntegrationFactory.get_capabilities("teams").supports_chat

    outlook = IntegrationFactory.get_capabilities("outlook")
    assert outlook.supports_contacts and outlook.supports_email
    assert not outlook.supports_deals


def test_supported_types():
    assert set(IntegrationFactory.supported_types()) == set(IntegrationType)
