"""
Tests for the OAuth flow and authenticated requests shared by all connectors.
"""
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.schemas.integration import IntegrationType
from app.services.integrations import (
    ApiRequestError,
    IntegrationFactory,
    IntegrationToken,
    TokenExchangeError,
    TokenMissingError,
)
from app.services.integrations.hubspot import HubSpotConnector
from app.services.integrations.trello import TrelloConnector

ALL_TYPES = list(IntegrationType)


@pytest.mark.parametrize("integration_type", ALL_TYPES)
def test_authorization_url_round_trips(integration_type):
    """Parsing the authorization URL yields back what the connector was configured with."""
    connector = IntegrationFactory.create_connector(integration_type)
    state = "nonce with spaces & symbols=/?"

    url = connector.get_authorization_url(state)
    parsed = urlparse(url)
    query = {key: values[0] for key, values in parse_qs(parsed.query).items()}

    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == connector.config.authorization_url
    assert query["client_id"] == connector.config.client_id
    assert query["redirect_uri"] == connector.config.redirect_uri
    assert query["response_type"] == "code"
    assert query["scope"] == " ".join(connector.config.scopes)
    assert query["state"] == state


def test_authorization_url_uses_configured_client_id():
    connector = HubSpotConnector()
    query = parse_qs(urlparse(connector.get_authorization_url("s")).query)

    assert query["client_id"] == ["hubspot-client"]
    assert "crm.objects.deals.write" in query["scope"][0].split(" ")


@pytest.mark.asyncio
@pytest.mark.parametrize("integration_type", ALL_TYPES)
async def test_make_request_without_token_fails(integration_type, mock_http):
    """No request leaves the process before a token is set."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    connector = IntegrationFactory.create_connector(integration_type, client=mock_http(handler))

    with pytest.raises(TokenMissingError, match="No token set for API request"):
        await connector.make_request("https://example.com/anything")
    assert calls == []


@pytest.mark.asyncio
async def test_make_request_sends_bearer_token(mock_http, token):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers["Authorization"]
        seen["content_type"] = request.headers["Content-Type"]
        return httpx.Response(200, json={"ok": True})

    connector = HubSpotConnector(client=mock_http(handler))
    connector.set_token(token)

    assert await connector.make_request("https://api.hubapi.com/ping") == {"ok": True}
    assert seen["authorization"] == "Bearer access-abc"
    assert seen["content_type"] == "application/json"


@pytest.mark.asyncio
async def test_make_request_raises_with_provider_body(mock_http, token):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="missing scopes")

    connector = HubSpotConnector(token=token, client=mock_http(handler))

    with pytest.raises(ApiRequestError) as exc_info:
        await connector.make_request("https://api.hubapi.com/crm/v3/objects/contacts")

    assert str(exc_info.value) == "API request failed: missing scopes"
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_make_request_returns_none_for_empty_body(mock_http, token):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    connector = HubSpotConnector(token=token, client=mock_http(handler))

    assert await connector.make_request("https://api.hubapi.com/x", "DELETE") is None


@pytest.mark.asyncio
async def test_with_token_leaves_original_untouched(token):
    connector = HubSpotConnector()
    bound = connector.with_token(token)

    assert bound.token is token
    assert connector.token is None
    assert isinstance(bound, HubSpotConnector)


@pytest.mark.asyncio
async def test_exchange_code_for_token(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["content_type"] = request.headers["Content-Type"]
        seen["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        return httpx.Response(
            200,
            json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_in": 1800,
                "scope": "crm.objects.contacts.read",
            },
        )

    connector = HubSpotConnector(client=mock_http(handler))
    tokens = await connector.exchange_code_for_token("auth-code")

    assert seen["url"] == HubSpotConnector.TOKEN_URL
    assert seen["content_type"] == "application/x-www-form-urlencoded"
    assert seen["form"]["grant_type"] == "authorization_code"
    assert seen["form"]["code"] == "auth-code"
    assert seen["form"]["client_id"] == "hubspot-client"
    assert seen["form"]["client_secret"] == "hubspot-secret"
    assert seen["form"]["redirect_uri"] == connector.config.redirect_uri

    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "new-refresh"
    assert tokens.expires_in == 1800
    assert tokens.scope == "crm.objects.contacts.read"
    # Exchanging does not bind the token.
    assert connector.token is None


@pytest.mark.asyncio
async def test_exchange_code_failure_carries_provider_body(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text='{"error":"invalid_grant"}')

    connector = HubSpotConnector(client=mock_http(handler))

    with pytest.raises(TokenExchangeError, match='Token exchange failed: {"error":"invalid_grant"}'):
        await connector.exchange_code_for_token("bad-code")


@pytest.mark.asyncio
async def test_refresh_access_token(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        return httpx.Response(200, json={"access_token": "rotated", "expires_in": 3600})

    connector = IntegrationFactory.create_connector("outlook", client=mock_http(handler))
    tokens = await connector.refresh_access_token("refresh-xyz")

    assert seen["form"]["grant_type"] == "refresh_token"
    assert seen["form"]["refresh_token"] == "refresh-xyz"
    assert seen["form"]["client_id"] == "microsoft-client"
    assert tokens.access_token == "rotated"
    assert tokens.refresh_token is None

    token = tokens.to_token(fallback_refresh_token="refresh-xyz")
    assert token.refresh_token == "refresh-xyz"
    assert token.expires_at is not None
    assert not token.is_expired()


@pytest.mark.asyncio
async def test_refresh_failure_raises(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="revoked")

    connector = IntegrationFactory.create_connector("bigin", client=mock_http(handler))

    with pytest.raises(TokenExchangeError, match="Token refresh failed: revoked"):
        await connector.refresh_access_token("stale")


@pytest.mark.asyncio
async def test_trello_authenticates_with_query_parameters(mock_http, token):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"id": "card-1"})

    connector = TrelloConnector(token=token, client=mock_http(handler))
    await connector.create_card("list-9", "Ship it")

    assert seen["params"] == {
        "key": "trello-key",
        "token": "access-abc",
        "idList": "list-9",
        "name": "Ship it",
    }
    assert seen["authorization"] is None


@pytest.mark.asyncio
async def test_trello_error_prefix(mock_http, token):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="invalid token")

    connector = TrelloConnector(token=token, client=mock_http(handler))

    with pytest.raises(ApiRequestError, match="Trello API request failed: invalid token"):
        await connector.get_user_info()


@pytest.mark.asyncio
async def test_test_connection_reports_failure_as_false(mock_http, token):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="down")

    for integration_type in ALL_TYPES:
        connector = IntegrationFactory.create_connector(
            integration_type, token=token, client=mock_http(handler)
        )
        assert await connector.test_connection() is False


@pytest.mark.asyncio
async def test_test_connection_success(mock_http, token):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "me"})

    connector = IntegrationFactory.create_connector("teams", token=token, client=mock_http(handler))

    assert await connector.test_connection() is True


@pytest.mark.asyncio
async def test_hubspot_create_contact_body(mock_http, token):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "501"})

    connector = HubSpotConnector(token=token, client=mock_http(handler))
    created = await connector.create_contact("Ada", "Lovelace", "ada@example.com", phone="555")

    assert created == {"id": "501"}
    assert seen["method"] == "POST"
    assert seen["path"] == "/crm/v3/objects/contacts"
    assert seen["body"] == {
        "properties": {
            "firstname": "Ada",
            "lastname": "Lovelace",
            "email": "ada@example.com",
            "phone": "555",
        }
    }


@pytest.mark.asyncio
async def test_bigin_update_pipeline_wraps_record(mock_http, token):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"code": "SUCCESS"}]})

    connector = IntegrationFactory.create_connector("bigin", token=token, client=mock_http(handler))
    await connector.update_pipeline("77", {"Stage": "Won"})

    assert seen["method"] == "PUT"
    assert seen["path"] == "/bigin/v1/Pipelines/77"
    assert seen["body"] == {"data": [{"Stage": "Won"}]}


@pytest.mark.asyncio
async def test_hubspot_webhook_setup_is_unsupported():
    from app.services.integrations import UnsupportedOperationError

    with pytest.raises(UnsupportedOperationError):
        await HubSpotConnector().setup_webhook("https://example.com/hook", ["contact.creation"])


def test_token_without_expiry_never_expires():
    assert IntegrationToken(access_token="x").is_expired() is False
