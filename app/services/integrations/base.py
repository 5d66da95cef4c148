"""
Base connector interface.
"""
import base64
import copy
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from app.config import get_settings
from app.services.integrations.errors import (
    ApiRequestError,
    TokenExchangeError,
    TokenMissingError,
)

settings = get_settings()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthConfig:
    """Static OAuth2 settings for one provider."""
    client_id: str
    client_secret: str
    redirect_uri: str
    authorization_url: str
    token_url: str
    scopes: tuple[str, ...] = ()


@dataclass
class IntegrationToken:
    """Credentials a connector uses for authenticated calls."""
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None

    def is_expired(self, leeway: timedelta = timedelta(minutes=5)) -> bool:
        """Tokens without an expiry never expire."""
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(timezone.utc) + leeway


@dataclass
class TokenResponse:
    """OAuth token response."""
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "TokenResponse":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
        )

    def to_token(self, fallback_refresh_token: str | None = None) -> IntegrationToken:
        """Build an IntegrationToken, resolving expires_in against now."""
        expires_at = None
        if self.expires_in:
            expires_at = datetime.now(timezone.utc).replace(
                microsecond=0
            ) + timedelta(seconds=int(self.expires_in))

        return IntegrationToken(
            access_token=self.access_token,
            refresh_token=self.refresh_token or fallback_refresh_token,
            expires_at=expires_at,
            scope=self.scope,
        )


@dataclass
class SyncResult:
    """Outcome of a sync operation."""
    success: bool
    items_synced: int
    errors: list[str] | None = field(default=None)

    @classmethod
    def ok(cls, items_synced: int) -> "SyncResult":
        return cls(success=True, items_synced=items_synced)

    @classmethod
    def not_applicable(cls) -> "SyncResult":
        """The provider has no such entity; reported as an empty success."""
        return cls.ok(0)

    @classmethod
    def failed(cls, message: str) -> "SyncResult":
        return cls(success=False, items_synced=0, errors=[message])


@dataclass
class WebhookData:
    """Inbound webhook handed to a connector."""
    event: str
    data: Any
    timestamp: datetime


def to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def hmac_hex_matches(payload: str | bytes, signature: str, secret: str) -> bool:
    """Compare a hex HMAC-SHA256 signature in constant time."""
    expected = hmac.new(to_bytes(secret), to_bytes(payload), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), to_bytes(signature))


def hmac_base64_matches(payload: str | bytes, signature: str, secret: str) -> bool:
    """Compare a base64 HMAC-SHA1 signature in constant time."""
    digest = hmac.new(to_bytes(secret), to_bytes(payload), hashlib.sha1).digest()
    expected = base64.b64encode(digest)
    return hmac.compare_digest(expected, to_bytes(signature))


class BaseConnector(ABC):
    """
    Abstract base class for all provider connectors.

    Owns the OAuth2 authorization-code flow and an authenticated request
    primitive. Subclasses supply sync, webhook and identity operations.

    A connector holds at most one token in memory and never persists it;
    storing credentials between requests is the caller's job.
    """

    provider: str = ""
    request_error_prefix: str = "API request failed"

    def __init__(
        self,
        config: OAuthConfig,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.token = token
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        # Injected clients belong to the caller and are left open.
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            yield client

    # OAuth

    def get_authorization_url(self, state: str) -> str:
        """
        Build the provider's OAuth authorization URL.

        Args:
            state: Caller-supplied CSRF nonce, passed through verbatim

        Returns:
            URL to redirect the user to
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        return f"{self.config.authorization_url}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        The result is not stored on the connector; call set_token and
        persist it as needed.
        """
        data = await self._post_token_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
            },
            "Token exchange failed",
        )
        return TokenResponse.from_payload(data)

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh an expired access token. Never called automatically."""
        data = await self._post_token_form(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            "Token refresh failed",
        )
        return TokenResponse.from_payload(data)

    async def _post_token_form(self, form: dict[str, str], failure: str) -> dict[str, Any]:
        async with self._http() as client:
            response = await client.post(
                self.config.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        if not response.is_success:
            raise TokenExchangeError(
                f"{failure}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.json()

    # Token handling

    def set_token(self, token: IntegrationToken) -> None:
        """Replace the token used by subsequent requests."""
        self.token = token

    def with_token(self, token: IntegrationToken) -> "BaseConnector":
        """Return a copy of this connector bound to ``token``."""
        clone = copy.copy(self)
        clone.token = token
        return clone

    # Requests

    async def make_request(
        self,
        url: str,
        method: str = "GET",
        *,
        json: Any = None,
        content: bytes | str | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Perform an authenticated request and return the decoded JSON body.

        Raises:
            TokenMissingError: no token has been set
            ApiRequestError: the provider answered with a non-2xx status
        """
        if self.token is None:
            raise TokenMissingError()

        request_headers = {
            "Content-Type": "application/json",
            **(headers or {}),
            "Authorization": f"Bearer {self.token.access_token}",
        }
        return await self._send(
            method,
            url,
            headers=request_headers,
            json=json,
            content=content,
            params=params,
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any = None,
        content: bytes | str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        async with self._http() as client:
            response = await client.request(
                method,
                url,
                headers=headers,
                json=json,
                content=content,
                params=params,
            )

        if not response.is_success:
            raise ApiRequestError(
                f"{self.request_error_prefix}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None
        return response.json()

    async def _run_sync(self, fetch: Callable[[], Awaitable[list[Any]]]) -> SyncResult:
        """Run a full fetch and report it as a SyncResult; never raises."""
        try:
            items = await fetch()
        except Exception as exc:
            logger.warning("%s sync failed: %s", self.provider, exc)
            return SyncResult.failed(str(exc) or exc.__class__.__name__)
        return SyncResult.ok(len(items))

    # Provider contract

    @abstractmethod
    def validate_webhook(self, payload: str | bytes, signature: str, secret: str) -> bool:
        """
        Check an inbound webhook signature.

        Args:
            payload: Raw request body the signature was computed over
            signature: Signature supplied by the provider
            secret: Shared webhook secret

        Returns:
            True when the signature is valid
        """

    @abstractmethod
    async def process_webhook(self, data: WebhookData) -> None:
        """Route a webhook event to the matching sync."""

    @abstractmethod
    async def sync_contacts(self) -> SyncResult:
        """Sync contacts from the provider."""

    @abstractmethod
    async def sync_companies(self) -> SyncResult:
        """Sync companies from the provider."""

    @abstractmethod
    async def sync_deals(self) -> SyncResult:
        """Sync deals from the provider."""

    @abstractmethod
    async def test_connection(self) -> bool:
        """Return True if the stored token can reach the provider."""

    @abstractmethod
    async def get_user_info(self) -> Any:
        """Fetch the provider's view of the connected account."""
