"""
Trello integration.
"""
import logging
from typing import Any

import httpx

from app.config import get_settings
from app.services.integrations.base import (
    BaseConnector,
    IntegrationToken,
    OAuthConfig,
    SyncResult,
    WebhookData,
    hmac_base64_matches,
)
from app.services.integrations.errors import TokenMissingError

settings = get_settings()

logger = logging.getLogger(__name__)

BOARD_ACTIONS = {
    "createCard",
    "updateCard",
    "deleteCard",
    "createBoard",
    "updateBoard",
}


class TrelloConnector(BaseConnector):
    """
    Trello boards, lists and cards.

    Trello authenticates with ``key`` and ``token`` query parameters rather
    than a bearer header, and returns whole collections without paging.
    """

    provider = "trello"
    request_error_prefix = "Trello API request failed"

    SCOPES = ("read", "write")

    AUTH_URL = "https://trello.com/1/authorize"
    TOKEN_URL = "https://trello.com/1/OAuthGetAccessToken"
    API_BASE = "https://api.trello.com/1"

    def __init__(
        self,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            OAuthConfig(
                client_id=settings.trello_api_key,
                client_secret=settings.trello_api_secret,
                redirect_uri=settings.trello_redirect_uri,
                authorization_url=self.AUTH_URL,
                token_url=self.TOKEN_URL,
                scopes=self.SCOPES,
            ),
            token=token,
            client=client,
        )
        self.api_key = settings.trello_api_key

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
        if self.token is None:
            raise TokenMissingError()

        query = {"key": self.api_key, "token": self.token.access_token}
        query.update({k: v for k, v in (params or {}).items() if v is not None})

        return await self._send(
            method,
            url,
            headers={"Content-Type": "application/json", **(headers or {})},
            json=json,
            content=content,
            params=query,
        )

    async def test_connection(self) -> bool:
        try:
            await self.get_user_info()
            return True
        except Exception as exc:
            logger.error("Trello connection test failed: %s", exc)
            return False

    async def get_user_info(self) -> Any:
        return await self.make_request(f"{self.API_BASE}/members/me")

    async def sync_contacts(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def sync_companies(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def sync_deals(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def sync_boards(self) -> SyncResult:
        return await self._run_sync(self.get_all_boards)

    async def get_all_boards(self) -> list[dict[str, Any]]:
        return await self.make_request(f"{self.API_BASE}/members/me/boards")

    async def get_board(self, board_id: str) -> Any:
        return await self.make_request(f"{self.API_BASE}/boards/{board_id}")

    async def get_board_lists(self, board_id: str) -> list[dict[str, Any]]:
        return await self.make_request(f"{self.API_BASE}/boards/{board_id}/lists")

    async def get_list_cards(self, list_id: str) -> list[dict[str, Any]]:
        return await self.make_request(f"{self.API_BASE}/lists/{list_id}/cards")

    async def create_board(self, name: str, description: str | None = None) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/boards",
            "POST",
            params={"name": name, "desc": description},
        )

    async def create_list(self, board_id: str, name: str) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/lists",
            "POST",
            params={"name": name, "idBoard": board_id},
        )

    async def create_card(self, list_id: str, name: str, description: str | None = None) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/cards",
            "POST",
            params={"idList": list_id, "name": name, "desc": description},
        )

    async def update_card(
        self,
        card_id: str,
        name: str | None = None,
        desc: str | None = None,
        id_list: str | None = None,
        due: str | None = None,
    ) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/cards/{card_id}",
            "PUT",
            params={"name": name, "desc": desc, "idList": id_list, "due": due},
        )

    async def delete_card(self, card_id: str) -> None:
        await self.make_request(f"{self.API_BASE}/cards/{card_id}", "DELETE")

    async def add_comment(self, card_id: str, text: str) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/cards/{card_id}/actions/comments",
            "POST",
            params={"text": text},
        )

    async def create_webhook(self, callback_url: str, id_model: str) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/webhooks",
            "POST",
            params={"callbackURL": callback_url, "idModel": id_model},
        )

    async def delete_webhook(self, webhook_id: str) -> None:
        await self.make_request(f"{self.API_BASE}/webhooks/{webhook_id}", "DELETE")

    def validate_webhook(self, payload: str | bytes, signature: str, secret: str) -> bool:
        """Trello signs with base64 HMAC-SHA1."""
        return hmac_base64_matches(payload, signature, secret)

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing Trello webhook: %s", data.event)

        action = data.data.get("action") if isinstance(data.data, dict) else None
        action_type = action.get("type") if isinstance(action, dict) else None

        if action_type in BOARD_ACTIONS:
            await self.sync_boards()
        else:
            logger.info("Unhandled Trello action: %s", action_type)
