"""
Bigin by Zoho CRM integration.
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
    hmac_hex_matches,
)

settings = get_settings()

logger = logging.getLogger(__name__)


class BiginConnector(BaseConnector):
    """Bigin contacts, companies and pipelines."""

    provider = "bigin"

    SCOPES = ("ZohoBigin.modules.ALL", "ZohoBigin.settings.ALL")

    AUTH_URL = "https://accounts.zoho.com/oauth/v2/auth"
    TOKEN_URL = "https://accounts.zoho.com/oauth/v2/token"
    API_BASE = "https://www.zohoapis.com/bigin/v1"
    PAGE_SIZE = 200

    def __init__(
        self,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            OAuthConfig(
                client_id=settings.bigin_client_id,
                client_secret=settings.bigin_client_secret,
                redirect_uri=settings.bigin_redirect_uri,
                authorization_url=self.AUTH_URL,
                token_url=self.TOKEN_URL,
                scopes=self.SCOPES,
            ),
            token=token,
            client=client,
        )

    async def test_connection(self) -> bool:
        try:
            await self.make_request(
                f"{self.API_BASE}/Contacts",
                params={"per_page": 1},
            )
            return True
        except Exception as exc:
            logger.error("Bigin connection test failed: %s", exc)
            return False

    async def get_user_info(self) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/users",
            params={"type": "CurrentUser"},
        )

    async def sync_contacts(self) -> SyncResult:
        return await self._run_sync(lambda: self._get_all("Contacts"))

    async def sync_companies(self) -> SyncResult:
        return await self._run_sync(lambda: self._get_all("Companies"))

    async def sync_deals(self) -> SyncResult:
        # Bigin models deals as pipeline records.
        return await self._run_sync(lambda: self._get_all("Pipelines"))

    async def _get_all(self, module: str) -> list[dict[str, Any]]:
        """Request numbered pages until one comes back empty."""
        records: list[dict[str, Any]] = []
        page = 1

        while True:
            response = await self.make_request(
                f"{self.API_BASE}/{module}",
                params={"page": page, "per_page": self.PAGE_SIZE},
            )
            # Zoho answers 204 with no body past the last page.
            data = (response or {}).get("data") or []
            if not data:
                return records
            records.extend(data)
            page += 1

    async def _create(self, module: str, record: dict[str, Any]) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/{module}",
            "POST",
            json={"data": [record]},
        )

    async def _update(self, module: str, record_id: str, record: dict[str, Any]) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/{module}/{record_id}",
            "PUT",
            json={"data": [record]},
        )

    async def create_contact(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str | None = None,
        company: str | None = None,
    ) -> Any:
        record = {"First_Name": first_name, "Last_Name": last_name, "Email": email}
        if phone:
            record["Phone"] = phone
        if company:
            record["Company"] = company
        return await self._create("Contacts", record)

    async def update_contact(self, contact_id: str, fields: dict[str, Any]) -> Any:
        return await self._update("Contacts", contact_id, fields)

    async def create_company(self, company_name: str, industry: str | None = None) -> Any:
        record = {"Company_Name": company_name}
        if industry:
            record["Industry"] = industry
        return await self._create("Companies", record)

    async def update_company(self, company_id: str, fields: dict[str, Any]) -> Any:
        return await self._update("Companies", company_id, fields)

    async def create_pipeline(
        self,
        pipeline_name: str,
        amount: float | None = None,
        stage: str | None = None,
    ) -> Any:
        record: dict[str, Any] = {"Pipeline_Name": pipeline_name}
        if amount is not None:
            record["Amount"] = amount
        if stage:
            record["Stage"] = stage
        return await self._create("Pipelines", record)

    async def update_pipeline(self, pipeline_id: str, fields: dict[str, Any]) -> Any:
        return await self._update("Pipelines", pipeline_id, fields)

    def validate_webhook(self, payload: str | bytes, signature: str, secret: str) -> bool:
        """Zoho signs the raw body with hex HMAC-SHA256."""
        return hmac_hex_matches(payload, signature, secret)

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing Bigin webhook: %s", data.event)

        module = (data.data or {}).get("module")

        if module == "Contacts":
            await self.sync_contacts()
        elif module == "Companies":
            await self.sync_companies()
        elif module == "Pipelines":
            await self.sync_deals()
        else:
            logger.info("Unhandled Bigin module: %s", module)
