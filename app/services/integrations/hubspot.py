"""
HubSpot CRM integration.
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
from app.services.integrations.errors import UnsupportedOperationError

settings = get_settings()

logger = logging.getLogger(__name__)


class HubSpotConnector(BaseConnector):
    """HubSpot contacts, companies and deals."""

    provider = "hubspot"

    SCOPES = (
        "crm.objects.contacts.read",
        "crm.objects.contacts.write",
        "crm.objects.companies.read",
        "crm.objects.companies.write",
        "crm.objects.deals.read",
        "crm.objects.deals.write",
    )

    AUTH_URL = "https://app.hubspot.com/oauth/authorize"
    TOKEN_URL = "https://api.hubapi.com/oauth/v1/token"
    API_BASE = "https://api.hubapi.com"
    PAGE_SIZE = 100

    def __init__(
        self,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            OAuthConfig(
                client_id=settings.hubspot_client_id,
                client_secret=settings.hubspot_client_secret,
                redirect_uri=settings.hubspot_redirect_uri,
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
                f"{self.API_BASE}/crm/v3/objects/contacts",
                params={"limit": 1},
            )
            return True
        except Exception as exc:
            logger.error("HubSpot connection test failed: %s", exc)
            return False

    async def get_user_info(self) -> Any:
        access_token = self.token.access_token if self.token else ""
        return await self.make_request(
            f"{self.API_BASE}/oauth/v1/access-tokens/{access_token}"
        )

    async def sync_contacts(self) -> SyncResult:
        return await self._run_sync(lambda: self._get_all("contacts"))

    async def sync_companies(self) -> SyncResult:
        return await self._run_sync(lambda: self._get_all("companies"))

    async def sync_deals(self) -> SyncResult:
        return await self._run_sync(lambda: self._get_all("deals"))

    async def _get_all(self, object_type: str) -> list[dict[str, Any]]:
        """Follow paging.next.after cursors until the last page."""
        records: list[dict[str, Any]] = []
        after: str | None = None

        while True:
            params: dict[str, Any] = {"limit": self.PAGE_SIZE}
            if after:
                params["after"] = after

            response = await self.make_request(
                f"{self.API_BASE}/crm/v3/objects/{object_type}",
                params=params,
            )
            records.extend(response.get("results", []))

            after = ((response.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return records

    async def _create(self, object_type: str, properties: dict[str, Any]) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/crm/v3/objects/{object_type}",
            "POST",
            json={"properties": properties},
        )

    async def _update(self, object_type: str, object_id: str, properties: dict[str, Any]) -> Any:
        return await self.make_request(
            f"{self.API_BASE}/crm/v3/objects/{object_type}/{object_id}",
            "PATCH",
            json={"properties": properties},
        )

    async def create_contact(
        self,
        firstname: str,
        lastname: str,
        email: str,
        phone: str | None = None,
        company: str | None = None,
    ) -> Any:
        properties = {"firstname": firstname, "lastname": lastname, "email": email}
        if phone:
            properties["phone"] = phone
        if company:
            properties["company"] = company
        return await self._create("contacts", properties)

    async def update_contact(self, contact_id: str, properties: dict[str, Any]) -> Any:
        return await self._update("contacts", contact_id, properties)

    async def create_company(
        self,
        name: str,
        domain: str | None = None,
        industry: str | None = None,
    ) -> Any:
        properties = {"name": name}
        if domain:
            properties["domain"] = domain
        if industry:
            properties["industry"] = industry
        return await self._create("companies", properties)

    async def update_company(self, company_id: str, properties: dict[str, Any]) -> Any:
        return await self._update("companies", company_id, properties)

    async def create_deal(
        self,
        dealname: str,
        amount: float,
        dealstage: str,
        pipeline: str | None = None,
    ) -> Any:
        properties: dict[str, Any] = {
            "dealname": dealname,
            "amount": amount,
            "dealstage": dealstage,
        }
        if pipeline:
            properties["pipeline"] = pipeline
        return await self._create("deals", properties)

    async def update_deal(self, deal_id: str, properties: dict[str, Any]) -> Any:
        return await self._update("deals", deal_id, properties)

    def validate_webhook(self, payload: str | bytes, signature: str, secret: str) -> bool:
        """HubSpot signs the raw body with hex HMAC-SHA256."""
        return hmac_hex_matches(payload, signature, secret)

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing HubSpot webhook: %s", data.event)

        if data.event in ("contact.creation", "contact.propertyChange"):
            await self.sync_contacts()
        elif data.event in ("company.creation", "company.propertyChange"):
            await self.sync_companies()
        elif data.event in ("deal.creation", "deal.propertyChange"):
            await self.sync_deals()
        else:
            logger.info("Unhandled HubSpot webhook event: %s", data.event)

    async def setup_webhook(self, webhook_url: str, events: list[str]) -> Any:
        """HubSpot subscriptions are managed in the developer app settings."""
        raise UnsupportedOperationError(
            "HubSpot webhook setup must be done through the HubSpot app settings"
        )
