"""
Microsoft 365 integrations (OneDrive, OneNote, Outlook, Teams) over Microsoft Graph.
"""
import hmac
import html
import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from app.config import get_settings
from app.services.integrations.base import (
    BaseConnector,
    IntegrationToken,
    OAuthConfig,
    SyncResult,
    WebhookData,
    to_bytes,
)

settings = get_settings()

logger = logging.getLogger(__name__)


class MicrosoftConnector(BaseConnector):
    """
    Shared Microsoft Graph plumbing.

    Subclasses only narrow ``SCOPES`` and add their domain operations.
    Connectors whose domain has no CRM entities report those syncs as
    not applicable instead of raising.
    """

    SCOPES: tuple[str, ...] = ()

    AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
    TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    GRAPH_BASE = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        token: IntegrationToken | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            OAuthConfig(
                client_id=settings.microsoft_client_id,
                client_secret=settings.microsoft_client_secret,
                redirect_uri=settings.microsoft_redirect_uri,
                authorization_url=self.AUTH_URL,
                token_url=self.TOKEN_URL,
                scopes=self.SCOPES,
            ),
            token=token,
            client=client,
        )

    async def test_connection(self) -> bool:
        try:
            await self.get_user_info()
            return True
        except Exception as exc:
            logger.error("Microsoft connection test failed: %s", exc)
            return False

    async def get_user_info(self) -> Any:
        return await self.make_request(f"{self.GRAPH_BASE}/me")

    async def sync_contacts(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def sync_companies(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def sync_deals(self) -> SyncResult:
        return SyncResult.not_applicable()

    async def _get_collection(self, url: str, params: dict[str, Any] | None = None) -> list[Any]:
        response = await self.make_request(url, params=params)
        return (response or {}).get("value", [])

    def validate_webhook(self, payload: str | bytes, signature: str, secret: str) -> bool:
        """
        Check Graph change notifications against the subscription secret.

        Graph does not sign notifications. Each one echoes the ``clientState``
        given at subscription time, so ``signature`` is the clientState the
        caller extracted and every notification in the body must carry it.
        """
        expected = to_bytes(secret)
        if not hmac.compare_digest(to_bytes(signature), expected):
            return False

        try:
            body = json.loads(payload)
        except ValueError:
            return False

        notifications = body.get("value") if isinstance(body, dict) else None
        if not isinstance(notifications, list):
            return True

        return all(
            hmac.compare_digest(to_bytes(str(item.get("clientState", ""))), expected)
            for item in notifications
            if isinstance(item, dict)
        )


class OneDriveConnector(MicrosoftConnector):
    """OneDrive file storage."""

    provider = "onedrive"

    SCOPES = ("Files.ReadWrite.All", "Sites.ReadWrite.All", "offline_access")

    async def sync_files(self) -> SyncResult:
        return await self._run_sync(self.get_all_files)

    async def get_all_files(self, folder_id: str | None = None) -> list[dict[str, Any]]:
        if folder_id:
            url = f"{self.GRAPH_BASE}/me/drive/items/{folder_id}/children"
        else:
            url = f"{self.GRAPH_BASE}/me/drive/root/children"
        return await self._get_collection(url)

    async def get_file(self, file_id: str) -> Any:
        return await self.make_request(f"{self.GRAPH_BASE}/me/drive/items/{file_id}")

    async def upload_file(
        self,
        file_name: str,
        content: bytes,
        folder_id: str | None = None,
    ) -> Any:
        name = quote(file_name)
        if folder_id:
            url = f"{self.GRAPH_BASE}/me/drive/items/{folder_id}:/{name}:/content"
        else:
            url = f"{self.GRAPH_BASE}/me/drive/root:/{name}:/content"

        return await self.make_request(
            url,
            "PUT",
            content=content,
            headers={"Content-Type": "application/octet-stream"},
        )

    async def delete_file(self, file_id: str) -> None:
        await self.make_request(f"{self.GRAPH_BASE}/me/drive/items/{file_id}", "DELETE")

    async def create_folder(self, name: str, parent_id: str | None = None) -> Any:
        if parent_id:
            url = f"{self.GRAPH_BASE}/me/drive/items/{parent_id}/children"
        else:
            url = f"{self.GRAPH_BASE}/me/drive/root/children"

        return await self.make_request(
            url,
            "POST",
            json={
                "name": name,
                "folder": {},
                "@microsoft.graph.conflictBehavior": "rename",
            },
        )

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing OneDrive webhook: %s", data.event)
        await self.sync_files()


class OneNoteConnector(MicrosoftConnector):
    """OneNote notebooks, sections and pages."""

    provider = "onenote"

    SCOPES = ("Notes.ReadWrite.All", "offline_access")

    async def sync_notes(self) -> SyncResult:
        return await self._run_sync(self.get_all_notebooks)

    async def get_all_notebooks(self) -> list[dict[str, Any]]:
        return await self._get_collection(f"{self.GRAPH_BASE}/me/onenote/notebooks")

    async def get_notebook(self, notebook_id: str) -> Any:
        return await self.make_request(f"{self.GRAPH_BASE}/me/onenote/notebooks/{notebook_id}")

    async def get_sections(self, notebook_id: str) -> list[dict[str, Any]]:
        return await self._get_collection(
            f"{self.GRAPH_BASE}/me/onenote/notebooks/{notebook_id}/sections"
        )

    async def get_pages(self, section_id: str) -> list[dict[str, Any]]:
        return await self._get_collection(
            f"{self.GRAPH_BASE}/me/onenote/sections/{section_id}/pages"
        )

    async def create_page(self, section_id: str, title: str, content: str) -> Any:
        """Create a page; ``content`` is inserted into the body as HTML."""
        page = (
            "<!DOCTYPE html>\n"
            "<html>\n"
            f"  <head><title>{html.escape(title)}</title></head>\n"
            f"  <body>{content}</body>\n"
            "</html>\n"
        )
        return await self.make_request(
            f"{self.GRAPH_BASE}/me/onenote/sections/{section_id}/pages",
            "POST",
            content=page,
            headers={"Content-Type": "text/html"},
        )

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing OneNote webhook: %s", data.event)
        await self.sync_notes()


class OutlookConnector(MicrosoftConnector):
    """Outlook mail and contacts."""

    provider = "outlook"

    SCOPES = (
        "Mail.ReadWrite",
        "Mail.Send",
        "Contacts.ReadWrite",
        "Calendars.ReadWrite",
        "offline_access",
    )

    async def sync_contacts(self) -> SyncResult:
        return await self._run_sync(self.get_all_contacts)

    async def get_all_contacts(self) -> list[dict[str, Any]]:
        return await self._get_collection(f"{self.GRAPH_BASE}/me/contacts")

    async def sync_emails(self) -> SyncResult:
        return await self._run_sync(self.get_messages)

    async def get_messages(self, folder_id: str | None = None, top: int = 50) -> list[dict[str, Any]]:
        if folder_id:
            url = f"{self.GRAPH_BASE}/me/mailFolders/{folder_id}/messages"
        else:
            url = f"{self.GRAPH_BASE}/me/messages"
        return await self._get_collection(
            url,
            params={"$top": top, "$orderby": "receivedDateTime desc"},
        )

    async def send_email(
        self,
        subject: str,
        body: str,
        to: list[str],
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
    ) -> None:
        def recipients(addresses: list[str]) -> list[dict[str, Any]]:
            return [{"emailAddress": {"address": address}} for address in addresses]

        message: dict[str, Any] = {
            "subject": subject,
            "body": {"contentType": "HTML", "content": body},
            "toRecipients": recipients(to),
        }
        if cc:
            message["ccRecipients"] = recipients(cc)
        if bcc:
            message["bccRecipients"] = recipients(bcc)

        await self.make_request(
            f"{self.GRAPH_BASE}/me/sendMail",
            "POST",
            json={"message": message},
        )

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing Outlook webhook: %s", data.event)

        event = data.event.lower()
        if "mail" in event:
            await self.sync_emails()
        elif "contact" in event:
            await self.sync_contacts()
        else:
            logger.info("Unhandled Outlook webhook event: %s", data.event)


class TeamsConnector(MicrosoftConnector):
    """Teams, channels and channel messages."""

    provider = "teams"

    SCOPES = (
        "Team.ReadBasic.All",
        "Channel.ReadBasic.All",
        "ChannelMessage.Read.All",
        "ChannelMessage.Send",
        "offline_access",
    )

    async def sync_teams(self) -> SyncResult:
        return await self._run_sync(self.get_all_teams)

    async def get_all_teams(self) -> list[dict[str, Any]]:
        return await self._get_collection(f"{self.GRAPH_BASE}/me/joinedTeams")

    async def get_channels(self, team_id: str) -> list[dict[str, Any]]:
        return await self._get_collection(f"{self.GRAPH_BASE}/teams/{team_id}/channels")

    async def get_messages(self, team_id: str, channel_id: str) -> list[dict[str, Any]]:
        return await self._get_collection(
            f"{self.GRAPH_BASE}/teams/{team_id}/channels/{channel_id}/messages"
        )

    async def send_message(self, team_id: str, channel_id: str, content: str) -> Any:
        return await self.make_request(
            f"{self.GRAPH_BASE}/teams/{team_id}/channels/{channel_id}/messages",
            "POST",
            json={"body": {"content": content}},
        )

    async def process_webhook(self, data: WebhookData) -> None:
        logger.info("Processing Teams webhook: %s", data.event)
        await self.sync_teams()
