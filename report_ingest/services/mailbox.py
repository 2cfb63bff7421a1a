"""Shared mailbox access over Microsoft Graph."""

import base64
import binascii
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from structlog import get_logger

from report_ingest.exceptions import ConfigurationError, MailboxError

logger = get_logger()

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
LOGIN_BASE = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"

# Tokens are renewed this many seconds before Graph says they expire
TOKEN_EXPIRY_MARGIN = 60


@dataclass
class MailMessage:
    id: str
    subject: Optional[str] = None
    sender: Optional[str] = None


@dataclass
class MailAttachment:
    name: str
    content: bytes
    content_type: Optional[str] = None


class MailboxGateway(ABC):
    """Mailbox operations used by the worker; every call is safe to repeat."""

    @abstractmethod
    async def list_unread_with_attachments(self) -> List[MailMessage]:
        pass

    @abstractmethod
    async def get_attachments(self, message_id: str) -> List[MailAttachment]:
        pass

    @abstractmethod
    async def mark_as_read(self, message_id: str) -> None:
        pass

    @abstractmethod
    async def move_mail(self, message_id: str, destination_folder_id: str) -> None:
        pass

    async def close(self) -> None:
        return None


def _sender_address(message: Dict[str, Any]) -> Optional[str]:
    return ((message.get("from") or {}).get("emailAddress") or {}).get("address")


class GraphMailboxGateway(MailboxGateway):
    """MailboxGateway backed by the Graph REST API with client-credential auth."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        mailbox: str,
        http_client: Optional[httpx.AsyncClient] = None,
        page_size: int = 25,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        missing = [
            key for key, value in (
                ("TENANT_ID", tenant_id),
                ("CLIENT_ID", client_id),
                ("CLIENT_SECRET", client_secret),
                ("MAILBOX", mailbox),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(", ".join(missing), "required for the Graph mailbox gateway")

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.mailbox = mailbox
        self.page_size = page_size
        self.clock = clock
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "GraphMailboxGateway":
        return cls(
            tenant_id=settings.get("TENANT_ID"),
            client_id=settings.get("CLIENT_ID"),
            client_secret=settings.get("CLIENT_SECRET"),
            mailbox=settings.get("MAILBOX"),
            page_size=settings.get("UNREAD_PAGE_SIZE", 25),
            timeout=settings.get("GRAPH_TIMEOUT_SECONDS", 60.0)
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---------- AUTH ----------
    async def _get_access_token(self) -> str:
        now = self.clock()
        if self._access_token and now < self._expires_at:
            return self._access_token

        try:
            resp = await self._client.post(
                f"{LOGIN_BASE}/{self.tenant_id}/oauth2/v2.0/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": GRAPH_SCOPE,
                }
            )
        except httpx.HTTPError as e:
            raise MailboxError("token", str(e)) from e

        data = resp.json() if resp.content else {}
        if resp.status_code != 200 or "access_token" not in data:
            reason = data.get("error_description", data.get("error", "Unknown auth error"))
            raise MailboxError("token", reason, status_code=resp.status_code)

        self._access_token = data["access_token"]
        self._expires_at = now + float(data.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN
        logger.debug("graph_token_acquired", expires_in=data.get("expires_in"))
        return self._access_token

    # ---------- GRAPH CORE ----------
    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        token = await self._get_access_token()
        try:
            resp = await self._client.request(
                method,
                f"{GRAPH_BASE}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs
            )
        except httpx.HTTPError as e:
            raise MailboxError(operation, str(e)) from e

        if resp.status_code >= 400:
            raise MailboxError(operation, resp.text[:500], status_code=resp.status_code)
        return resp.json() if resp.content else {}

    # ---------- PUBLIC API ----------
    async def list_unread_with_attachments(self) -> List[MailMessage]:
        data = await self._request(
            "list_unread",
            "GET",
            f"/users/{self.mailbox}/mailFolders/inbox/messages",
            params={
                "$filter": "isRead eq false and hasAttachments eq true",
                "$top": str(self.page_size),
                "$select": "id,subject,from",
            }
        )
        messages = [
            MailMessage(
                id=item["id"],
                subject=item.get("subject"),
                sender=_sender_address(item)
            )
            for item in data.get("value", [])
        ]
        logger.info("mailbox_unread_listed", mailbox=self.mailbox, messages=len(messages))
        return messages

    async def get_attachments(self, message_id: str) -> List[MailAttachment]:
        data = await self._request(
            "get_attachments",
            "GET",
            f"/users/{self.mailbox}/messages/{message_id}/attachments"
        )
        attachments = []
        for item in data.get("value", []):
            if item.get("@odata.type") != FILE_ATTACHMENT_TYPE:
                continue
            try:
                content = base64.b64decode(item.get("contentBytes") or "")
            except (binascii.Error, ValueError) as e:
                logger.warning(
                    "attachment_decode_failed",
                    message_id=message_id,
                    name=item.get("name"),
                    error=str(e)
                )
                continue
            attachments.append(
                MailAttachment(
                    name=item.get("name") or "",
                    content=content,
                    content_type=item.get("contentType")
                )
            )
        return attachments

    async def mark_as_read(self, message_id: str) -> None:
        await self._request(
            "mark_as_read",
            "PATCH",
            f"/users/{self.mailbox}/messages/{message_id}",
            json={"isRead": True}
        )

    async def move_mail(self, message_id: str, destination_folder_id: str) -> None:
        await self._request(
            "move_mail",
            "POST",
            f"/users/{self.mailbox}/messages/{message_id}/move",
            json={"destinationId": destination_folder_id}
        )
