"""Unit tests for the Graph mailbox gateway."""

import base64
import json

import httpx
import pytest

from report_ingest.exceptions import ConfigurationError, MailboxError
from report_ingest.services.mailbox import GraphMailboxGateway


class MonotonicClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class GraphStub:
    """Records requests and answers like Graph."""

    def __init__(self):
        self.requests = []
        self.token_calls = 0
        self.fail_with = None
        self.token_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/oauth2/v2.0/token"):
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(
                    self.token_status,
                    json={"error": "invalid_client", "error_description": "bad secret"}
                )
            return httpx.Response(200, json={"access_token": f"token-{self.token_calls}", "expires_in": 3600})

        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="server exploded")

        if path.endswith("/mailFolders/inbox/messages"):
            return httpx.Response(200, json={"value": [
                {
                    "id": "m1",
                    "subject": "JSB Outstanding",
                    "from": {"emailAddress": {"address": "ops@example.com"}},
                    "hasAttachments": True,
                },
                {"id": "m2", "subject": None, "hasAttachments": True},
            ]})
        if path.endswith("/attachments"):
            return httpx.Response(200, json={"value": [
                {
                    "@odata.type": "#microsoft.graph.fileAttachment",
                    "name": "report.xlsx",
                    "contentType": "application/vnd.ms-excel",
                    "contentBytes": base64.b64encode(b"xlsx-bytes").decode(),
                },
                {"@odata.type": "#microsoft.graph.itemAttachment", "name": "forwarded mail"},
                {"@odata.type": "#microsoft.graph.fileAttachment", "name": "broken.xlsx", "contentBytes": "abc"},
            ]})
        if path.endswith("/move"):
            return httpx.Response(201, json={"id": "moved"})
        return httpx.Response(200, json={})

    def graph_requests(self):
        return [r for r in self.requests if r.url.host == "graph.microsoft.com"]


@pytest.fixture
def graph():
    return GraphStub()


@pytest.fixture
def mono_clock():
    return MonotonicClock()


@pytest.fixture
def gateway(graph, mono_clock):
    client = httpx.AsyncClient(transport=httpx.MockTransport(graph))
    return GraphMailboxGateway(
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        mailbox="reports@example.com",
        http_client=client,
        page_size=10,
        clock=mono_clock
    )


def test_missing_credentials():
    with pytest.raises(ConfigurationError) as exc_info:
        GraphMailboxGateway(tenant_id="t", client_id="", client_secret="s", mailbox=None)
    assert "CLIENT_ID" in exc_info.value.message
    assert "MAILBOX" in exc_info.value.message


@pytest.mark.asyncio
async def test_list_unread(gateway, graph):
    messages = await gateway.list_unread_with_attachments()

    assert [m.id for m in messages] == ["m1", "m2"]
    assert messages[0].sender == "ops@example.com"
    assert messages[1].sender is None

    request = graph.graph_requests()[0]
    assert request.url.path == "/v1.0/users/reports@example.com/mailFolders/inbox/messages"
    assert request.url.params["$filter"] == "isRead eq false and hasAttachments eq true"
    assert request.url.params["$top"] == "10"
    assert request.headers["Authorization"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_token_cached_until_margin(gateway, graph, mono_clock):
    await gateway.list_unread_with_attachments()
    mono_clock.now = 3000
    await gateway.list_unread_with_attachments()
    assert graph.token_calls == 1

    mono_clock.now = 3540
    await gateway.list_unread_with_attachments()
    assert graph.token_calls == 2
    assert graph.graph_requests()[-1].headers["Authorization"] == "Bearer token-2"


@pytest.mark.asyncio
async def test_token_failure(gateway, graph):
    graph.token_status = 401
    with pytest.raises(MailboxError) as exc_info:
        await gateway.list_unread_with_attachments()

    assert exc_info.value.details["operation"] == "token"
    assert exc_info.value.details["reason"] == "bad secret"
    assert exc_info.value.details["status_code"] == 401


@pytest.mark.asyncio
async def test_attachments_decoded_and_filtered(gateway):
    attachments = await gateway.get_attachments("m1")

    assert len(attachments) == 1
    assert attachments[0].name == "report.xlsx"
    assert attachments[0].content == b"xlsx-bytes"


@pytest.mark.asyncio
async def test_mark_as_read_and_move(gateway, graph):
    await gateway.mark_as_read("m1")
    await gateway.move_mail("m1", "processed-folder")

    patch, move = graph.graph_requests()
    assert patch.method == "PATCH"
    assert patch.url.path == "/v1.0/users/reports@example.com/messages/m1"
    assert json.loads(patch.content) == {"isRead": True}

    assert move.method == "POST"
    assert move.url.path.endswith("/messages/m1/move")
    assert json.loads(move.content) == {"destinationId": "processed-folder"}


@pytest.mark.asyncio
async def test_http_error_status(gateway, graph):
    graph.fail_with = 503
    with pytest.raises(MailboxError) as exc_info:
        await gateway.mark_as_read("m1")

    assert exc_info.value.error_code == "MAILBOX_ERROR"
    assert exc_info.value.details["status_code"] == 503


@pytest.mark.asyncio
async def test_transport_error(mono_clock):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = GraphMailboxGateway(
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        mailbox="reports@example.com",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        clock=mono_clock
    )
    with pytest.raises(MailboxError):
        await gateway.list_unread_with_attachments()
