import asyncio
import json

import httpx
import pytest

from spiris import (
    AsyncClient,
    AuthExpiredError,
    InvalidGrantError,
    Invoice,
    PermanentError,
    RetryPolicy,
    issue,
)

NOW = 10_000.0


def _client(handler, token=None, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    token = token or issue("tok", 3600, now=NOW)
    client = AsyncClient(token, client=http, clock=lambda: NOW, **kwargs)
    return client, http


async def _no_sleep(_):
    return None


@pytest.mark.asyncio
async def test_invoice_roundtrip_over_mock_transport():
    seen = []

    def handler(request):
        seen.append(request)
        rows = [{"Text": "Consulting", "UnitPrice": 100.0, "Quantity": 2}]
        return httpx.Response(200, json={"Id": "i1", "InvoiceNumber": 42, "Rows": rows})

    client, http = _client(handler)
    async with http:
        invoice = await client.invoices().get("i1")
    assert isinstance(invoice, Invoice)
    assert invoice.invoice_number == 42  # noqa: PLR2004
    assert invoice.rows[0].amount == 200.0  # noqa: PLR2004
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert seen[0].url.path == "/v2/invoices/i1"


@pytest.mark.asyncio
async def test_rate_limit_then_success():
    calls = {"n": 0}
    sleeps = []

    async def record(s):
        sleeps.append(s)

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429, headers={"Retry-After": "3"})
        return httpx.Response(200, json={"Data": [], "Meta": {}})

    client, http = _client(handler, sleep=record)
    async with http:
        page = await client.articles().list()
    assert len(page) == 0
    assert sleeps == [3.0]


@pytest.mark.asyncio
async def test_validation_error_is_permanent():
    def handler(request):
        body = json.loads(request.content)
        assert body == {"Name": "x"}
        return httpx.Response(400, json={"Message": "Name too short"})

    client, http = _client(handler, sleep=_no_sleep)
    async with http:
        with pytest.raises(PermanentError) as ei:
            await client.request("POST", "customers", json={"Name": "x"})
    assert ei.value.status == 400  # noqa: PLR2004
    assert "Name too short" in ei.value.detail.body


@pytest.mark.asyncio
async def test_expired_token_without_handler_does_not_send():
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={})

    client, http = _client(handler, token=issue("old", 10, now=NOW - 60))
    async with http:
        with pytest.raises(AuthExpiredError):
            await client.request("GET", "customers")
    assert sent == []


@pytest.mark.asyncio
async def test_401_refresh_through_async_handler():
    class Refresher:
        calls = 0

        async def refresh_token(self, value):
            Refresher.calls += 1
            assert value == "r1"
            return issue("fresh", 3600, refresh_token="r2", now=NOW)

    def handler(request):
        if request.headers["Authorization"] == "Bearer stale":
            return httpx.Response(401)
        return httpx.Response(200, json={"ok": True})

    token = issue("stale", 3600, refresh_token="r1", now=NOW)
    client, http = _client(handler, token=token, oauth=Refresher())
    async with http:
        assert await client.request("GET", "customers") == {"ok": True}
    assert Refresher.calls == 1
    assert client.token.refresh_token == "r2"


@pytest.mark.asyncio
async def test_cancel_during_backoff_leaves_token_untouched():
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(503)

    token = issue("tok", 3600, refresh_token="r", now=NOW)
    client, http = _client(
        handler, token=token, retry_policy=RetryPolicy(initial_interval=30.0, max_interval=60.0)
    )
    async with http:
        task = asyncio.create_task(client.request("GET", "customers"))
        while not sent:
            await asyncio.sleep(0)
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
    assert len(sent) == 1
    assert client.token is token


@pytest.mark.asyncio
async def test_delete_task_surfaces_failure():
    def handler(request):
        return httpx.Response(404, text="gone")

    client, http = _client(handler, sleep=_no_sleep)
    async with http:
        task = client.customers().delete_task("c9")
        with pytest.raises(PermanentError):
            await task


@pytest.mark.asyncio
async def test_concurrent_tasks_share_client():
    def handler(request):
        return httpx.Response(200, json={"Id": request.url.path.rsplit("/", 1)[-1]})

    client, http = _client(handler)
    async with http:
        found = await asyncio.gather(*(client.articles().get(f"a{i}") for i in range(5)))
    assert [a.id for a in found] == [f"a{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_rejected_refresh_uses_token_installed_by_concurrent_task():
    fresh = issue("fresh", 3600, refresh_token="r2", now=NOW)
    holder = {}

    class RotatedElsewhere:
        async def refresh_token(self, value):
            holder["client"].set_token(fresh)
            raise InvalidGrantError("refresh token already used", "invalid_grant")

    def handler(request):
        if request.headers["Authorization"] == "Bearer fresh":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(401)

    token = issue("stale", 3600, refresh_token="r1", now=NOW)
    client, http = _client(handler, token=token, oauth=RotatedElsewhere())
    holder["client"] = client
    async with http:
        assert await client.request("GET", "customers") == {"ok": True}
    assert client.token is fresh


@pytest.mark.asyncio
async def test_item_body_that_is_not_an_object_is_permanent():
    def handler(request):
        return httpx.Response(200, json=["not", "an", "object"])

    client, http = _client(handler)
    async with http:
        with pytest.raises(PermanentError):
            await client.articles().get("a1")
