# tests/test_api_client.py

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from om_tasks.api.cache import ResponseCache
from om_tasks.api.client import ApiClient, normalize_envelope, parse_page
from om_tasks.api.models import ContentKind, EntityType, TaskStatus
from om_tasks.api.rate_limiter import RateLimiter
from om_tasks.auth.secrets import TOKEN_KEY, TokenVault
from om_tasks.core.errors import (
    ApiError,
    AuthOrNotFoundError,
    NotAuthenticatedError,
    TransportError,
)

from .fakes import FakeClock, FakeSecretStore, raw_task

Handler = Callable[[httpx.Request], httpx.Response]


class Recorder:
    """MockTransport handler that records requests and delegates to a route function."""

    def __init__(self, route: Handler) -> None:
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_client(route: Handler, *, token: str | None = "tok") -> tuple[ApiClient, Recorder]:
    recorder = Recorder(route)
    store = FakeSecretStore({TOKEN_KEY: token} if token else None)
    client = ApiClient(
        "http://om.test/",
        "http://om-web.test",
        token_source=TokenVault(store),
        rate_limiter=RateLimiter(5, 0.01),
        cache=ResponseCache(300.0, clock=FakeClock()),
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


def _tasks_page(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"data": [raw_task(1), raw_task(2, status="Closed")], "paging": {"after": "cur-2", "total": 7}},
    )


def test_normalize_envelope_accepts_bare_payload_and_envelope() -> None:
    assert normalize_envelope({"id": "x"}) == ({"id": "x"}, None)
    assert normalize_envelope({"data": [1], "paging": {"total": 1}}) == ([1], {"total": 1})
    with pytest.raises(ApiError):
        normalize_envelope(["not", "an", "object"])


def test_parse_page_without_paging_has_no_cursor() -> None:
    page = parse_page({"data": [raw_task(1)]})
    assert len(page.tasks) == 1
    assert page.after is None
    assert page.total is None


@pytest.mark.asyncio
async def test_list_tasks_sends_bearer_token_and_parses_envelope() -> None:
    client, rec = make_client(_tasks_page)
    try:
        page = await client.list_tasks(limit=20)
    finally:
        await client.aclose()

    assert [t.id for t in page.tasks] == ["1", "2"]
    assert page.tasks[1].status == TaskStatus.CLOSED
    assert page.after == "cur-2"
    assert page.total == 7

    req = rec.requests[0]
    assert req.url.path == "/api/v1/tasks"
    assert req.url.params["limit"] == "20"
    assert "after" not in req.url.params
    assert req.headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_list_tasks_passes_cursor_and_caches_per_cursor() -> None:
    client, rec = make_client(_tasks_page)
    try:
        await client.list_tasks(20, "cur-2")
        await client.list_tasks(20, "cur-2")
        await client.list_tasks(20, None)
    finally:
        await client.aclose()

    assert len(rec.requests) == 2
    assert rec.requests[0].url.params["after"] == "cur-2"
    # A cache hit takes no permit.
    assert client.rate_limiter.granted == 2


@pytest.mark.asyncio
async def test_missing_token_fails_before_cache_and_limiter() -> None:
    client, rec = make_client(_tasks_page, token=None)
    try:
        with pytest.raises(NotAuthenticatedError):
            await client.list_tasks()
        with pytest.raises(NotAuthenticatedError):
            await client.get_task("1")
    finally:
        await client.aclose()

    assert rec.requests == []
    assert client.rate_limiter.granted == 0
    assert client.cache.misses == 0


@pytest.mark.asyncio
async def test_unauthorized_is_classified_and_reported() -> None:
    client, _ = make_client(lambda r: httpx.Response(401, json={"message": "bad token"}))
    seen: list[int] = []
    client.on_unauthorized = lambda: seen.append(1)
    try:
        with pytest.raises(AuthOrNotFoundError) as info:
            await client.list_tasks()
    finally:
        await client.aclose()

    assert info.value.status_code == 401
    assert info.value.is_unauthorized
    assert "Please check your authentication token." in str(info.value)
    assert seen == [1]


@pytest.mark.asyncio
async def test_not_found_is_auth_or_not_found_with_hint() -> None:
    client, _ = make_client(lambda r: httpx.Response(404))
    try:
        with pytest.raises(AuthOrNotFoundError) as info:
            await client.get_task("nope")
    finally:
        await client.aclose()

    assert info.value.status_code == 404
    assert not info.value.is_unauthorized
    assert info.value.hint == "The requested resource was not found."


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(route)
    try:
        with pytest.raises(TransportError) as info:
            await client.list_tasks()
    finally:
        await client.aclose()

    assert str(info.value) == "OpenMetadata API Error: No response received"


@pytest.mark.asyncio
async def test_server_error_is_api_error_and_not_cached() -> None:
    calls = {"n": 0}

    def route(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503)
        return _tasks_page(request)

    client, _ = make_client(route)
    try:
        with pytest.raises(ApiError) as info:
            await client.list_tasks()
        page = await client.list_tasks()
    finally:
        await client.aclose()

    assert info.value.status_code == 503
    assert not isinstance(info.value, AuthOrNotFoundError)
    assert len(page.tasks) == 2


@pytest.mark.asyncio
async def test_invalid_json_body_is_api_error() -> None:
    client, _ = make_client(lambda r: httpx.Response(200, content=b"<html>"))
    try:
        with pytest.raises(ApiError):
            await client.get_asset("x")
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_get_task_accepts_bare_payload_and_patch_invalidates_it() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            body = json.loads(request.content)
            return httpx.Response(200, json=raw_task(1, status=body["status"]))
        return httpx.Response(200, json=raw_task(1))

    client, rec = make_client(route)
    try:
        first = await client.get_task("1")
        await client.get_task("1")
        patched = await client.patch_task("1", {"status": "Closed"})
        refetched = await client.get_task("1")
    finally:
        await client.aclose()

    assert first.status == TaskStatus.OPEN
    assert patched.status == TaskStatus.CLOSED
    assert [r.method for r in rec.requests] == ["GET", "PATCH", "GET"]
    assert refetched.id == "1"


@pytest.mark.asyncio
async def test_asset_details_for_table_fetches_ddl() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tableProfile/ddl"):
            return httpx.Response(200, json={"ddl": "CREATE TABLE t1 (id INT);"})
        return httpx.Response(200, json={"id": "e1", "name": "t1", "entityType": "table"})

    client, rec = make_client(route)
    try:
        details = await client.get_asset_details("e1")
        again = await client.get_asset_details("e1")
    finally:
        await client.aclose()

    assert details.entity_type == EntityType.TABLE
    assert details.content_kind == ContentKind.SQL
    assert details.content == "CREATE TABLE t1 (id INT);"
    assert details.file_name == "t1.sql"
    assert again is details
    assert rec.paths == ["/api/v1/entities/e1", "/api/v1/tables/e1/tableProfile/ddl"]


@pytest.mark.asyncio
async def test_asset_details_for_procedure_and_dashboard() -> None:
    assets = {
        "p1": {"id": "p1", "name": "proc", "entityType": "storedProcedure", "storedProcedureCode": {"code": "SELECT 1;"}},
        "d1": {"id": "d1", "name": "dash", "entityType": "dashboard", "charts": [{"name": "Chart 1"}]},
        "m1": {"id": "m1", "name": "model", "entityType": "mlmodel"},
    }

    def route(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=assets[request.url.path.rsplit("/", 1)[-1]])

    client, _ = make_client(route)
    try:
        proc = await client.get_asset_details("p1")
        dash = await client.get_asset_details("d1")
        other = await client.get_asset_details("m1")
    finally:
        await client.aclose()

    assert proc.content == "SELECT 1;"
    assert proc.content_kind == ContentKind.SQL
    assert json.loads(dash.content) == [{"name": "Chart 1"}]
    assert dash.content_kind == ContentKind.JSON
    assert other.content_kind == ContentKind.OTHER
    assert json.loads(other.content)["name"] == "model"


@pytest.mark.asyncio
async def test_lineage_search_and_data_quality_params() -> None:
    client, rec = make_client(lambda r: httpx.Response(200, json={"data": []}))
    try:
        await client.get_asset_lineage("e1", 2, 3)
        await client.search_assets("orders", size=5)
        await client.get_data_quality_results("tc1")
        await client.get_data_quality_results("tc1", 100, 200)
    finally:
        await client.aclose()

    lineage, search, dq_open, dq_range = rec.requests
    assert lineage.url.path == "/api/v1/lineage/entities/e1"
    assert lineage.url.params["upstreamDepth"] == "2"
    assert lineage.url.params["downstreamDepth"] == "3"
    assert search.url.params["q"] == "orders"
    assert search.url.params["index"] == "all_entity_search_index"
    assert search.url.params["size"] == "5"
    assert "startTs" not in dq_open.url.params
    assert dq_range.url.params["startTs"] == "100"
    assert dq_range.url.params["endTs"] == "200"


@pytest.mark.asyncio
async def test_search_queries_with_colons_are_cached_separately() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"q": request.url.params["q"], "index": request.url.params["index"]})

    client, rec = make_client(route)
    try:
        first = await client.search_assets("owner:bob", index="idx")
        second = await client.search_assets("owner", index="bob:idx")
    finally:
        await client.aclose()

    assert len(rec.requests) == 2
    assert first == {"q": "owner:bob", "index": "idx"}
    assert second == {"q": "owner", "index": "bob:idx"}


@pytest.mark.asyncio
async def test_bot_token_extraction_and_bad_shape() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/ingestion-bot"):
            return httpx.Response(200, json={"name": "ingestion-bot", "botToken": {"token": "bot-jwt"}})
        return httpx.Response(200, json={"name": "other"})

    client, _ = make_client(route)
    try:
        assert await client.get_bot_token() == "bot-jwt"
        with pytest.raises(ApiError, match="Invalid response format for other token"):
            await client.get_bot_token("other")
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_probe_and_refresh_use_the_candidate_token() -> None:
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/refresh"):
            assert json.loads(request.content) == {"refreshToken": "candidate"}
            return httpx.Response(200, json={"accessToken": "fresh"})
        return httpx.Response(200, json={"keys": []})

    client, rec = make_client(route, token=None)
    try:
        await client.probe_token("candidate")
        new_token = await client.refresh_token("candidate")
    finally:
        await client.aclose()

    assert new_token == "fresh"
    assert rec.paths == ["/api/v1/system/config/jwks", "/api/v1/users/refresh"]
    assert all(r.headers["Authorization"] == "Bearer candidate" for r in rec.requests)


def test_web_urls() -> None:
    client, _ = make_client(_tasks_page)
    assert client.get_task_url("42") == "http://om-web.test/tasks/42"
    assert client.get_asset_url("e1") == "http://om-web.test/entity/e1"
