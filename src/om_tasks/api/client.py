# src/om_tasks/api/client.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..core.errors import (
    ApiError,
    AuthOrNotFoundError,
    NotAuthenticatedError,
    TransportError,
)
from ..core.ports import TokenSource
from .cache import ResponseCache
from .models import AssetDetails, EntityType, Page, Task
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_SEARCH_INDEX = "all_entity_search_index"
DEFAULT_BOT_NAME = "ingestion-bot"

_STATUS_HINTS: dict[int, str] = {
    401: "Please check your authentication token.",
    404: "The requested resource was not found.",
}


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def normalize_envelope(raw: Any) -> tuple[Any, dict[str, Any] | None]:
    """
    Accept either a bare payload or {data, paging?} and return (data, paging).

    A payload that is not a JSON object is rejected.
    """
    if not isinstance(raw, dict):
        raise ApiError("Invalid API response")
    data = raw["data"] if "data" in raw else raw
    paging = raw.get("paging")
    if paging is not None and not isinstance(paging, dict):
        raise ApiError("Invalid API response: malformed paging")
    return data, paging


def parse_page(raw: Any) -> Page:
    data, paging = normalize_envelope(raw)
    if not isinstance(data, list):
        raise ApiError("Invalid API response: task listing is not a list")
    tasks = [Task.from_api(item) for item in data if isinstance(item, dict)]
    paging = paging or {}
    total = paging.get("total")
    return Page(
        tasks=tasks,
        after=paging.get("after") or None,
        before=paging.get("before") or None,
        total=int(total) if isinstance(total, (int, float)) and not isinstance(total, bool) else None,
    )


class ApiClient:
    """
    Async client for the OpenMetadata REST API.

    Every call:
    - fails fast with NotAuthenticatedError when no token is stored,
    - checks the response cache (reads only),
    - takes a rate-limiter permit,
    - sends the request with the current bearer token,
    - classifies failures (4xx / no response / anything else).
    """

    def __init__(
        self,
        base_url: str,
        web_app_url: str = "",
        *,
        token_source: TokenSource,
        rate_limiter: RateLimiter | None = None,
        cache: ResponseCache | None = None,
        timeout: httpx.Timeout | float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.web_app_url = web_app_url.rstrip("/")
        self._tokens = token_source
        self.rate_limiter = rate_limiter or RateLimiter(5, 1.0)
        self.cache = cache or ResponseCache(300.0)
        self.on_unauthorized = on_unauthorized
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}{API_PREFIX}",
            timeout=timeout if timeout is not None else _make_timeout(5.0, 30.0),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings,
        *,
        token_source: TokenSource,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ApiClient:
        return cls(
            settings.api_url,
            settings.web_app_url,
            token_source=token_source,
            rate_limiter=RateLimiter(
                settings.rate_limit_max_concurrent,
                settings.rate_limit_interval_seconds,
            ),
            cache=ResponseCache(settings.cache_ttl_seconds),
            timeout=_make_timeout(settings.connect_timeout_seconds, settings.read_timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- low-level helpers ----

    @property
    def is_authenticated(self) -> bool:
        return bool(self._tokens.get_token())

    def _require_token(self) -> str:
        token = self._tokens.get_token()
        if not token:
            raise NotAuthenticatedError()
        return token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        stored = token is None
        if token is None:
            token = self._require_token()

        await self.rate_limiter.acquire()

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        logger.debug("HTTP %s %s params=%s", method, path, params)
        try:
            resp = await self._http.request(method, path, params=params, json=body, headers=headers)
        except httpx.TransportError as exc:
            logger.info("No response for %s %s (%s)", method, path, exc.__class__.__name__)
            raise TransportError() from exc
        except httpx.HTTPError as exc:
            raise ApiError("OpenMetadata API Error: Unknown error occurred") from exc

        status = resp.status_code
        if 400 <= status < 500:
            hint = _STATUS_HINTS.get(status, "")
            message = f"Error {status}: {resp.reason_phrase}"
            if hint:
                message += f". {hint}"
            if status == 401 and stored and self.on_unauthorized is not None:
                self.on_unauthorized()
            raise AuthOrNotFoundError(message, status, hint)

        if not resp.is_success:
            raise ApiError(f"Error {status}: {resp.reason_phrase}", status)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError("Invalid API response: body is not JSON", status) from exc

    async def _cached_get(self, key: str, path: str, params: dict[str, Any] | None = None) -> Any:
        self._require_token()

        async def produce() -> Any:
            return await self._request("GET", path, params=params)

        return await self.cache.get_or_fetch(key, produce)

    def clear_cache(self) -> None:
        self.cache.clear_all()

    # ---- auth ----

    async def probe_token(self, token: str) -> None:
        """Lightweight authenticated call used to validate a candidate token."""
        await self._request("GET", "/system/config/jwks", token=token)

    async def refresh_token(self, token: str) -> str | None:
        """Exchange the current token for a new one. None means the server gave no token."""
        raw = await self._request("POST", "/users/refresh", token=token, body={"refreshToken": token})
        if raw is None:
            return None
        data, _ = normalize_envelope(raw)
        if not isinstance(data, dict):
            raise ApiError("Invalid response format for token refresh")
        new_token = data.get("accessToken") or data.get("token")
        return str(new_token) if new_token else None

    # ---- tasks ----

    async def list_tasks(self, limit: int = 20, after: str | None = None) -> Page:
        self._require_token()
        key = ResponseCache.make_key("tasks", limit, after)

        async def produce() -> Page:
            params: dict[str, Any] = {"limit": limit}
            if after:
                params["after"] = after
            return parse_page(await self._request("GET", "/tasks", params=params))

        return await self.cache.get_or_fetch(key, produce)

    async def get_task(self, task_id: str) -> Task:
        raw = await self._cached_get(ResponseCache.make_key("task", task_id), f"/tasks/{task_id}")
        data, _ = normalize_envelope(raw)
        if not isinstance(data, dict):
            raise ApiError("Invalid API response: task is not an object")
        return Task.from_api(data)

    async def patch_task(self, task_id: str, fields: dict[str, Any]) -> Task:
        raw = await self._request("PATCH", f"/tasks/{task_id}", body=fields)
        self.cache.invalidate(ResponseCache.make_key("task", task_id))
        data, _ = normalize_envelope(raw)
        if not isinstance(data, dict):
            raise ApiError("Invalid API response: task is not an object")
        return Task.from_api(data)

    async def get_task_parent_asset(self, task_id: str) -> str | None:
        task = await self.get_task(task_id)
        return task.entity_link or None

    def get_task_url(self, task_id: str) -> str:
        return f"{self.web_app_url}/tasks/{task_id}"

    def get_asset_url(self, asset_id: str) -> str:
        return f"{self.web_app_url}/entity/{asset_id}"

    # ---- assets ----

    async def get_asset(self, asset_id: str) -> dict[str, Any]:
        raw = await self._cached_get(ResponseCache.make_key("asset", asset_id), f"/entities/{asset_id}")
        data, _ = normalize_envelope(raw)
        if not isinstance(data, dict):
            raise ApiError("Invalid API response: asset is not an object")
        return data

    async def get_table_ddl(self, table_id: str) -> str:
        raw = await self._cached_get(
            ResponseCache.make_key("table_ddl", table_id),
            f"/tables/{table_id}/tableProfile/ddl",
        )
        data, _ = normalize_envelope(raw)
        return str(data.get("ddl") or "") if isinstance(data, dict) else ""

    async def get_asset_details(self, asset_id: str) -> AssetDetails:
        self._require_token()

        async def produce() -> AssetDetails:
            asset = await self.get_asset(asset_id)
            ddl = ""
            if EntityType.from_api(asset.get("entityType")) is EntityType.TABLE:
                ddl = await self.get_table_ddl(asset_id)
            return AssetDetails.from_asset(asset_id, asset, ddl=ddl)

        return await self.cache.get_or_fetch(ResponseCache.make_key("asset_details", asset_id), produce)

    async def get_asset_lineage(self, asset_id: str, upstream_depth: int = 1, downstream_depth: int = 1) -> Any:
        raw = await self._cached_get(
            ResponseCache.make_key("lineage", asset_id, upstream_depth, downstream_depth),
            f"/lineage/entities/{asset_id}",
            params={"upstreamDepth": upstream_depth, "downstreamDepth": downstream_depth},
        )
        data, _ = normalize_envelope(raw)
        return data

    async def search_assets(
        self,
        query: str,
        index: str = DEFAULT_SEARCH_INDEX,
        from_: int = 0,
        size: int = 10,
    ) -> Any:
        return await self._cached_get(
            ResponseCache.make_key("search", query, index, from_, size),
            "/search/query",
            params={"q": query, "index": index, "from": from_, "size": size},
        )

    async def get_data_quality_results(
        self,
        test_case_id: str,
        start_ts: int | None = None,
        end_ts: int | None = None,
    ) -> Any:
        params: dict[str, Any] | None = None
        # The endpoint only honours a closed range.
        if start_ts is not None and end_ts is not None:
            params = {"startTs": start_ts, "endTs": end_ts}
        return await self._cached_get(
            ResponseCache.make_key("data_quality", test_case_id, start_ts, end_ts),
            f"/dataQuality/testCases/{test_case_id}/testCaseResults",
            params=params,
        )

    async def get_bot_token(self, bot_name: str = DEFAULT_BOT_NAME) -> str:
        raw = await self._cached_get(ResponseCache.make_key("bot_token", bot_name), f"/bots/name/{bot_name}")
        data, _ = normalize_envelope(raw)
        bot_token = data.get("botToken") if isinstance(data, dict) else None
        token = bot_token.get("token") if isinstance(bot_token, dict) else None
        if not token:
            raise ApiError(f"Invalid response format for {bot_name} token")
        return str(token)
