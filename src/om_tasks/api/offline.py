# src/om_tasks/api/offline.py

from __future__ import annotations

import time
from typing import Any

from ..core.errors import ApiError, AuthOrNotFoundError, NotAuthenticatedError
from ..core.ports import TokenSource
from .client import DEFAULT_BOT_NAME, DEFAULT_SEARCH_INDEX, parse_page
from .models import AssetDetails, Page, Task

_USER_1 = {"id": "user1", "name": "User 1", "email": "user1@example.com"}
_USER_2 = {"id": "user2", "name": "User 2", "email": "user2@example.com"}


def _task(n: int, entity_type: str, status: str, project: str) -> dict[str, Any]:
    now = int(time.time() * 1000)
    raw: dict[str, Any] = {
        "id": str(n),
        "name": f"Task {n}",
        "description": f"Description for Task {n}",
        "entityId": f"entity{n}",
        "entityType": entity_type,
        "entityLink": f"<#E::{entity_type}::entity{n}>",
        "status": status,
        "type": "Data Quality",
        "assignees": [_USER_1],
        "tags": [{"tagFQN": f"tag{n}", "labelType": "Manual", "state": "Confirmed", "source": "User"}],
        "createdBy": _USER_2,
        "createdAt": now,
        "updatedAt": now,
        "project": {"id": project.lower().replace(" ", ""), "name": project},
    }
    if status == "Closed":
        raw["closedAt"] = now
        raw["closedBy"] = _USER_2
    return raw


def _fixture_tasks() -> list[dict[str, Any]]:
    return [
        _task(1, "table", "Open", "Project A"),
        _task(2, "dashboard", "Open", "Project A"),
        _task(3, "storedProcedure", "Open", "Project B"),
        _task(4, "table", "Closed", "Project B"),
        _task(5, "dashboard", "Closed", "Project C"),
    ]


_ASSETS: dict[str, dict[str, Any]] = {
    "entity1": {
        "id": "entity1",
        "name": "table1",
        "fullyQualifiedName": "db.schema.table1",
        "entityType": "table",
        "ddl": "CREATE TABLE table1 (id INT, name VARCHAR(255));",
    },
    "entity2": {
        "id": "entity2",
        "name": "dashboard1",
        "fullyQualifiedName": "svc.dashboard1",
        "entityType": "dashboard",
        "charts": [{"id": "c1", "name": "Chart 1", "type": "Line"}, {"id": "c2", "name": "Chart 2", "type": "Bar"}],
    },
    "entity3": {
        "id": "entity3",
        "name": "proc1",
        "fullyQualifiedName": "db.schema.proc1",
        "entityType": "storedProcedure",
        "storedProcedureCode": {"code": "CREATE PROCEDURE proc1() BEGIN SELECT * FROM table1; END;"},
    },
    "entity4": {
        "id": "entity4",
        "name": "table2",
        "fullyQualifiedName": "db.schema.table2",
        "entityType": "table",
        "ddl": "CREATE TABLE table2 (id INT, value FLOAT);",
    },
    "entity5": {
        "id": "entity5",
        "name": "dashboard2",
        "fullyQualifiedName": "svc.dashboard2",
        "entityType": "dashboard",
        "charts": [{"id": "c3", "name": "Chart 3", "type": "Pie"}],
    },
}


class OfflineApiClient:
    """
    Offline deterministic API used for demos when no server is configured.

    Behavior:
    - Same public surface as ApiClient; still requires a stored token (any non-empty one).
    - Tokens equal to "invalid" are rejected with 401, so auth flows can be tried out.
    - Task listing is paginated over a small fixture with numeric cursors.
    - No rate limiting or caching: nothing leaves the process.
    """

    def __init__(self, *, token_source: TokenSource, web_app_url: str = "http://localhost:8585") -> None:
        self._tokens = token_source
        self.web_app_url = web_app_url.rstrip("/")
        self._tasks = _fixture_tasks()

    @property
    def is_authenticated(self) -> bool:
        return bool(self._tokens.get_token())

    def _require_token(self) -> None:
        if not self._tokens.get_token():
            raise NotAuthenticatedError()

    def clear_cache(self) -> None:
        return

    async def aclose(self) -> None:
        return

    async def probe_token(self, token: str) -> None:
        if not token or token == "invalid":
            raise AuthOrNotFoundError(
                "Error 401: Unauthorized. Please check your authentication token.",
                401,
                "Please check your authentication token.",
            )

    async def refresh_token(self, token: str) -> str | None:
        await self.probe_token(token)
        return token

    async def list_tasks(self, limit: int = 20, after: str | None = None) -> Page:
        self._require_token()
        start = int(after) if after and after.isdigit() else 0
        end = start + max(1, int(limit))
        paging: dict[str, Any] = {"total": len(self._tasks)}
        if end < len(self._tasks):
            paging["after"] = str(end)
        return parse_page({"data": self._tasks[start:end], "paging": paging})

    def _raw_task(self, task_id: str) -> dict[str, Any]:
        for raw in self._tasks:
            if raw["id"] == task_id:
                return raw
        raise AuthOrNotFoundError(
            "Error 404: Not Found. The requested resource was not found.",
            404,
            "The requested resource was not found.",
        )

    async def get_task(self, task_id: str) -> Task:
        self._require_token()
        return Task.from_api(self._raw_task(task_id))

    async def patch_task(self, task_id: str, fields: dict[str, Any]) -> Task:
        self._require_token()
        raw = self._raw_task(task_id)
        raw.update(fields)
        raw["updatedAt"] = int(time.time() * 1000)
        return Task.from_api(raw)

    async def get_task_parent_asset(self, task_id: str) -> str | None:
        return (await self.get_task(task_id)).entity_link

    def get_task_url(self, task_id: str) -> str:
        return f"{self.web_app_url}/tasks/{task_id}"

    def get_asset_url(self, asset_id: str) -> str:
        return f"{self.web_app_url}/entity/{asset_id}"

    async def get_asset(self, asset_id: str) -> dict[str, Any]:
        self._require_token()
        asset = _ASSETS.get(asset_id)
        if asset is None:
            raise AuthOrNotFoundError(
                "Error 404: Not Found. The requested resource was not found.",
                404,
                "The requested resource was not found.",
            )
        return dict(asset)

    async def get_table_ddl(self, table_id: str) -> str:
        return str((await self.get_asset(table_id)).get("ddl") or "")

    async def get_asset_details(self, asset_id: str) -> AssetDetails:
        asset = await self.get_asset(asset_id)
        return AssetDetails.from_asset(asset_id, asset, ddl=str(asset.get("ddl") or ""))

    async def get_asset_lineage(self, asset_id: str, upstream_depth: int = 1, downstream_depth: int = 1) -> Any:
        asset = await self.get_asset(asset_id)
        return {"entity": {"id": asset_id, "name": asset.get("name")}, "upstreamEdges": [], "downstreamEdges": []}

    async def search_assets(
        self,
        query: str,
        index: str = DEFAULT_SEARCH_INDEX,
        from_: int = 0,
        size: int = 10,
    ) -> Any:
        self._require_token()
        q = (query or "").lower()
        hits = [{"_source": a} for a in _ASSETS.values() if q in str(a.get("name", "")).lower()]
        return {"hits": {"total": {"value": len(hits)}, "hits": hits[from_ : from_ + size]}}

    async def get_data_quality_results(
        self,
        test_case_id: str,
        start_ts: int | None = None,
        end_ts: int | None = None,
    ) -> Any:
        self._require_token()
        return {"data": [{"testCaseStatus": "Success", "timestamp": int(time.time() * 1000)}]}

    async def get_bot_token(self, bot_name: str = DEFAULT_BOT_NAME) -> str:
        self._require_token()
        if bot_name != DEFAULT_BOT_NAME:
            raise ApiError(f"Invalid response format for {bot_name} token")
        return "offline-bot-token"
