# src/om_tasks/cli/commands.py

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..api.models import TaskStatus
from ..api.offline import OfflineApiClient
from ..core.errors import OmTasksError
from ..core.notify import report_error
from ..core.state import AppState
from ..tree.nodes import CATEGORY_LABELS, Category, NodeKind, TreeNode

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console host (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def format_node(node: TreeNode, indent: int = 0) -> str:
    marker = {
        NodeKind.CATEGORY: "+",
        NodeKind.PROJECT: "#",
        NodeKind.OPEN_TASK: "o",
        NodeKind.COMPLETED_TASK: "x",
        NodeKind.LOAD_MORE: ">",
    }.get(node.kind, "-")
    text = f"{'  ' * indent}{marker} {node.label}"
    if node.description:
        text += f" {node.description}"
    if node.kind == NodeKind.LOAD_MORE:
        text += "  (use /more)"
    return text


def format_nodes(nodes: list[TreeNode], empty: str = "(nothing to show)") -> str:
    if not nodes:
        return empty
    return "\n".join(format_node(n) for n in nodes)


def _dump(value: Any) -> str:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _fail(exc: OmTasksError, message: str) -> str:
    # Logged here; the console prints the returned text.
    return report_error(None, exc, message)


def _parse_category(raw: str) -> Category | None:
    raw = raw.strip().lower()
    aliases = {"all": Category.ALL, "open": Category.OPEN, "completed": Category.COMPLETED, "closed": Category.COMPLETED}
    return aliases.get(raw)


def _parse_int(raw: str, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    mode = "OFFLINE (demo data)" if isinstance(state.api, OfflineApiClient) else "ONLINE"
    lines = [
        "Status:",
        f"  Mode: {mode}",
        f"  API: {getattr(state.api, 'base_url', '-')}",
        f"  Auth: {state.credentials.state.value}",
        f"  Refresh every: {int(state.credentials.refresh_interval)}s",
    ]
    cache = getattr(state.api, "cache", None)
    if cache is not None:
        lines.append(f"  Cache: {len(cache)} entries (ttl={int(cache.ttl_seconds)}s hits={cache.hits} misses={cache.misses})")
    limiter = getattr(state.api, "rate_limiter", None)
    if limiter is not None:
        lines.append(
            f"  Rate limit: {limiter.outstanding}/{limiter.max_concurrent} outstanding, "
            f"{limiter.granted} granted, interval={limiter.interval}s"
        )
    bucket = state.tree.bucket()
    if bucket is not None:
        lines.append(
            f"  Tasks loaded: {len(bucket.tasks)} of {bucket.total if bucket.total is not None else '?'}"
            f" (more: {'yes' if bucket.after else 'no'})"
        )
    lines.append(f"  Page size: {getattr(settings, 'page_size', '?')}")
    return "\n".join(lines)


async def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login <jwt-token>"
    try:
        await state.credentials.authenticate(args[0])
    except OmTasksError as exc:
        return _fail(exc, "Authentication error")
    except ValueError as exc:
        return f"Authentication error: {exc}"
    return "Authentication successful."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    state.credentials.sign_out()
    return "Signed out. Stored token removed."


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    nodes = await state.tree.get_children()
    return format_nodes(nodes, empty="No tasks (or failed to fetch; see messages above).")


def _category_cmd(category: Category) -> Callable[[AppState, list[str]], Awaitable[str]]:
    async def handler(state: AppState, args: list[str]) -> str:
        node = TreeNode(
            label=CATEGORY_LABELS[category],
            key=f"root/{category.value}",
            kind=NodeKind.CATEGORY,
            collapsible=True,
            category=category,
        )
        children = await state.tree.get_children(node)
        header = CATEGORY_LABELS[category]
        body = "\n".join(format_node(n, indent=1) for n in children) or "  (no projects)"
        if state.tree.has_more():
            body += "\n> Load More...  (use /more)"
        return f"{header}\n{body}"

    return handler


async def cmd_project(state: AppState, args: list[str]) -> str:
    """
    /project open Project A     -> open tasks of "Project A"
    /project all Ungrouped      -> every task without a project
    """
    if len(args) < 2:
        return "Usage: /project <all|open|completed> <project name>"
    category = _parse_category(args[0])
    if category is None:
        return "Unknown category. Use all, open or completed."
    name = " ".join(args[1:])
    node = TreeNode(
        label=name,
        key=f"root/{category.value}/{name}",
        kind=NodeKind.PROJECT,
        collapsible=True,
        category=category,
        project=name,
    )
    children = await state.tree.get_children(node)
    body = "\n".join(format_node(n, indent=1) for n in children) or "  (no tasks loaded for this project)"
    return f"{name} [{category.value}]\n{body}"


async def cmd_more(state: AppState, args: list[str]) -> str:
    if not state.tree.has_more():
        return "No more tasks to load."
    appended = await state.tree.load_more()
    if not appended:
        return "Nothing loaded."
    bucket = state.tree.bucket()
    loaded = len(bucket.tasks) if bucket is not None else 0
    return f"Loaded more tasks ({loaded} loaded{', more available' if state.tree.has_more() else ''})."


async def cmd_refresh(state: AppState, args: list[str]) -> str:
    state.api.clear_cache()
    state.tree.refresh()
    return "Refreshing tasks... use /tasks to reload."


async def cmd_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /task <task-id>"
    try:
        task = await state.api.get_task(args[0])
    except OmTasksError as exc:
        return _fail(exc, "Error fetching task details")
    return f"Task Details: {task.name}\n{_dump(task)}"


async def cmd_asset(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /asset <asset-id>"
    try:
        details = await state.api.get_asset_details(args[0])
    except OmTasksError as exc:
        return _fail(exc, "Error fetching asset details")
    return f"Asset Details: {details.name} [{details.content_kind.value}] -> {details.file_name}\n{details.content}"


async def cmd_lineage(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /lineage <asset-id> [upstream-depth] [downstream-depth]"
    up = _parse_int(args[1], 1) if len(args) > 1 else 1
    down = _parse_int(args[2], 1) if len(args) > 2 else 1
    try:
        lineage = await state.api.get_asset_lineage(args[0], up, down)
    except OmTasksError as exc:
        return _fail(exc, "Error fetching lineage")
    return _dump(lineage)


async def cmd_search(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /search <query>"
    try:
        result = await state.api.search_assets(" ".join(args))
    except OmTasksError as exc:
        return _fail(exc, "Search failed")
    return _dump(result)


async def cmd_dq(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /dq <test-case-id> [start-ts end-ts]"
    start = _parse_int(args[1], 0) if len(args) > 2 else None
    end = _parse_int(args[2], 0) if len(args) > 2 else None
    try:
        result = await state.api.get_data_quality_results(args[0], start, end)
    except OmTasksError as exc:
        return _fail(exc, "Error fetching data quality results")
    return _dump(result)


async def cmd_bot(state: AppState, args: list[str]) -> str:
    name = args[0] if args else getattr(state.settings, "bot_name", "ingestion-bot")
    try:
        token = await state.api.get_bot_token(name)
    except OmTasksError as exc:
        return _fail(exc, "Error fetching bot token")
    return f"{name} token: {token}"


async def _set_status(state: AppState, args: list[str], status: TaskStatus) -> str:
    if not args:
        return f"Usage: /{'close' if status == TaskStatus.CLOSED else 'reopen'} <task-id>"
    try:
        task = await state.api.patch_task(args[0], {"status": status.value})
    except OmTasksError as exc:
        return _fail(exc, "Error updating task")
    state.tree.apply_update(task)
    return f"Task {task.id} is now {task.status.value}."


async def cmd_close(state: AppState, args: list[str]) -> str:
    return await _set_status(state, args, TaskStatus.CLOSED)


async def cmd_reopen(state: AppState, args: list[str]) -> str:
    return await _set_status(state, args, TaskStatus.OPEN)


async def cmd_url(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /url <task-id>"
    lines = [f"Task: {state.api.get_task_url(args[0])}"]
    try:
        task = await state.api.get_task(args[0])
    except OmTasksError as exc:
        logger.debug("No asset link for task %s: %s", args[0], exc)
        return lines[0]
    if task.entity_id:
        lines.append(f"Asset: {state.api.get_asset_url(task.entity_id)}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show connection, auth, cache and rate-limit state.")
registry.register("login", cmd_login, help_text="Authenticate: /login <jwt-token>.", aliases=["auth"])
registry.register("logout", cmd_logout, help_text="Forget the stored token.", aliases=["signout"])
registry.register("tasks", cmd_tasks, help_text="Show the task tree root.", aliases=["ls"])
registry.register("all", _category_cmd(Category.ALL), help_text="Projects with any loaded task.")
registry.register("open", _category_cmd(Category.OPEN), help_text="Projects with open tasks.")
registry.register("completed", _category_cmd(Category.COMPLETED), help_text="Projects with completed tasks.")
registry.register("project", cmd_project, help_text="Tasks of a project: /project <all|open|completed> <name>.")
registry.register("more", cmd_more, help_text="Load the next page of tasks.")
registry.register("refresh", cmd_refresh, help_text="Drop cached data and reload the tree.")
registry.register("task", cmd_task, help_text="Task details: /task <id>.")
registry.register("asset", cmd_asset, help_text="Asset content: /asset <id>.")
registry.register("lineage", cmd_lineage, help_text="Asset lineage: /lineage <id> [up] [down].")
registry.register("search", cmd_search, help_text="Search assets: /search <query>.")
registry.register("dq", cmd_dq, help_text="Data quality results: /dq <test-case-id> [start end].")
registry.register("bot", cmd_bot, help_text="Automation bot token: /bot [name].")
registry.register("close", cmd_close, help_text="Close a task: /close <id>.")
registry.register("reopen", cmd_reopen, help_text="Reopen a task: /reopen <id>.")
registry.register("url", cmd_url, help_text="Web links for a task and its asset: /url <id>.")
