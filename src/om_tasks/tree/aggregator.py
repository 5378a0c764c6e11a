# src/om_tasks/tree/aggregator.py

from __future__ import annotations

"""
Task tree provider.

Pages from the task listing accumulate per listing identity ("root" by default).
Everything shown in the tree is derived on demand from that accumulation:

    All Tasks (N tasks)          <- N is the server-reported total
    Open Tasks
        <project> (k open)       <- only projects with k > 0, first-seen order
            <task> ...           <- server order
    Completed Tasks
        ...
    Load More...                 <- only while the listing has a cursor

Failures are caught here, logged, reported to the notifier, and turned into
empty child lists; nothing propagates to the presentation layer.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..api.models import Page, Task, TaskStatus
from ..core.errors import OmTasksError
from ..core.notify import Severity, report_error
from ..core.ports import Notifier, TaskSource
from .nodes import CATEGORY_LABELS, Category, NodeKind, TreeNode

logger = logging.getLogger(__name__)

ROOT_LISTING = "root"
UNGROUPED_PROJECT = "Ungrouped"
DEFAULT_PAGE_SIZE = 20

TreeListener = Callable[[str | None], None]
GroupingView = dict[str, dict[TaskStatus, list[Task]]]


@dataclass(slots=True)
class Bucket:
    """All pages fetched so far for one listing, in fetch order."""

    tasks: list[Task] = field(default_factory=list)
    after: str | None = None
    total: int | None = None
    pages: int = 0

    @property
    def exhausted(self) -> bool:
        return self.pages > 0 and self.after is None


def project_key(task: Task) -> str:
    if task.project is not None and task.project.name:
        return task.project.name
    return UNGROUPED_PROJECT


def group_tasks(tasks: list[Task]) -> GroupingView:
    """Partition tasks by project (first-seen order), then status (server order)."""
    view: GroupingView = {}
    for task in tasks:
        groups = view.setdefault(project_key(task), {TaskStatus.OPEN: [], TaskStatus.CLOSED: []})
        groups[task.status].append(task)
    return view


def _tasks_in(groups: dict[TaskStatus, list[Task]], category: Category) -> list[Task]:
    if category == Category.OPEN:
        return groups[TaskStatus.OPEN]
    if category == Category.COMPLETED:
        return groups[TaskStatus.CLOSED]
    return groups[TaskStatus.OPEN] + groups[TaskStatus.CLOSED]


def _in_category(task: Task, category: Category) -> bool:
    if category == Category.OPEN:
        return task.status == TaskStatus.OPEN
    if category == Category.COMPLETED:
        return task.status == TaskStatus.CLOSED
    return True


_COUNT_SUFFIX = {
    Category.ALL: "tasks",
    Category.OPEN: "open",
    Category.COMPLETED: "completed",
}


class TaskAggregator:
    def __init__(
        self,
        source: TaskSource,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        notifier: Notifier | None = None,
    ) -> None:
        self._source = source
        self._page_size = max(1, int(page_size))
        self._notifier = notifier
        self._buckets: dict[str, Bucket] = {}
        self._loading_more: set[str] = set()
        # Bumped by refresh(); pages fetched under an older generation are dropped.
        self._generation = 0
        self._listeners: list[TreeListener] = []

    # ---- state access ----

    def bucket(self, listing: str = ROOT_LISTING) -> Bucket | None:
        return self._buckets.get(listing)

    def grouping_view(self, listing: str = ROOT_LISTING) -> GroupingView:
        bucket = self._buckets.get(listing)
        return group_tasks(bucket.tasks) if bucket is not None else {}

    def has_more(self, listing: str = ROOT_LISTING) -> bool:
        bucket = self._buckets.get(listing)
        return bucket is not None and bucket.after is not None

    def add_listener(self, listener: TreeListener) -> None:
        """listener(listing) is called when a listing changes; listing=None means the whole tree."""
        self._listeners.append(listener)

    def _fire(self, listing: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(listing)
            except Exception:
                logger.exception("Tree listener failed")

    def _report(self, exc: Exception, message: str) -> None:
        if isinstance(exc, OmTasksError):
            report_error(self._notifier, exc, message)
            return
        logger.exception("%s", message)
        if self._notifier is not None:
            self._notifier.notify(Severity.ERROR, f"{message}: internal error")

    # ---- accumulation ----

    @staticmethod
    def _append(bucket: Bucket, page: Page) -> None:
        bucket.tasks.extend(page.tasks)
        bucket.after = page.after
        if bucket.pages == 0:
            bucket.total = page.total
        bucket.pages += 1

    async def _ensure_loaded(self, listing: str) -> Bucket:
        bucket = self._buckets.get(listing)
        if bucket is not None and bucket.pages > 0:
            return bucket

        generation = self._generation
        page = await self._source.list_tasks(self._page_size, None)

        if generation != self._generation:
            logger.debug("listing=%s was refreshed during first fetch; dropping page", listing)
            return Bucket()

        bucket = self._buckets.setdefault(listing, Bucket())
        # Another expansion may have populated the listing while we were waiting.
        if bucket.pages == 0:
            self._append(bucket, page)
            logger.debug("listing=%s first page: %d tasks total=%s", listing, len(page.tasks), page.total)
        return bucket

    async def load_more(self, listing: str = ROOT_LISTING) -> bool:
        """
        Fetch exactly one more page for the listing.

        Returns True if a page was appended. A call made while another load for
        the same listing is outstanding returns False without fetching.
        """
        if listing in self._loading_more:
            logger.debug("load_more already running for listing=%s", listing)
            return False
        bucket = self._buckets.get(listing)
        if bucket is None or bucket.after is None:
            return False

        self._loading_more.add(listing)
        try:
            page = await self._source.list_tasks(self._page_size, bucket.after)
        except Exception as exc:
            self._report(exc, "Failed to load more tasks")
            return False
        finally:
            self._loading_more.discard(listing)

        if self._buckets.get(listing) is not bucket:
            logger.debug("listing=%s was refreshed during load_more; dropping page", listing)
            return False

        self._append(bucket, page)
        logger.info(
            "listing=%s loaded %d more tasks (accumulated=%d more=%s)",
            listing,
            len(page.tasks),
            len(bucket.tasks),
            bucket.after is not None,
        )
        self._fire(listing)
        return True

    def apply_update(self, updated: Task) -> int:
        """Copy the status of a patched task onto every accumulated copy of it."""
        touched: list[str] = []
        for listing, bucket in self._buckets.items():
            for task in bucket.tasks:
                if task.id == updated.id and task.status != updated.status:
                    task.status = updated.status
                    task.closed_at = updated.closed_at
                    task.closed_by = updated.closed_by
                    touched.append(listing)
        for listing in dict.fromkeys(touched):
            self._fire(listing)
        return len(touched)

    def refresh(self) -> None:
        """Drop every accumulated listing; the whole tree is stale."""
        self._buckets.clear()
        self._generation += 1
        logger.info("Task tree refreshed")
        self._fire(None)

    # ---- tree ----

    async def get_children(self, node: TreeNode | None = None) -> list[TreeNode]:
        try:
            if node is None:
                return await self._root_nodes(ROOT_LISTING)
            if node.kind == NodeKind.CATEGORY and node.category is not None:
                await self._ensure_loaded(node.listing)
                return self._project_nodes(node.listing, node.category)
            if node.kind == NodeKind.PROJECT and node.category is not None and node.project is not None:
                await self._ensure_loaded(node.listing)
                return self._task_nodes(node.listing, node.category, node.project)
            return []
        except Exception as exc:
            self._report(exc, "Failed to fetch tasks")
            return []

    async def _root_nodes(self, listing: str) -> list[TreeNode]:
        bucket = await self._ensure_loaded(listing)

        nodes: list[TreeNode] = []
        for category in Category:
            count = bucket.total if category == Category.ALL else None
            nodes.append(
                TreeNode(
                    label=CATEGORY_LABELS[category],
                    key=f"{listing}/{category.value}",
                    kind=NodeKind.CATEGORY,
                    listing=listing,
                    description=f"({count} tasks)" if count is not None else None,
                    count=count,
                    collapsible=True,
                    category=category,
                )
            )

        if bucket.after is not None:
            nodes.append(
                TreeNode(
                    label="Load More...",
                    key=f"{listing}/load-more",
                    kind=NodeKind.LOAD_MORE,
                    listing=listing,
                )
            )
        return nodes

    def _project_nodes(self, listing: str, category: Category) -> list[TreeNode]:
        nodes: list[TreeNode] = []
        for name, groups in self.grouping_view(listing).items():
            n = len(_tasks_in(groups, category))
            if n == 0:
                continue
            nodes.append(
                TreeNode(
                    label=name,
                    key=f"{listing}/{category.value}/{name}",
                    kind=NodeKind.PROJECT,
                    listing=listing,
                    description=f"({n} {_COUNT_SUFFIX[category]})",
                    count=n,
                    collapsible=True,
                    category=category,
                    project=name,
                )
            )
        return nodes

    def _task_nodes(self, listing: str, category: Category, project: str) -> list[TreeNode]:
        bucket = self._buckets.get(listing)
        if bucket is None:
            return []
        return [
            TreeNode(
                label=task.name,
                key=f"{listing}/{category.value}/{project}/{task.id}",
                kind=NodeKind.OPEN_TASK if task.is_open else NodeKind.COMPLETED_TASK,
                listing=listing,
                description=task.id,
                category=category,
                project=project,
                task=task,
            )
            for task in bucket.tasks
            if project_key(task) == project and _in_category(task, category)
        ]
