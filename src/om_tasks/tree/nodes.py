# src/om_tasks/tree/nodes.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..api.models import Task


class NodeKind(StrEnum):
    CATEGORY = "category"
    PROJECT = "project"
    OPEN_TASK = "openTask"
    COMPLETED_TASK = "completedTask"
    LOAD_MORE = "loadMore"


class Category(StrEnum):
    ALL = "all"
    OPEN = "open"
    COMPLETED = "completed"


CATEGORY_LABELS: dict[Category, str] = {
    Category.ALL: "All Tasks",
    Category.OPEN: "Open Tasks",
    Category.COMPLETED: "Completed Tasks",
}

_ICONS: dict[NodeKind, str] = {
    NodeKind.OPEN_TASK: "circle-outline",
    NodeKind.COMPLETED_TASK: "check",
    NodeKind.PROJECT: "folder",
}


@dataclass(slots=True, frozen=True)
class TreeNode:
    """
    One row of the task tree, as handed to a presentation layer.

    key is stable across re-renders of the same data; kind picks the icon and
    the action set (only task nodes have details, only loadMore can be activated).
    """

    label: str
    key: str
    kind: NodeKind
    listing: str = "root"
    description: str | None = None
    count: int | None = None
    collapsible: bool = False
    category: Category | None = None
    project: str | None = None
    task: Task | None = None

    @property
    def icon(self) -> str:
        return _ICONS.get(self.kind, "list-unordered")

    @property
    def is_task(self) -> bool:
        return self.kind in (NodeKind.OPEN_TASK, NodeKind.COMPLETED_TASK)
