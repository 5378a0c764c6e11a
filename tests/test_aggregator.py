# tests/test_aggregator.py

from __future__ import annotations

import asyncio

import pytest

from om_tasks.api.models import TaskStatus
from om_tasks.core.errors import ApiError, NotAuthenticatedError
from om_tasks.tree.aggregator import UNGROUPED_PROJECT, TaskAggregator, group_tasks
from om_tasks.tree.nodes import Category, NodeKind, TreeNode

from .fakes import FakeNotifier, FakeTaskSource, make_task


def eight_tasks():
    return [
        make_task(1, project="Alpha"),
        make_task(2, project="Beta", status="Closed"),
        make_task(3, project="Alpha", status="Closed"),
        make_task(4, project=None),
        make_task(5, project="Beta"),
        make_task(6, project="Alpha"),
        make_task(7, project="Gamma", status="Closed"),
        make_task(8, project=None, status="Closed"),
    ]


def category_node(category: Category) -> TreeNode:
    return TreeNode(
        label=category.value,
        key=f"root/{category.value}",
        kind=NodeKind.CATEGORY,
        collapsible=True,
        category=category,
    )


def project_node(category: Category, project: str) -> TreeNode:
    return TreeNode(
        label=project,
        key=f"root/{category.value}/{project}",
        kind=NodeKind.PROJECT,
        category=category,
        project=project,
    )


def test_group_tasks_keeps_first_seen_project_order() -> None:
    view = group_tasks(eight_tasks())

    assert list(view) == ["Alpha", "Beta", UNGROUPED_PROJECT, "Gamma"]
    assert [t.id for t in view["Alpha"][TaskStatus.OPEN]] == ["1", "6"]
    assert [t.id for t in view["Alpha"][TaskStatus.CLOSED]] == ["3"]
    assert [t.id for t in view[UNGROUPED_PROJECT][TaskStatus.CLOSED]] == ["8"]


@pytest.mark.asyncio
async def test_root_shows_categories_total_and_load_more() -> None:
    source = FakeTaskSource(eight_tasks(), total=8)
    tree = TaskAggregator(source, page_size=5)

    roots = await tree.get_children()

    assert [n.kind for n in roots] == [NodeKind.CATEGORY] * 3 + [NodeKind.LOAD_MORE]
    assert [n.label for n in roots[:3]] == ["All Tasks", "Open Tasks", "Completed Tasks"]
    assert roots[0].description == "(8 tasks)"
    assert roots[1].description is None
    assert roots[3].key == "root/load-more"
    assert source.calls == [(5, None)]


@pytest.mark.asyncio
async def test_load_more_until_exhausted() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=5)
    events: list[str | None] = []
    tree.add_listener(events.append)

    await tree.get_children()
    assert await tree.load_more() is True

    bucket = tree.bucket()
    assert bucket is not None
    assert [t.id for t in bucket.tasks] == [str(i) for i in range(1, 9)]
    assert bucket.exhausted
    assert source.calls == [(5, None), (5, "5")]
    assert events == ["root"]

    roots = await tree.get_children()
    assert all(n.kind == NodeKind.CATEGORY for n in roots)
    assert await tree.load_more() is False
    assert len(source.calls) == 2


@pytest.mark.asyncio
async def test_category_children_only_list_projects_with_matches() -> None:
    tree = TaskAggregator(FakeTaskSource(eight_tasks()), page_size=20)

    completed = await tree.get_children(category_node(Category.COMPLETED))
    assert [(n.label, n.description) for n in completed] == [
        ("Alpha", "(1 completed)"),
        ("Beta", "(1 completed)"),
        (UNGROUPED_PROJECT, "(1 completed)"),
        ("Gamma", "(1 completed)"),
    ]

    opened = await tree.get_children(category_node(Category.OPEN))
    assert [(n.label, n.count) for n in opened] == [("Alpha", 2), ("Beta", 1), (UNGROUPED_PROJECT, 1)]

    everything = await tree.get_children(category_node(Category.ALL))
    assert [n.description for n in everything] == ["(3 tasks)", "(2 tasks)", "(2 tasks)", "(1 tasks)"]


@pytest.mark.asyncio
async def test_project_children_are_tasks_in_server_order() -> None:
    tree = TaskAggregator(FakeTaskSource(eight_tasks()), page_size=20)
    await tree.get_children()

    alpha_all = await tree.get_children(project_node(Category.ALL, "Alpha"))
    assert [n.task.id for n in alpha_all] == ["1", "3", "6"]
    assert [n.kind for n in alpha_all] == [NodeKind.OPEN_TASK, NodeKind.COMPLETED_TASK, NodeKind.OPEN_TASK]
    assert alpha_all[0].key == "root/all/Alpha/1"
    assert all(n.is_task for n in alpha_all)

    alpha_open = await tree.get_children(project_node(Category.OPEN, "Alpha"))
    assert [n.task.id for n in alpha_open] == ["1", "6"]


@pytest.mark.asyncio
async def test_fetch_failure_degrades_to_empty_and_notifies() -> None:
    source = FakeTaskSource(eight_tasks())
    source.fail_next = NotAuthenticatedError()
    notifier = FakeNotifier()
    tree = TaskAggregator(source, page_size=5, notifier=notifier)

    assert await tree.get_children() == []
    assert notifier.texts() == ["Failed to fetch tasks: Not authenticated. Please authenticate first."]

    # Nothing was accumulated, so the next expansion retries.
    roots = await tree.get_children()
    assert len(roots) == 4


@pytest.mark.asyncio
async def test_failed_load_more_keeps_accumulated_state() -> None:
    source = FakeTaskSource(eight_tasks())
    notifier = FakeNotifier()
    tree = TaskAggregator(source, page_size=5, notifier=notifier)
    await tree.get_children()

    source.fail_next = ApiError("Error 500: Internal Server Error", 500)
    assert await tree.load_more() is False

    bucket = tree.bucket()
    assert bucket is not None
    assert len(bucket.tasks) == 5
    assert bucket.after == "5"
    assert len(notifier.messages) == 1

    assert await tree.load_more() is True
    assert len(bucket.tasks) == 8


@pytest.mark.asyncio
async def test_concurrent_load_more_fetches_once() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=3)
    await tree.get_children()

    source.gate = asyncio.Event()
    first = asyncio.create_task(tree.load_more())
    await asyncio.sleep(0)
    second = await tree.load_more()
    source.gate.set()

    assert await first is True
    assert second is False
    assert source.calls == [(3, None), (3, "3")]


@pytest.mark.asyncio
async def test_refresh_drops_state_and_notifies_whole_tree() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=5)
    events: list[str | None] = []
    tree.add_listener(events.append)

    await tree.get_children()
    tree.refresh()

    assert tree.bucket() is None
    assert events == [None]
    await tree.get_children()
    assert source.calls == [(5, None), (5, None)]


@pytest.mark.asyncio
async def test_load_more_during_refresh_drops_stale_page() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=3)
    await tree.get_children()

    source.gate = asyncio.Event()
    pending = asyncio.create_task(tree.load_more())
    await asyncio.sleep(0)
    tree.refresh()
    source.gate.set()

    assert await pending is False
    assert tree.bucket() is None


@pytest.mark.asyncio
async def test_first_page_arriving_after_refresh_is_dropped() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=3)

    source.gate = asyncio.Event()
    pending = asyncio.create_task(tree.get_children())
    await asyncio.sleep(0)
    tree.refresh()
    source.gate.set()

    roots = await pending
    assert tree.bucket() is None
    assert [n.kind for n in roots] == [NodeKind.CATEGORY] * 3

    source.gate = None
    await tree.get_children()
    bucket = tree.bucket()
    assert bucket is not None
    assert [t.id for t in bucket.tasks] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_project_expansion_loads_first_page_on_demand() -> None:
    source = FakeTaskSource(eight_tasks())
    tree = TaskAggregator(source, page_size=20)

    alpha_open = await tree.get_children(project_node(Category.OPEN, "Alpha"))

    assert [n.task.id for n in alpha_open] == ["1", "6"]
    assert source.calls == [(20, None)]


@pytest.mark.asyncio
async def test_apply_update_moves_task_between_categories() -> None:
    tree = TaskAggregator(FakeTaskSource(eight_tasks()), page_size=20)
    events: list[str | None] = []
    tree.add_listener(events.append)
    await tree.get_children()

    assert tree.apply_update(make_task(1, project="Alpha", status="Closed")) == 1
    assert events == ["root"]

    alpha_completed = await tree.get_children(project_node(Category.COMPLETED, "Alpha"))
    assert [n.task.id for n in alpha_completed] == ["1", "3"]
    assert tree.apply_update(make_task(1, project="Alpha", status="Closed")) == 0
