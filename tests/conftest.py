"""
Pytest Configuration and Fixtures for the ClickDown Extractor Tests.

This module provides fixtures, data factories and an in-memory fake of the
ClickUp API shared by the extractor tests.

Architecture:
    - FakeClickUpAPI: async stand-in for ClickUpClient backed by dicts
    - FakeClock / RecordingSleep: injectable time sources
    - Factories: raw task and custom-field payloads
    - Fixtures: settings, stores, sinks and a recording resumption trigger
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from typing import Any, Callable

import pytest

from clickdown.apps.extractor.checkpoint import FileCheckpointStore, MemoryCheckpointStore
from clickdown.apps.extractor.sinks import MemorySink
from clickdown.utils.config import Settings
from clickdown.utils.schemas import Folder, NodeRef, Space, TaskList, Team


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "engine: Extraction engine tests")
    config.addinivalue_line("markers", "errors: Error handling tests")


# =============================================================================
# Test Data Factories
# =============================================================================


class CustomFieldFactory:
    """Factory for raw custom-field payloads."""

    _ids = itertools.count(1)

    @classmethod
    def create(
        cls,
        name: str = "Field",
        type: str = "short_text",
        value: Any = None,
        type_config: Any = None,
        id: str | None = None,
    ) -> dict[str, Any]:
        return {
            "id": id or f"cf-{next(cls._ids)}",
            "name": name,
            "type": type,
            "type_config": type_config if type_config is not None else {},
            "value": value,
        }

    @classmethod
    def dropdown(cls, name: str, value: Any, options: list[tuple[str, str, int]]) -> dict[str, Any]:
        """Dropdown field; options are (id, label, orderindex) triples."""
        return cls.create(
            name=name,
            type="drop_down",
            value=value,
            type_config={
                "options": [
                    {"id": oid, "name": label, "orderindex": index}
                    for oid, label, index in options
                ]
            },
        )


class TaskFactory:
    """Factory for raw task payloads as returned by GET /list/{id}/task."""

    _ids = itertools.count(1)

    @classmethod
    def create(
        cls,
        id: str | None = None,
        name: str | None = None,
        status: str = "to do",
        status_type: str = "open",
        custom_fields: list[dict[str, Any]] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        task_id = id or f"t{next(cls._ids)}"
        task: dict[str, Any] = {
            "id": task_id,
            "name": name or f"Task {task_id}",
            "url": f"https://app.clickup.com/t/{task_id}",
            "status": {"status": status, "color": "#d3d3d3", "type": status_type},
            "priority": None,
            "date_created": "1700000000000",
            "date_updated": "1700000000000",
            "assignees": [],
            "tags": [],
            "custom_fields": custom_fields or [],
        }
        task.update(extra)
        return task

    @classmethod
    def batch(cls, count: int, prefix: str = "t", **kwargs: Any) -> list[dict[str, Any]]:
        return [cls.create(id=f"{prefix}{i}", **kwargs) for i in range(count)]


# =============================================================================
# Time Utilities
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class AdvancingSleep(RecordingSleep):
    """Recording sleep that also moves a FakeClock forward."""

    def __init__(self, clock: FakeClock) -> None:
        super().__init__()
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        await super().__call__(seconds)
        self.clock.advance(seconds)


class RecordingTrigger:
    """Resumption trigger that remembers what the engine asked for."""

    def __init__(self) -> None:
        self.scheduled: list[float] = []
        self.cancelled = 0

    def schedule(self, delay_seconds: float) -> None:
        self.scheduled.append(delay_seconds)

    def cancel(self) -> None:
        self.cancelled += 1


# =============================================================================
# Fake ClickUp API
# =============================================================================


class FakeClickUpAPI:
    """
    In-memory workspace exposing the ClickUpClient coroutine interface.

    Build the hierarchy with add_space / add_folder / add_list, inject
    failures with fail(), and inspect traffic through `calls`.
    """

    def __init__(self, page_size: int = 100, clock: FakeClock | None = None) -> None:
        self.page_size = page_size
        self.clock = clock
        self.seconds_per_page = 0.0
        self.latency = 0.0
        self.closed = False

        self.teams: list[Team] = [Team(id="team1", name="Team")]
        self.spaces: list[Space] = []
        self.folders: dict[str, list[Folder]] = defaultdict(list)
        self.folderless: dict[str, list[TaskList]] = defaultdict(list)
        self.folder_lists: dict[str, list[TaskList]] = defaultdict(list)
        self.lists: dict[str, TaskList] = {}
        self.tasks: dict[tuple[str, bool], list[dict[str, Any]]] = defaultdict(list)
        self.payload_overrides: dict[tuple[str, bool, int], dict[str, Any]] = {}

        self.calls: list[tuple[Any, ...]] = []
        self._queued_failures: dict[tuple[str, str], list[Exception]] = defaultdict(list)
        self._permanent_failures: dict[tuple[str, str], Exception] = {}

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def add_space(self, space_id: str, name: str | None = None) -> Space:
        space = Space(id=space_id, name=name or space_id)
        self.spaces.append(space)
        return space

    def add_folder(self, space_id: str, folder_id: str, name: str | None = None) -> Folder:
        folder = Folder(id=folder_id, name=name or folder_id)
        self.folders[space_id].append(folder)
        return folder

    def add_list(
        self,
        list_id: str,
        space_id: str,
        folder_id: str | None = None,
        name: str | None = None,
        tasks: list[dict[str, Any]] | None = None,
        archived_tasks: list[dict[str, Any]] | None = None,
    ) -> TaskList:
        space_name = next((s.name for s in self.spaces if s.id == space_id), space_id)
        if folder_id is None:
            folder_ref = NodeRef(id="hidden", name="hidden", hidden=True)
        else:
            folder_name = next(
                (f.name for f in self.folders[space_id] if f.id == folder_id), folder_id
            )
            folder_ref = NodeRef(id=folder_id, name=folder_name)

        task_list = TaskList(
            id=list_id,
            name=name or list_id,
            folder=folder_ref,
            space=NodeRef(id=space_id, name=space_name),
        )
        self.lists[list_id] = task_list
        if folder_id is None:
            self.folderless[space_id].append(task_list)
        else:
            self.folder_lists[folder_id].append(task_list)

        self.tasks[(list_id, False)] = list(tasks or [])
        self.tasks[(list_id, True)] = list(archived_tasks or [])
        return task_list

    def fail(self, method: str, key: str, *errors: Exception, always: bool = False) -> None:
        """Raise `errors` in order on the next calls to `method` for `key`."""
        if always:
            self._permanent_failures[(method, key)] = errors[0]
        else:
            self._queued_failures[(method, key)].extend(errors)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def task_requests(self) -> list[tuple[str, bool, int]]:
        """(list_id, archived, page) for every get_tasks call, in order."""
        return [(call[1], call[2], call[3]) for call in self.calls_to("get_tasks")]

    # -------------------------------------------------------------------------
    # ClickUpClient interface
    # -------------------------------------------------------------------------

    async def _enter(self, method: str, key: str, *args: Any) -> None:
        self.calls.append((method, key, *args))
        if self.latency:
            await asyncio.sleep(self.latency)
        permanent = self._permanent_failures.get((method, key))
        if permanent is not None:
            raise permanent
        queued = self._queued_failures.get((method, key))
        if queued:
            raise queued.pop(0)

    async def get_teams(self) -> list[Team]:
        await self._enter("get_teams", "")
        return list(self.teams)

    async def get_spaces(self, team_id: str) -> list[Space]:
        await self._enter("get_spaces", team_id)
        return list(self.spaces)

    async def get_folders(self, space_id: str) -> list[Folder]:
        await self._enter("get_folders", space_id)
        return list(self.folders[space_id])

    async def get_folderless_lists(self, space_id: str) -> list[TaskList]:
        await self._enter("get_folderless_lists", space_id)
        return list(self.folderless[space_id])

    async def get_lists(self, folder_id: str) -> list[TaskList]:
        await self._enter("get_lists", folder_id)
        return list(self.folder_lists[folder_id])

    async def get_list(self, list_id: str) -> TaskList:
        await self._enter("get_list", list_id)
        return self.lists[list_id]

    async def get_tasks(
        self,
        list_id: str,
        page: int,
        archived: bool = False,
        include_closed: bool = True,
        subtasks: bool = True,
    ) -> dict[str, Any]:
        await self._enter("get_tasks", list_id, archived, page)
        if self.clock is not None and self.seconds_per_page:
            self.clock.advance(self.seconds_per_page)

        override = self.payload_overrides.get((list_id, archived, page))
        if override is not None:
            return override

        tasks = self.tasks[(list_id, archived)]
        start = page * self.page_size
        chunk = tasks[start : start + self.page_size]
        return {"tasks": chunk, "last_page": start + self.page_size >= len(tasks)}

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build Settings without reading the environment's .env file."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "CLICKUP_API_KEY": "pk_test",
            "CLICKUP_TEAM_ID": "team1",
            "CLICKUP_LIST_ID": "",
            "EXTRACT_MODE": "workspace",
            "EXTRACT_PAGE_SIZE": 2,
            "EXTRACT_TIME_BUDGET": 0,
            "EXTRACT_RETRY_BASE_DELAY": 2.0,
            "STATE_DIR": str(tmp_path / "state"),
            "OUTPUT_DB_PATH": str(tmp_path / "db" / "tasks.db"),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def api(clock: FakeClock) -> FakeClickUpAPI:
    return FakeClickUpAPI(page_size=2, clock=clock)


@pytest.fixture
def store() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()


@pytest.fixture
def file_store(tmp_path) -> FileCheckpointStore:
    return FileCheckpointStore(tmp_path / "state" / "checkpoint.json")


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def workspace(api: FakeClickUpAPI) -> FakeClickUpAPI:
    """
    Two spaces, page size 2:

        Alpha
          (No Folder): L1 (3 tasks)
          Design:      L2 (2 tasks, 1 archived), L3 (1 task)
        Beta
          Ops:         L4 (4 tasks)
    """
    api.add_space("s1", "Alpha")
    api.add_space("s2", "Beta")
    api.add_folder("s1", "f1", "Design")
    api.add_folder("s2", "f2", "Ops")
    api.add_list("L1", "s1", name="Inbox", tasks=TaskFactory.batch(3, prefix="l1-"))
    api.add_list(
        "L2",
        "s1",
        "f1",
        name="Mockups",
        tasks=TaskFactory.batch(2, prefix="l2-"),
        archived_tasks=TaskFactory.batch(1, prefix="l2a-"),
    )
    api.add_list("L3", "s1", "f1", name="Reviews", tasks=TaskFactory.batch(1, prefix="l3-"))
    api.add_list("L4", "s2", "f2", name="Incidents", tasks=TaskFactory.batch(4, prefix="l4-"))
    return api
