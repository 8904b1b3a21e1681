"""
Extraction Engine - Checkpointed Task Extraction

Drives hierarchy traversal, pagination, field resolution and schema growth,
and hands normalized rows to an output sink.

States:
    IDLE -> RUNNING -> SUSPENDED | COMPLETED | FAILED

The same algorithm serves both execution models; only the time budget
differs:
- continuous: unbounded budget, one invocation runs to completion;
- time-sliced: before each page fetch the engine compares elapsed time with
  its budget; once exceeded it persists a Checkpoint, asks the resumption
  trigger to call it again, and returns SUSPENDED. The next invocation reads
  the checkpoint and continues with exactly the page it stopped before.

Error handling:
- a list whose page cannot be fetched is logged and skipped;
- a folder or list listing failure skips that branch (HierarchyEnumerator);
- anything else moves the engine to FAILED, deletes the checkpoint and is
  re-raised to the caller.

Usage:
    engine = ExtractionEngine(settings, client, sink, store, trigger)
    result = await engine.run()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from clickdown.apps.extractor.checkpoint import (
    ARCHIVED_STATES,
    Checkpoint,
    CheckpointStore,
    RunMode,
)
from clickdown.apps.extractor.client import ClickUpClient
from clickdown.apps.extractor.exceptions import ConfigurationError, PageFetchError
from clickdown.apps.extractor.fetcher import PageFetcher, RetryPolicy, SleepFunc
from clickdown.apps.extractor.fields import FieldResolver
from clickdown.apps.extractor.hierarchy import HierarchyEnumerator, Leaf
from clickdown.apps.extractor.normalize import observe_custom_fields, task_to_row
from clickdown.apps.extractor.schema_registry import BASE_COLUMNS, SchemaRegistry
from clickdown.apps.extractor.sinks import OutputSink
from clickdown.utils.config import Settings
from clickdown.utils.schemas import Provenance, Task

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


class ResumptionTrigger(Protocol):
    """Re-invokes the engine after a delay; the engine reads its own checkpoint."""

    def schedule(self, delay_seconds: float) -> None: ...

    def cancel(self) -> None: ...


class NullResumptionTrigger:
    """Leaves resumption to the host (e.g. an external cron)."""

    def schedule(self, delay_seconds: float) -> None:
        logger.info("No resumption trigger configured; rerun to resume the extraction")

    def cancel(self) -> None:
        pass


@dataclass
class RunResult:
    state: EngineState
    rows_written: int = 0
    total_rows_written: int = 0
    pages_fetched: int = 0
    skipped_lists: list[str] = field(default_factory=list)
    skipped_branches: list[str] = field(default_factory=list)
    total_lists_skipped: int = 0
    checkpoint: Optional[Checkpoint] = None
    error: Optional[str] = None

    def summary(self) -> str:
        if self.state == EngineState.FAILED:
            return f"Extraction failed: {self.error}"
        if self.state == EngineState.SUSPENDED:
            return (
                f"Extraction suspended after {self.rows_written} rows "
                f"({self.total_rows_written} so far)"
            )
        return (
            f"Extraction completed: {self.total_rows_written} rows written, "
            f"{self.total_lists_skipped} lists skipped, "
            f"{len(self.skipped_branches)} branches skipped"
        )


class _Suspend(Exception):
    """Internal signal: the time budget ran out before the next fetch."""

    def __init__(self, checkpoint: Checkpoint) -> None:
        super().__init__("time budget exhausted")
        self.checkpoint = checkpoint


class ExtractionEngine:
    """
    One extraction run over a list or a whole workspace.

    Args:
        settings: Run configuration (mode, root ids, tuning)
        client: ClickUp API client
        sink: Destination for header and rows
        store: Checkpoint property store
        trigger: Resumption trigger used on suspension
        clock: Monotonic clock in seconds (injectable for tests)
        sleep: Async sleep used by retry backoff (injectable for tests)
    """

    def __init__(
        self,
        settings: Settings,
        client: ClickUpClient,
        sink: OutputSink,
        store: CheckpointStore,
        trigger: Optional[ResumptionTrigger] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.mode = RunMode(settings.EXTRACT_MODE)
        self.root_id = settings.root_id
        self.sink = sink
        self.store = store
        self.trigger = trigger or NullResumptionTrigger()
        self.clock = clock
        self.time_budget = settings.time_budget

        self.client = client
        self.retry_policy = retry_policy = RetryPolicy.from_settings(settings, sleep=sleep)
        self.fetcher = PageFetcher.from_settings(client, retry_policy, settings)
        self.enumerator = HierarchyEnumerator(
            client, retry_policy, folderless_label=settings.FOLDERLESS_LABEL
        )
        self.resolver = FieldResolver(
            yes_label=settings.FIELD_YES_LABEL,
            no_label=settings.FIELD_NO_LABEL,
            date_format=settings.FIELD_DATE_FORMAT,
        )

        self.state = EngineState.IDLE
        self.registry = SchemaRegistry(BASE_COLUMNS)
        self._started_at = 0.0
        self._rows_written = 0
        self._pages_fetched = 0
        self._fetches_attempted = 0
        self._skipped_lists: list[str] = []
        self._run_rows = 0
        self._run_lists_skipped = 0

    def _validate(self) -> None:
        if not self.settings.CLICKUP_API_KEY:
            raise ConfigurationError("CLICKUP_API_KEY is not configured")
        if not self.root_id:
            name = "CLICKUP_LIST_ID" if self.mode == RunMode.LIST else "CLICKUP_TEAM_ID"
            raise ConfigurationError(f"{name} is not configured for {self.mode.value} mode")

    async def _resolve_team(self) -> None:
        """Use the only workspace visible to the API key when no team id is set."""
        if self.mode != RunMode.WORKSPACE or self.root_id or not self.settings.CLICKUP_API_KEY:
            return

        teams = await self.retry_policy.call(self.client.get_teams)
        if len(teams) != 1:
            logger.warning(
                "CLICKUP_TEAM_ID is unset and the API key sees %d workspaces", len(teams)
            )
            return

        self.root_id = teams[0].id
        logger.info(
            "Using workspace %s",
            teams[0].name,
            extra={"team_id": self.root_id},
        )

    async def run(self) -> RunResult:
        """
        Run until completion or suspension.

        Returns:
            RunResult in state COMPLETED or SUSPENDED

        Raises:
            ConfigurationError: If credentials or root ids are missing
            Exception: Any unclassified error, after moving to FAILED and
                deleting the checkpoint
        """
        if self.state != EngineState.IDLE:
            raise RuntimeError(f"Engine already used (state={self.state.value})")

        await self._resolve_team()
        self._validate()
        self._started_at = self.clock()
        self.state = EngineState.RUNNING

        try:
            cursor = self._open()
            try:
                await self._traverse(cursor)
            except _Suspend as suspend:
                return self._suspend(suspend.checkpoint)
            return self._complete()
        except Exception as e:
            self.state = EngineState.FAILED
            self.store.clear()
            self.trigger.cancel()
            logger.error(
                "Extraction failed",
                extra={"error": str(e), "rows_written": self._rows_written},
                exc_info=True,
            )
            raise

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _open(self) -> Checkpoint:
        """Load the checkpoint and prepare sink and registry."""
        checkpoint = self.store.load()

        if checkpoint is not None and checkpoint.mode != self.mode:
            logger.warning(
                "Discarding checkpoint from %s mode, starting a fresh %s run",
                checkpoint.mode.value,
                self.mode.value,
            )
            checkpoint = None

        if checkpoint is not None:
            header = self.sink.read_header()
            if header:
                self.registry = SchemaRegistry.from_header(header, BASE_COLUMNS)
            else:
                logger.warning("Sink has no header on resume; writing a new one")
                self.sink.reset(self.registry.columns)
            self._run_rows = checkpoint.rows_written
            self._run_lists_skipped = checkpoint.lists_skipped
            logger.info(
                "Resuming extraction",
                extra={"checkpoint": checkpoint.to_properties(), "columns": self.registry.width},
            )
            return checkpoint

        self.sink.reset(self.registry.columns)
        logger.info(
            "Starting extraction",
            extra={"mode": self.mode.value, "root_id": self.root_id},
        )
        return Checkpoint.start(self.mode)

    def _suspend(self, checkpoint: Checkpoint) -> RunResult:
        self.store.save(checkpoint)
        self.trigger.schedule(self.settings.EXTRACT_RESUME_DELAY)
        self.state = EngineState.SUSPENDED
        result = self._result(checkpoint)
        logger.info(
            result.summary(),
            extra={
                "checkpoint": checkpoint.to_properties(),
                "resume_in": self.settings.EXTRACT_RESUME_DELAY,
            },
        )
        return result

    def _complete(self) -> RunResult:
        self.store.clear()
        self.trigger.cancel()
        self.state = EngineState.COMPLETED
        result = self._result()
        logger.info(
            result.summary(),
            extra={
                "skipped_lists": result.skipped_lists,
                "skipped_branches": result.skipped_branches,
            },
        )
        return result

    def _result(self, checkpoint: Optional[Checkpoint] = None) -> RunResult:
        return RunResult(
            state=self.state,
            rows_written=self._rows_written,
            total_rows_written=self._run_rows + self._rows_written,
            pages_fetched=self._pages_fetched,
            skipped_lists=list(self._skipped_lists),
            skipped_branches=list(self.enumerator.skipped_branches),
            total_lists_skipped=self._run_lists_skipped + len(self._skipped_lists),
            checkpoint=checkpoint,
        )

    # =========================================================================
    # Traversal
    # =========================================================================

    async def _traverse(self, cursor: Checkpoint) -> None:
        async with aclosing(self.enumerator.leaves(self.mode, self.root_id, cursor)) as leaves:
            async for leaf in leaves:
                try:
                    await self._extract_leaf(leaf, cursor)
                except PageFetchError as e:
                    self._skipped_lists.append(leaf.path)
                    logger.error(
                        "Skipping list %s: %s",
                        leaf.path,
                        e,
                        extra={"list_id": leaf.task_list.id},
                    )

    async def _extract_leaf(self, leaf: Leaf, cursor: Checkpoint) -> None:
        """Fetch every page of a leaf, active tasks first, then archived."""
        for archived_index in range(cursor.archived_start(leaf.position), len(ARCHIVED_STATES)):
            archived = ARCHIVED_STATES[archived_index]
            page = cursor.page_start(leaf.position, archived_index)

            while True:
                if self._budget_exhausted():
                    raise _Suspend(
                        cursor.at(
                            leaf.position,
                            archived_index,
                            page,
                            rows_written=self._run_rows + self._rows_written,
                            lists_skipped=self._run_lists_skipped + len(self._skipped_lists),
                        )
                    )

                self._fetches_attempted += 1
                result = await self.fetcher.fetch(leaf.task_list.id, archived, page)
                self._pages_fetched += 1

                if result.tasks:
                    self._emit(leaf, archived, result.tasks)
                    logger.info(
                        "%s: page %d, %d tasks (%s)",
                        leaf.path,
                        page + 1,
                        len(result.tasks),
                        "archived" if archived else "active",
                        extra={"rows_written": self._rows_written},
                    )

                if not result.tasks or not result.has_more:
                    break
                page += 1

    def _budget_exhausted(self) -> bool:
        # At least one fetch attempt per invocation. A list that ends in
        # PageFetchError still moves the cursor past it.
        if self._fetches_attempted == 0:
            return False
        return self.clock() - self._started_at > self.time_budget

    def _emit(self, leaf: Leaf, archived: bool, tasks: list[Task]) -> None:
        provenance = Provenance(
            space=leaf.space.name,
            folder=leaf.folder.name,
            list=leaf.task_list.name,
            archived=archived,
        )
        discovered = [task.with_provenance(provenance) for task in tasks]

        new_columns = observe_custom_fields(discovered, self.registry)
        if new_columns:
            self.sink.extend_header(new_columns)

        rows = [
            task_to_row(
                task,
                self.registry,
                self.resolver,
                description_max_chars=self.settings.DESCRIPTION_MAX_CHARS,
            )
            for task in discovered
        ]
        self.sink.append_rows(rows)
        self._rows_written += len(rows)
