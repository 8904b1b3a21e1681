"""
Extraction Scheduler - Cron, On-Demand and Resumed Execution

Manages scheduled and manual extraction job execution using APScheduler.

Features:
- Cron-based scheduling (configurable via EXTRACT_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution
- One-shot resumption jobs after a time-sliced run suspends
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    python -m clickdown.apps.extractor

    # Run once and exit
    RUN_ONCE=true python -m clickdown.apps.extractor
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from clickdown.apps.extractor.checkpoint import CheckpointStore, FileCheckpointStore
from clickdown.apps.extractor.client import ClickUpClient
from clickdown.apps.extractor.engine import EngineState, ExtractionEngine, RunResult
from clickdown.apps.extractor.sinks import OutputSink, SQLiteSink
from clickdown.utils.config import RUN_MODES, Settings, get_settings
from clickdown.utils.logging import setup_logging

logger = logging.getLogger(__name__)

EXTRACTION_JOB_ID = "extraction_job"
RESUME_JOB_ID = "extraction_resume"


class SchedulerResumptionTrigger:
    """
    Schedules a one-shot resumption job on an APScheduler instance.

    A single fixed job id with replace_existing=True means at most one
    pending resumption exists at any time.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        job: Callable[[], Awaitable[object]],
        job_id: str = RESUME_JOB_ID,
    ) -> None:
        self.scheduler = scheduler
        self.job = job
        self.job_id = job_id

    def schedule(self, delay_seconds: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            self.job,
            trigger=DateTrigger(run_date=run_date),
            id=self.job_id,
            name="Resume suspended extraction",
            replace_existing=True,
        )
        logger.info("Resumption scheduled", extra={"run_date": run_date.isoformat()})

    def cancel(self) -> None:
        if self.scheduler.get_job(self.job_id) is not None:
            self.scheduler.remove_job(self.job_id)
            logger.info("Pending resumption cancelled")


class ExtractionScheduler:
    """
    Scheduler for periodic or on-demand extraction jobs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution, kept alive across resumptions
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        settings: Settings,
        run_once: bool = False,
        store: Optional[CheckpointStore] = None,
        sink_factory: Optional[Callable[[], OutputSink]] = None,
        client_factory: Optional[Callable[[], ClickUpClient]] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            settings: Application settings
            run_once: If True, run one extraction to completion and exit
            store: Checkpoint store (defaults to the file under STATE_DIR)
            sink_factory: Builds the output sink for each invocation
            client_factory: Builds the API client for each invocation
        """
        self.settings = settings
        self.run_once = run_once
        self.store = store or FileCheckpointStore(settings.checkpoint_path)
        self.sink_factory = sink_factory or (lambda: SQLiteSink(settings.OUTPUT_DB_PATH))
        self.client_factory = client_factory or (lambda: ClickUpClient.from_settings(settings))
        self.scheduler = AsyncIOScheduler()
        self.trigger = SchedulerResumptionTrigger(self.scheduler, self.execute_extraction)
        self.shutdown_event = asyncio.Event()
        self.last_result: Optional[RunResult] = None
        self._running = asyncio.Lock()

        logger.info(
            "ExtractionScheduler initialized",
            extra={
                "run_once": run_once,
                "mode": settings.EXTRACT_MODE,
                "cron_schedule": settings.EXTRACT_SCHEDULE_CRON,
                "time_budget": settings.EXTRACT_TIME_BUDGET,
            },
        )

    async def execute_extraction(self) -> Optional[RunResult]:
        """
        Execute one engine invocation (fresh run or resumption).

        A suspended run schedules its own resumption through the trigger;
        completed and failed runs end RUN_ONCE mode. The cron and resumption
        jobs share one engine slot: a call made while another invocation is
        in progress is skipped and returns None.
        """
        if self._running.locked():
            logger.warning("Extraction already in progress, skipping this invocation")
            return None

        async with self._running:
            return await self._execute()

    async def _execute(self) -> RunResult:
        logger.info("Starting extraction execution")

        client = self.client_factory()
        sink = self.sink_factory()
        try:
            engine = ExtractionEngine(
                self.settings, client, sink, self.store, trigger=self.trigger
            )
            result = await engine.run()
        except Exception as e:
            logger.error(
                "Extraction execution failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            result = RunResult(state=EngineState.FAILED, error=str(e))
        finally:
            sink.close()
            await client.close()

        self.last_result = result
        logger.info(result.summary(), extra={"state": result.state.value})

        if self.run_once and result.state != EngineState.SUSPENDED:
            logger.info("RUN_ONCE mode: signaling shutdown")
            self.shutdown_event.set()

        return result

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes immediately and exits once the extraction
        completes or fails, running any resumption jobs in between.
        """
        self.setup_signal_handlers()
        self.scheduler.start()
        logger.info("Scheduler started")

        try:
            if self.run_once:
                logger.info("Running in RUN_ONCE mode")
                await self.execute_extraction()
            else:
                logger.info("Running in scheduled mode")
                trigger = CronTrigger.from_crontab(self.settings.EXTRACT_SCHEDULE_CRON)
                self.scheduler.add_job(
                    self.execute_extraction,
                    trigger=trigger,
                    id=EXTRACTION_JOB_ID,
                    name="Periodic ClickUp Extraction",
                    replace_existing=True,
                )

                job = self.scheduler.get_job(EXTRACTION_JOB_ID)
                next_run = getattr(job, "next_run_time", None)
                logger.info(
                    "Scheduled extraction job",
                    extra={
                        "schedule": self.settings.EXTRACT_SCHEDULE_CRON,
                        "next_run": str(next_run) if next_run is not None else None,
                    },
                )

            logger.info("Waiting for jobs...")
            await self.shutdown_event.wait()

        finally:
            # Graceful shutdown
            logger.info("Shutting down scheduler")
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown complete")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m clickdown.apps.extractor",
        description="Extract ClickUp tasks into a flat table.",
    )
    parser.add_argument(
        "--mode",
        choices=RUN_MODES,
        help="Extract a single list or a whole workspace (overrides EXTRACT_MODE)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one extraction to completion and exit (same as RUN_ONCE=true)",
    )
    parser.add_argument(
        "--clear-checkpoint",
        action="store_true",
        help="Delete any saved checkpoint and exit",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for scheduler."""
    args = parse_args(argv)
    settings = get_settings()
    if args.mode:
        settings = settings.model_copy(update={"EXTRACT_MODE": args.mode})

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.LOG_BUFFER_SIZE)

    run_once = args.once or os.getenv("RUN_ONCE", "false").lower() in ("true", "1", "yes")

    scheduler = ExtractionScheduler(settings, run_once=run_once)
    if args.clear_checkpoint:
        scheduler.store.clear()
        return

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)

    result = scheduler.last_result
    if run_once and result is not None and result.state == EngineState.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
