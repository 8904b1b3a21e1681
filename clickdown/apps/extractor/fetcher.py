"""
Page Fetcher - Resilient Task Pagination

Fetches one page of tasks at a time for a (list, archived, page) tuple.

Features:
- Exponential backoff retry strategy via tenacity (3 attempts by default,
  delay = base delay x attempt number)
- HTTP 429 handled with a fixed cooldown that does not consume retry attempts
- Hard page ceiling so a misbehaving API can never paginate forever
- Exhausted retries surface as PageFetchError so callers skip the list

Usage:
    policy = RetryPolicy.from_settings(settings)
    fetcher = PageFetcher(client, policy)
    page = await fetcher.fetch("901", archived=False, page=0)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from clickdown.apps.extractor.client import ClickUpClient
from clickdown.apps.extractor.exceptions import (
    ClickUpAPIError,
    MalformedResponseError,
    PageFetchError,
    RateLimitedError,
    TransientAPIError,
)
from clickdown.utils.config import Settings
from clickdown.utils.schemas import Task

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """
    Retry wrapper shared by task pagination and hierarchy listing.

    Handles:
    - TransientAPIError: retried up to max_attempts with incremental backoff
    - RateLimitedError: cooldown then retry, bounded by rate_limit_max_waits
      and never counted as an attempt
    - Any other ClickUpAPIError: raised immediately
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        rate_limit_cooldown: float = 5.0,
        rate_limit_max_waits: int = 12,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.rate_limit_cooldown = rate_limit_cooldown
        self.rate_limit_max_waits = rate_limit_max_waits
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, sleep: SleepFunc = asyncio.sleep) -> "RetryPolicy":
        return cls(
            max_attempts=settings.EXTRACT_MAX_RETRIES,
            base_delay=settings.EXTRACT_RETRY_BASE_DELAY,
            rate_limit_cooldown=settings.EXTRACT_RATE_LIMIT_COOLDOWN,
            rate_limit_max_waits=settings.EXTRACT_RATE_LIMIT_MAX_WAITS,
            sleep=sleep,
        )

    async def call(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run an API operation under the retry policy.

        Raises:
            TransientAPIError: If every attempt failed transiently
            RateLimitedError: If the API kept answering 429 past the wait limit
            ClickUpAPIError: On non-retryable API errors
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception_type(TransientAPIError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await self._call_rate_limited(operation, *args, **kwargs)
        return result

    async def _call_rate_limited(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        waits = 0
        while True:
            try:
                return await operation(*args, **kwargs)
            except RateLimitedError as e:
                if waits >= self.rate_limit_max_waits:
                    logger.error(
                        "Rate limit persisted after %d cooldowns", waits, extra={"path": e.path}
                    )
                    raise
                waits += 1
                logger.warning(
                    "Rate limited, cooling down %.1fs (%d/%d)",
                    self.rate_limit_cooldown,
                    waits,
                    self.rate_limit_max_waits,
                    extra={"path": e.path},
                )
                await self._sleep(self.rate_limit_cooldown)


@dataclass
class TaskPage:
    tasks: list[Task] = field(default_factory=list)
    has_more: bool = False


class PageFetcher:
    """Retrieves single task pages with retry and a page-count ceiling."""

    def __init__(
        self,
        client: ClickUpClient,
        retry_policy: RetryPolicy,
        page_size: int = 100,
        max_pages: int = 50,
        include_closed: bool = True,
        subtasks: bool = True,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy
        self.page_size = page_size
        self.max_pages = max_pages
        self.include_closed = include_closed
        self.subtasks = subtasks

    @classmethod
    def from_settings(
        cls, client: ClickUpClient, retry_policy: RetryPolicy, settings: Settings
    ) -> "PageFetcher":
        return cls(
            client,
            retry_policy,
            page_size=settings.EXTRACT_PAGE_SIZE,
            max_pages=settings.EXTRACT_MAX_PAGES,
            include_closed=settings.EXTRACT_INCLUDE_CLOSED,
            subtasks=settings.EXTRACT_INCLUDE_SUBTASKS,
        )

    async def fetch(self, list_id: str, archived: bool, page: int) -> TaskPage:
        """
        Fetch one page of tasks.

        Args:
            list_id: List to read from
            archived: Whether to read archived tasks
            page: Zero-based page number

        Returns:
            TaskPage; has_more is True iff the page was full, the API did not
            flag it as the last page, and the page ceiling is not reached

        Raises:
            PageFetchError: If the page could not be fetched
            MalformedResponseError: If the payload has no task array
        """
        if page >= self.max_pages:
            logger.warning(
                "Page ceiling reached, not fetching",
                extra={"list_id": list_id, "archived": archived, "page": page},
            )
            return TaskPage()

        try:
            payload = await self.retry_policy.call(
                self.client.get_tasks,
                list_id,
                page,
                archived=archived,
                include_closed=self.include_closed,
                subtasks=self.subtasks,
            )
        except ClickUpAPIError as e:
            raise PageFetchError(list_id, archived, page, e) from e

        raw_tasks = payload.get("tasks")
        if raw_tasks is None:
            raw_tasks = []
        if not isinstance(raw_tasks, list):
            raise MalformedResponseError(f"Task page {page} of list {list_id} has no task array")

        tasks = [Task.model_validate(t) for t in raw_tasks]
        has_more = len(raw_tasks) == self.page_size and payload.get("last_page") is not True

        if has_more and page + 1 >= self.max_pages:
            logger.warning(
                "Stopping pagination at safety ceiling of %d pages",
                self.max_pages,
                extra={"list_id": list_id, "archived": archived},
            )
            has_more = False

        logger.debug(
            "Fetched task page",
            extra={
                "list_id": list_id,
                "archived": archived,
                "page": page,
                "count": len(tasks),
                "has_more": has_more,
            },
        )
        return TaskPage(tasks=tasks, has_more=has_more)
