"""
Extractor error taxonomy.

    ClickDownError
    ├── ConfigurationError       missing credentials or root ids
    ├── ClickUpAPIError          non-2xx response (structural when listing)
    │   ├── TransientAPIError    network failure or 5xx, retried with backoff
    │   └── RateLimitedError     HTTP 429, retried after a cooldown
    ├── MalformedResponseError   body is not the JSON we expect (fatal)
    ├── PageFetchError           retries exhausted for one page (leaf-fatal)
    └── CheckpointError          persisted checkpoint cannot be read (fatal)
"""

from typing import Optional


class ClickDownError(Exception):
    """Base class for all extractor errors."""


class ConfigurationError(ClickDownError):
    pass


class ClickUpAPIError(ClickDownError):
    """The API answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path

    def __str__(self) -> str:
        if self.status_code is None:
            return f"{self.message} ({self.path})" if self.path else self.message
        return f"HTTP {self.status_code} on {self.path}: {self.message}"


class TransientAPIError(ClickUpAPIError):
    pass


class RateLimitedError(ClickUpAPIError):
    pass


class MalformedResponseError(ClickDownError):
    pass


class PageFetchError(ClickDownError):
    """A task page could not be fetched; the caller skips the list."""

    def __init__(self, list_id: str, archived: bool, page: int, cause: Exception) -> None:
        super().__init__(
            f"Failed to fetch page {page} of list {list_id} (archived={archived}): {cause}"
        )
        self.list_id = list_id
        self.archived = archived
        self.page = page
        self.cause = cause


class CheckpointError(ClickDownError):
    pass
