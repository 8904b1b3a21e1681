"""
ClickUp API Client

Thin async wrapper over the read-only ClickUp v2 endpoints the extractor needs.
Every call is a single HTTP request; retries and rate-limit handling live in
RetryPolicy so the client stays a plain mapping from endpoints to models.

Endpoints:
- GET /team                      teams the key can see
- GET /team/{id}/space           spaces of a team
- GET /space/{id}/folder         folders of a space
- GET /space/{id}/list           folderless lists of a space
- GET /folder/{id}/list          lists of a folder
- GET /list/{id}                 one list with its folder/space references
- GET /list/{id}/task            one page of tasks (max 100 per page)

Usage:
    async with ClickUpClient(api_key="pk_...") as client:
        spaces = await client.get_spaces("9001")
"""

import logging
from types import TracebackType
from typing import Any, Optional

import httpx

from clickdown.apps.extractor.exceptions import (
    ClickUpAPIError,
    MalformedResponseError,
    RateLimitedError,
    TransientAPIError,
)
from clickdown.utils.config import Settings
from clickdown.utils.schemas import Folder, Space, TaskList, Team

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.clickup.com/api/v2"


class ClickUpClient:
    """Async client for the ClickUp v2 REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "ClickUpClient":
        return cls(
            api_key=settings.CLICKUP_API_KEY,
            base_url=settings.CLICKUP_API_BASE,
            timeout=settings.API_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "ClickUpClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Issue a GET request and decode the JSON body.

        Raises:
            TransientAPIError: On transport failures and 5xx responses
            RateLimitedError: On HTTP 429
            ClickUpAPIError: On any other error status
            MalformedResponseError: If the body is not a JSON object
        """
        try:
            response = await self._http.get(path, params=params)
        except httpx.TransportError as e:
            raise TransientAPIError(f"{type(e).__name__}: {e}", path=path) from e

        if response.status_code == 429:
            raise RateLimitedError("Rate limit exceeded", status_code=429, path=path)

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code >= 500:
                raise TransientAPIError(message, status_code=response.status_code, path=path)
            raise ClickUpAPIError(message, status_code=response.status_code, path=path)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response from {path} is not valid JSON") from e

        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Response from {path} is a {type(payload).__name__}, expected an object"
            )

        return payload

    # =========================================================================
    # Hierarchy
    # =========================================================================

    async def get_teams(self) -> list[Team]:
        payload = await self._get("/team")
        return [Team.model_validate(t) for t in payload.get("teams") or []]

    async def get_spaces(self, team_id: str) -> list[Space]:
        payload = await self._get(f"/team/{team_id}/space")
        return [Space.model_validate(s) for s in payload.get("spaces") or []]

    async def get_folders(self, space_id: str) -> list[Folder]:
        payload = await self._get(f"/space/{space_id}/folder")
        return [Folder.model_validate(f) for f in payload.get("folders") or []]

    async def get_folderless_lists(self, space_id: str) -> list[TaskList]:
        payload = await self._get(f"/space/{space_id}/list")
        return [TaskList.model_validate(item) for item in payload.get("lists") or []]

    async def get_lists(self, folder_id: str) -> list[TaskList]:
        payload = await self._get(f"/folder/{folder_id}/list")
        return [TaskList.model_validate(item) for item in payload.get("lists") or []]

    async def get_list(self, list_id: str) -> TaskList:
        payload = await self._get(f"/list/{list_id}")
        return TaskList.model_validate(payload)

    # =========================================================================
    # Tasks
    # =========================================================================

    async def get_tasks(
        self,
        list_id: str,
        page: int,
        archived: bool = False,
        include_closed: bool = True,
        subtasks: bool = True,
    ) -> dict[str, Any]:
        """
        Fetch one raw page of tasks.

        Returns:
            The decoded payload: {"tasks": [...], "last_page": bool?}
        """
        params = {
            "page": page,
            "archived": _flag(archived),
            "include_closed": _flag(include_closed),
            "subtasks": _flag(subtasks),
            "include_markdown_description": "true",
        }
        return await self._get(f"/list/{list_id}/task", params=params)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "Request failed"
    if isinstance(body, dict) and body.get("err"):
        return str(body["err"])
    return response.reason_phrase or "Request failed"
