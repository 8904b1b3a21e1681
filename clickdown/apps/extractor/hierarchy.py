"""
Hierarchy Enumerator - Workspace Traversal

Lazily walks a workspace and yields the lists (leaves) tasks are read from.

Order:
- spaces in API order;
- inside a space, folder slot 0 is the virtual folderless bucket, followed by
  real folders in API order;
- inside a folder slot, lists in API order.

The order is deterministic for unchanged backing data, which keeps the numeric
indices stored in a Checkpoint valid across invocations. Failing to list the
folders or lists of one branch skips that branch; failing to list the spaces
of the team is fatal.
"""

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from clickdown.apps.extractor.checkpoint import Checkpoint, RunMode
from clickdown.apps.extractor.client import ClickUpClient
from clickdown.apps.extractor.exceptions import ClickUpAPIError
from clickdown.apps.extractor.fetcher import RetryPolicy
from clickdown.utils.schemas import Folder, Space, TaskList

logger = logging.getLogger(__name__)

DEFAULT_FOLDERLESS_LABEL = "(No Folder)"


@dataclass(frozen=True)
class Leaf:
    space: Space
    folder: Folder
    task_list: TaskList
    space_index: int = 0
    folder_index: int = 0
    list_index: int = 0

    @property
    def position(self) -> tuple[int, int, int]:
        return (self.space_index, self.folder_index, self.list_index)

    @property
    def path(self) -> str:
        return f"{self.space.name} > {self.folder.name} > {self.task_list.name}"


class HierarchyEnumerator:
    """
    Produces the ordered leaf sequence under a list or a team.

    Branches that could not be listed are recorded in `skipped_branches`.
    """

    def __init__(
        self,
        client: ClickUpClient,
        retry_policy: RetryPolicy,
        folderless_label: str = DEFAULT_FOLDERLESS_LABEL,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy
        self.folderless_label = folderless_label
        self.skipped_branches: list[str] = []

    def leaves(self, mode: RunMode, root_id: str, start: Checkpoint) -> AsyncGenerator[Leaf, None]:
        if mode == RunMode.LIST:
            return self._single_list(root_id)
        return self._workspace(root_id, start)

    async def _single_list(self, list_id: str) -> AsyncGenerator[Leaf, None]:
        try:
            task_list = await self.retry_policy.call(self.client.get_list, list_id)
        except ClickUpAPIError as e:
            logger.warning(
                "Could not resolve list names, using the list id",
                extra={"list_id": list_id, "error": str(e)},
            )
            task_list = TaskList(id=list_id, name=list_id)

        space = Space(
            id=task_list.space.id if task_list.space and task_list.space.id else "",
            name=task_list.space.name if task_list.space else "",
        )
        if task_list.folder and not task_list.folder.hidden:
            folder = Folder(id=task_list.folder.id, name=task_list.folder.name)
        else:
            folder = self._virtual_folder()

        yield Leaf(space=space, folder=folder, task_list=task_list)

    async def _workspace(self, team_id: str, start: Checkpoint) -> AsyncGenerator[Leaf, None]:
        spaces = await self.retry_policy.call(self.client.get_spaces, team_id)
        logger.info("Workspace has %d spaces", len(spaces), extra={"team_id": team_id})

        for space_idx in range(start.space_index, len(spaces)):
            space = spaces[space_idx]
            logger.info(
                "Exploring space %s (%d/%d)",
                space.name,
                space_idx + 1,
                len(spaces),
                extra={"space_id": space.id},
            )
            folders = await self._folder_slots(space)

            for folder_idx in range(start.folder_start(space_idx), len(folders)):
                folder = folders[folder_idx]
                lists = await self._lists_of(space, folder)

                for list_idx in range(start.list_start(space_idx, folder_idx), len(lists)):
                    yield Leaf(
                        space=space,
                        folder=folder,
                        task_list=lists[list_idx],
                        space_index=space_idx,
                        folder_index=folder_idx,
                        list_index=list_idx,
                    )

    async def _folder_slots(self, space: Space) -> list[Folder]:
        """Virtual folderless bucket first, then the real folders."""
        slots = [self._virtual_folder()]
        try:
            slots.extend(await self.retry_policy.call(self.client.get_folders, space.id))
        except ClickUpAPIError as e:
            self._skip(f"{space.name} (folders)", e)
        return slots

    async def _lists_of(self, space: Space, folder: Folder) -> list[TaskList]:
        try:
            if folder.is_virtual:
                return await self.retry_policy.call(self.client.get_folderless_lists, space.id)
            return await self.retry_policy.call(self.client.get_lists, folder.id)
        except ClickUpAPIError as e:
            self._skip(f"{space.name} > {folder.name}", e)
            return []

    def _virtual_folder(self) -> Folder:
        return Folder(id=None, name=self.folderless_label)

    def _skip(self, branch: str, error: Exception) -> None:
        self.skipped_branches.append(branch)
        logger.error("Skipping branch %s: %s", branch, error, extra={"branch": branch})
