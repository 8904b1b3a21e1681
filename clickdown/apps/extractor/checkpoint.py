"""
Checkpoint - Resumable Traversal Cursor

A checkpoint records the exact position of the next unit of work: the leaf
(space, folder slot, list), the archived state and the page. It is persisted
as a flat bag of string properties, overwritten on every suspension and
deleted when the run completes or fails.

Reset rule (depth-first resumption):
- the space index selects where traversal restarts;
- the folder index applies only inside that space;
- the list index applies only inside that space and folder;
- the archived and page indices apply only to that exact leaf.
Every branch after the resumed one starts again from zero.

Usage:
    store = FileCheckpointStore(settings.checkpoint_path)
    checkpoint = store.load() or Checkpoint.start(RunMode.WORKSPACE)
"""

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clickdown.apps.extractor.exceptions import CheckpointError

logger = logging.getLogger(__name__)

ARCHIVED_STATES = (False, True)


class RunMode(str, Enum):
    LIST = "list"
    WORKSPACE = "workspace"


class Checkpoint(BaseModel):
    """Position of the next page to fetch, plus run totals carried across slices."""

    model_config = ConfigDict(frozen=True)

    mode: RunMode
    space_index: int = Field(default=0, ge=0)
    folder_index: int = Field(default=0, ge=0)
    list_index: int = Field(default=0, ge=0)
    archived_index: int = Field(default=0, ge=0, le=len(ARCHIVED_STATES) - 1)
    page_index: int = Field(default=0, ge=0)
    rows_written: int = Field(default=0, ge=0)
    lists_skipped: int = Field(default=0, ge=0)

    @classmethod
    def start(cls, mode: RunMode) -> "Checkpoint":
        return cls(mode=mode)

    @property
    def leaf_position(self) -> tuple[int, int, int]:
        return (self.space_index, self.folder_index, self.list_index)

    @property
    def is_origin(self) -> bool:
        return (
            self.leaf_position == (0, 0, 0)
            and self.archived_index == 0
            and self.page_index == 0
        )

    # =========================================================================
    # Reset rule
    # =========================================================================

    def folder_start(self, space_index: int) -> int:
        return self.folder_index if space_index == self.space_index else 0

    def list_start(self, space_index: int, folder_index: int) -> int:
        if (space_index, folder_index) == (self.space_index, self.folder_index):
            return self.list_index
        return 0

    def archived_start(self, leaf_position: tuple[int, int, int]) -> int:
        return self.archived_index if leaf_position == self.leaf_position else 0

    def page_start(self, leaf_position: tuple[int, int, int], archived_index: int) -> int:
        if leaf_position == self.leaf_position and archived_index == self.archived_index:
            return self.page_index
        return 0

    def at(
        self,
        leaf_position: tuple[int, int, int],
        archived_index: int,
        page_index: int,
        rows_written: int,
        lists_skipped: int,
    ) -> "Checkpoint":
        """Checkpoint for a new position in the same run."""
        space_index, folder_index, list_index = leaf_position
        return self.model_copy(
            update={
                "space_index": space_index,
                "folder_index": folder_index,
                "list_index": list_index,
                "archived_index": archived_index,
                "page_index": page_index,
                "rows_written": rows_written,
                "lists_skipped": lists_skipped,
            }
        )

    # =========================================================================
    # Property bag encoding
    # =========================================================================

    def to_properties(self) -> dict[str, str]:
        return {key: str(value) for key, value in self.model_dump(mode="json").items()}

    @classmethod
    def from_properties(cls, properties: dict[str, str]) -> "Checkpoint":
        try:
            return cls.model_validate(properties)
        except ValidationError as e:
            raise CheckpointError(f"Invalid checkpoint properties: {e}") from e


class CheckpointStore(ABC):
    """Key-value property bag holding at most one checkpoint."""

    def load(self) -> Optional[Checkpoint]:
        properties = self._read()
        if not properties:
            return None
        return Checkpoint.from_properties(properties)

    def save(self, checkpoint: Checkpoint) -> None:
        self._write(checkpoint.to_properties())

    @abstractmethod
    def clear(self) -> None:
        """Delete the persisted checkpoint, if any."""

    @abstractmethod
    def _read(self) -> Optional[dict[str, str]]: ...

    @abstractmethod
    def _write(self, properties: dict[str, str]) -> None: ...


class MemoryCheckpointStore(CheckpointStore):
    """In-process store, for continuous runs and tests."""

    def __init__(self) -> None:
        self.properties: dict[str, str] = {}

    def clear(self) -> None:
        self.properties = {}

    def _read(self) -> Optional[dict[str, str]]:
        return dict(self.properties)

    def _write(self, properties: dict[str, str]) -> None:
        self.properties = dict(properties)


class FileCheckpointStore(CheckpointStore):
    """JSON file store; writes go through a temp file and an atomic replace."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Checkpoint cleared", extra={"path": str(self.path)})

    def _read(self) -> Optional[dict[str, str]]:
        if not self.path.exists():
            return None
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise CheckpointError(f"Cannot read checkpoint {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CheckpointError(f"Checkpoint {self.path} is not a property object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, properties: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(orjson.dumps(properties, option=orjson.OPT_INDENT_2))
        os.replace(tmp_path, self.path)
