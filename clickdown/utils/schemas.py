"""
Pydantic Schemas - Data Validation Models

Defines the Pydantic schemas for the records returned by the ClickUp API and
for the context the extractor attaches to them:
- Hierarchy nodes (Team, Space, Folder, TaskList)
- Tasks with status, priority, assignees, tags and custom fields
- Provenance: where in the hierarchy a task was found

All models ignore unknown keys so additional API fields never break parsing.

Usage:
    from clickdown.utils.schemas import Task

    task = Task.model_validate(raw_task)
    print(task.status.category)
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


class FieldType(str, Enum):
    """Custom-field type tags with dedicated display rules."""

    DROP_DOWN = "drop_down"
    LABELS = "labels"
    USERS = "users"
    DATE = "date"
    CHECKBOX = "checkbox"
    RATING = "rating"
    EMOJI = "emoji"
    LOCATION = "location"
    LIST_RELATIONSHIP = "list_relationship"
    TASK_RELATIONSHIP = "task_relationship"
    TASKS = "tasks"


class StatusCategory(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    OTHER = "other"


class APIRecord(BaseModel):
    """Base model for API payloads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _id_to_str(v: Any) -> Any:
    return str(v) if isinstance(v, int) else v


# ClickUp returns numeric ids for some records (users, teams)
RecordId = Annotated[str, BeforeValidator(_id_to_str)]


# =============================================================================
# Hierarchy
# =============================================================================


class NodeRef(APIRecord):
    """Reference to a parent node embedded in another record."""

    id: Optional[RecordId] = None
    name: str = ""
    hidden: bool = False


class Team(APIRecord):
    id: RecordId
    name: str = ""


class Space(APIRecord):
    id: RecordId
    name: str = ""


class Folder(APIRecord):
    """A folder, or the virtual folderless bucket when `id` is None."""

    id: Optional[RecordId] = None
    name: str = ""

    @property
    def is_virtual(self) -> bool:
        return self.id is None


class TaskList(APIRecord):
    id: RecordId
    name: str = ""
    folder: Optional[NodeRef] = None
    space: Optional[NodeRef] = None


# =============================================================================
# Tasks
# =============================================================================


class User(APIRecord):
    id: Optional[RecordId] = None
    username: Optional[str] = None
    email: Optional[str] = None


class Tag(APIRecord):
    name: str = ""


class Status(APIRecord):
    status: str = ""
    color: str = ""
    type: str = ""

    @property
    def category(self) -> StatusCategory:
        """Lifecycle category derived from the status type."""
        if self.type == "open":
            return StatusCategory.OPEN
        if self.type in ("closed", "done"):
            return StatusCategory.CLOSED
        return StatusCategory.OTHER


class Priority(APIRecord):
    priority: str = ""
    color: str = ""


class CustomField(APIRecord):
    """A typed custom-field value attached to a task.

    `value` keeps the raw API shape (scalar, array or object); rendering it
    for display is FieldResolver's job.
    """

    id: str = ""
    name: str = ""
    type: str = ""
    type_config: Any = None
    value: Any = None

    @field_validator("id", "name", "type", mode="before")
    @classmethod
    def text_or_empty(cls, v: Any) -> Any:
        if v is None:
            return ""
        return str(v) if isinstance(v, int) else v


class Provenance(BaseModel):
    """Hierarchy context a task was discovered under."""

    model_config = ConfigDict(frozen=True)

    space: str
    folder: str
    list: str
    archived: bool = False


class Task(APIRecord):
    id: RecordId
    custom_id: Optional[str] = None
    name: str = ""
    url: str = ""
    text_content: Optional[str] = None
    description: Optional[str] = None
    status: Status = Field(default_factory=Status)
    priority: Optional[Priority] = None
    date_created: Optional[str] = None
    date_updated: Optional[str] = None
    date_closed: Optional[str] = None
    date_done: Optional[str] = None
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    assignees: list[User] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    time_estimate: Optional[int] = None
    time_spent: Optional[int] = None
    custom_fields: list[CustomField] = Field(default_factory=list)
    provenance: Optional[Provenance] = None

    @field_validator(
        "date_created",
        "date_updated",
        "date_closed",
        "date_done",
        "due_date",
        "start_date",
        mode="before",
    )
    @classmethod
    def timestamp_to_str(cls, v: Any) -> Optional[str]:
        """Epoch-millisecond timestamps arrive as strings or numbers."""
        if v is None or v == "":
            return None
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v)

    @field_validator("assignees", "tags", "custom_fields", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def with_provenance(self, provenance: Provenance) -> "Task":
        return self.model_copy(update={"provenance": provenance})
