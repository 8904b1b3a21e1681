"""Flatten tasks into rows aligned with the column registry."""

from typing import Optional

from clickdown.apps.extractor.fields import FieldResolver
from clickdown.apps.extractor.schema_registry import SchemaRegistry
from clickdown.utils.schemas import Task

MS_PER_HOUR = 3_600_000


def observe_custom_fields(tasks: list[Task], registry: SchemaRegistry) -> list[str]:
    """Register every custom-field name on the page.

    Returns:
        Column names that were new to the registry, in first-seen order
    """
    before = registry.width
    for task in tasks:
        for field in task.custom_fields:
            if field.name:
                registry.observe(field.name)
    return registry.columns[before:]


def task_to_row(
    task: Task,
    registry: SchemaRegistry,
    resolver: FieldResolver,
    description_max_chars: int = 5000,
) -> list[str]:
    """
    Build one output row for a task.

    Custom fields are placed only in columns the registry already knows
    (see observe_custom_fields); the row has exactly `registry.width` cells.
    """
    row = [""] * registry.width
    provenance = task.provenance

    base = {
        "ID": task.id,
        "Name": task.name,
        "URL": task.url,
        "Status": task.status.status,
        "Status Color": task.status.color,
        "Status Category": task.status.category.value,
        "Priority": task.priority.priority if task.priority else "",
        "Description": (task.description or task.text_content or "")[:description_max_chars],
        "Created": task.date_created or "",
        "Updated": task.date_updated or "",
        "Closed": task.date_closed or "",
        "Done": task.date_done or "",
        "Due Date": task.due_date or "",
        "Assignees": ", ".join(u.username or u.id or "" for u in task.assignees),
        "Tags": ", ".join(tag.name for tag in task.tags),
        "Time Estimate (h)": _hours(task.time_estimate),
        "Time Tracked (h)": _hours(task.time_spent),
        "Space": provenance.space if provenance else "",
        "Folder": provenance.folder if provenance else "",
        "List": provenance.list if provenance else "",
        "Archived": ("true" if provenance.archived else "false") if provenance else "",
    }
    for name, value in base.items():
        if name in registry:
            row[registry.index_of(name)] = value

    for field in task.custom_fields:
        if field.name in registry:
            row[registry.index_of(field.name)] = resolver.resolve(field)

    return row


def _hours(millis: Optional[int]) -> str:
    if millis is None:
        return ""
    return f"{millis / MS_PER_HOUR:.2f}"
