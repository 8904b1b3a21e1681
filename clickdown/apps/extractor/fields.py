"""
Custom-field value resolution.

Maps a raw custom-field record to the text shown in its output column. The
rules are dispatched on the field's type tag; anything not covered falls back
to a generic rendering, so resolution never raises.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import orjson

from clickdown.utils.schemas import CustomField, FieldType

LIST_SEPARATOR = ", "

_OPTION_TYPES = {FieldType.DROP_DOWN.value, FieldType.LABELS.value}
_RATING_TYPES = {FieldType.RATING.value, FieldType.EMOJI.value}
_RELATIONSHIP_TYPES = {
    FieldType.LIST_RELATIONSHIP.value,
    FieldType.TASK_RELATIONSHIP.value,
    FieldType.TASKS.value,
}
_OBJECT_DISPLAY_KEYS = ("name", "label", "value")


class FieldResolver:
    """Renders custom-field values for display.

    Args:
        yes_label: Text for a checked checkbox
        no_label: Text for an unchecked checkbox
        date_format: strftime format for date fields (rendered in UTC)
    """

    def __init__(
        self,
        yes_label: str = "Yes",
        no_label: str = "No",
        date_format: str = "%d/%m/%Y",
    ) -> None:
        self.yes_label = yes_label
        self.no_label = no_label
        self.date_format = date_format

    def resolve(self, field: CustomField) -> str:
        value = field.value
        if value is None:
            return ""

        try:
            resolved = self._resolve_typed(field.type, field.type_config, value)
        except (TypeError, ValueError, AttributeError, OverflowError):
            resolved = None

        if resolved is None:
            return _render(value)
        return resolved

    def _resolve_typed(self, field_type: str, type_config: Any, value: Any) -> Optional[str]:
        """Apply the type-specific rule; None means "use the generic rendering"."""
        config = type_config if isinstance(type_config, dict) else {}

        if field_type in _OPTION_TYPES and isinstance(config.get("options"), list):
            options = [o for o in config["options"] if isinstance(o, dict)]
            if isinstance(value, list):
                return LIST_SEPARATOR.join(_option_label(options, v) for v in value)
            return _option_label(options, value)

        if field_type == FieldType.USERS.value and isinstance(value, list):
            return LIST_SEPARATOR.join(_name_or_id(u, "username") for u in value)

        if field_type == FieldType.DATE.value:
            return self._format_date(value)

        if field_type == FieldType.CHECKBOX.value:
            return self.yes_label if value is True or value == "true" else self.no_label

        if field_type in _RATING_TYPES and config.get("count"):
            return f"{_render(value)}/{_render(config['count'])}"

        if field_type == FieldType.LOCATION.value and isinstance(value, dict):
            address = value.get("formatted_address")
            if address:
                return str(address)

        if field_type in _RELATIONSHIP_TYPES and isinstance(value, list):
            return LIST_SEPARATOR.join(_name_or_id(item, "name") for item in value)

        return None

    def _format_date(self, value: Any) -> str:
        if isinstance(value, bool):
            return _render(value)
        try:
            millis = int(value)
        except (TypeError, ValueError):
            return _render(value)
        try:
            moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return _render(value)
        return moment.strftime(self.date_format)


def _option_label(options: list[dict[str, Any]], value: Any) -> str:
    for option in options:
        if option.get("id") == value or _same_orderindex(option.get("orderindex"), value):
            label = option.get("label") or option.get("name")
            if label is not None:
                return str(label)
    return _render(value)


def _same_orderindex(orderindex: Any, value: Any) -> bool:
    if orderindex is None or isinstance(value, (dict, list, bool)):
        return False
    return orderindex == value or str(orderindex) == str(value)


def _name_or_id(item: Any, name_key: str) -> str:
    if isinstance(item, dict):
        name = item.get(name_key)
        if name:
            return str(name)
        if item.get("id") is not None:
            return str(item["id"])
        return _render(item)
    return _render(item)


def _render(value: Any) -> str:
    """Generic text rendering for values without a type-specific rule."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict):
        for key in _OBJECT_DISPLAY_KEYS:
            if value.get(key) not in (None, ""):
                return _render(value[key])
        return _to_json(value)
    if isinstance(value, list):
        return LIST_SEPARATOR.join(_render(v) for v in value)
    return str(value)


def _to_json(value: Any) -> str:
    try:
        return orjson.dumps(value, option=orjson.OPT_SORT_KEYS).decode("utf-8")
    except (TypeError, orjson.JSONEncodeError):
        return str(value)


_default_resolver = FieldResolver()


def resolve_field(field: CustomField) -> str:
    """Resolve a field with the default labels and date format."""
    return _default_resolver.resolve(field)
