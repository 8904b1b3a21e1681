"""
Output column registry.

The header starts with a fixed set of base columns; custom-field columns are
appended the first time a field name is seen. A column never moves once it
has an index, so rows written earlier stay aligned when the header grows.
"""

from collections.abc import Iterable, Sequence

BASE_COLUMNS: tuple[str, ...] = (
    "ID",
    "Name",
    "URL",
    "Status",
    "Status Color",
    "Status Category",
    "Priority",
    "Description",
    "Created",
    "Updated",
    "Closed",
    "Done",
    "Due Date",
    "Assignees",
    "Tags",
    "Time Estimate (h)",
    "Time Tracked (h)",
    "Space",
    "Folder",
    "List",
    "Archived",
)


class SchemaRegistry:
    """Ordered, deduplicated column names for one run."""

    def __init__(self, base_columns: Iterable[str] = BASE_COLUMNS) -> None:
        self._columns: list[str] = []
        self._index: dict[str, int] = {}
        for name in base_columns:
            self.observe(name)
        self.base_width = len(self._columns)

    @classmethod
    def from_header(
        cls, header: Sequence[str], base_columns: Iterable[str] = BASE_COLUMNS
    ) -> "SchemaRegistry":
        """Rebuild the registry from a header already written to the sink.

        Base columns keep their positions; the header's remaining names follow
        in header order. Raises ValueError if the header does not start with
        the base columns, since existing rows would no longer line up.
        """
        registry = cls(base_columns)
        prefix = list(header[: registry.base_width])
        if prefix != registry.columns:
            raise ValueError(
                f"Sink header {prefix!r} does not start with the base columns"
            )
        for name in header[registry.base_width :]:
            registry.observe(name)
        return registry

    def observe(self, name: str) -> int:
        """Return the column index for `name`, appending it if unseen."""
        index = self._index.get(name)
        if index is None:
            index = len(self._columns)
            self._columns.append(name)
            self._index[name] = index
        return index

    def index_of(self, name: str) -> int:
        return self._index[name]

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def width(self) -> int:
        return len(self._columns)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._columns)
