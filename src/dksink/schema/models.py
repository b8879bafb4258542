"""Destination table representation classes."""

from dataclasses import dataclass, field
from typing import Optional

from dksink.types import ColumnName, TableName


@dataclass(frozen=True)
class ColumnDescriptor:
    """A column as reported by Doris."""

    column_name: ColumnName
    type_name: str
    comment: Optional[str] = None

    @property
    def normalized_type(self) -> str:
        """Return uppercase type for case-insensitive comparisons."""
        return self.type_name.strip().upper()


@dataclass
class SchemaProperty:
    """One column entry of a Doris ``_schema`` response."""

    name: str
    type: str
    comment: Optional[str] = None


@dataclass
class TableSchema:
    """Raw catalog answer for a table: keys type plus column properties."""

    keys_type: Optional[str]
    properties: list[SchemaProperty] = field(default_factory=list)


@dataclass
class TableDescriptor:
    """Last fetched column set of a Doris table. May be stale."""

    table_name: TableName
    keys_type: Optional[str] = None
    columns: list[ColumnDescriptor] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._by_name = {c.column_name: c for c in self.columns}

    @classmethod
    def from_schema(cls, table_name: str, schema: TableSchema) -> "TableDescriptor":
        return cls(
            table_name=table_name,
            keys_type=schema.keys_type,
            columns=[
                ColumnDescriptor(column_name=p.name, type_name=p.type, comment=p.comment)
                for p in schema.properties
            ],
        )

    def has_column(self, name: ColumnName) -> bool:
        return name in self._by_name

    def get_column(self, name: ColumnName) -> Optional[ColumnDescriptor]:
        """Get a column by name."""
        return self._by_name.get(name)

    def column_names(self) -> set[ColumnName]:
        """Get all column names."""
        return set(self._by_name)
