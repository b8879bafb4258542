"""Shared test helpers for dksink tests."""

from typing import Any, Optional
from unittest.mock import MagicMock

from dksink.config import Config
from dksink.connect import ConnectSchema, SchemaType, SinkRecord, Struct
from dksink.schema.models import SchemaProperty, TableSchema
from dksink.types import ConverterMode, SchemaEvolutionMode

INT32 = ConnectSchema(SchemaType.INT32)
INT64 = ConnectSchema(SchemaType.INT64)
STRING = ConnectSchema(SchemaType.STRING)
OPTIONAL_STRING = ConnectSchema(SchemaType.STRING, optional=True)


class FakeRow:
    """Mock row from DorisQueryClient.fetchall().

    Supports dict-like access via __getitem__ and .get().
    """

    def __init__(self, data: dict):
        self._data = data

    def __getitem__(self, key):
        return self._data[key]

    def get(self, key, default=None):
        return self._data.get(key, default)


def make_test_config(
    converter_mode: ConverterMode = ConverterMode.DEBEZIUM_INGESTION,
    schema_evolution: SchemaEvolutionMode = SchemaEvolutionMode.BASIC,
    **kwargs,
) -> Config:
    """Create a Config for tests with sensible defaults."""
    kwargs.setdefault("name", "test-connector")
    kwargs.setdefault("topics", ["test_topic"])
    kwargs.setdefault("doris_urls", ["127.0.0.1"])
    kwargs.setdefault("doris_user", "root")
    kwargs.setdefault("database", "test_db")
    return Config(
        converter_mode=converter_mode, schema_evolution=schema_evolution, **kwargs
    )


def row_schema(*fields: tuple[str, ConnectSchema], name: str = "server.db.t.Value"):
    """Struct schema for a table row."""
    return ConnectSchema.struct(list(fields), name=name, optional=True)


def envelope_schema(row: ConnectSchema, name: str = "server.db.t.Envelope"):
    """Debezium envelope schema around ``row``."""
    return ConnectSchema.struct(
        [
            ("before", row),
            ("after", row),
            ("op", STRING),
        ],
        name=name,
    )


def make_change_record(
    row: ConnectSchema,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    key_fields: tuple[str, ...] = ("id",),
    topic: str = "test_topic",
    offset: int = 0,
) -> SinkRecord:
    """Build a Debezium change record with the given before/after rows."""
    schema = envelope_schema(row)
    value = Struct(schema)
    value.put("before", Struct(row, before) if before is not None else None)
    value.put("after", Struct(row, after) if after is not None else None)
    value.put("op", "d" if after is None else "u")

    key_schema = None
    key = None
    if key_fields:
        key_schema = ConnectSchema.struct(
            [(f.name, f.schema) for f in row.fields if f.name in key_fields]
        )
        source = after if after is not None else before
        key = Struct(key_schema, {name: source[name] for name in key_fields})

    return SinkRecord(
        topic=topic,
        partition=0,
        offset=offset,
        value=value,
        value_schema=schema,
        key=key,
        key_schema=key_schema,
    )


def make_table_schema(*columns: tuple[str, str], keys_type: str = "UNIQUE_KEYS"):
    """TableSchema as returned by the catalog."""
    return TableSchema(
        keys_type=keys_type,
        properties=[SchemaProperty(name=n, type=t) for n, t in columns],
    )


class FakeDoris:
    """In-memory catalog and DDL service over a dict of table columns.

    ``add_column`` really adds the column, so a later ``get_schema`` sees it.
    Both collaborators are MagicMock wrappers, so call counts can be asserted.
    """

    def __init__(self, tables: Optional[dict[str, list[tuple[str, str]]]] = None):
        self.tables = {name: list(cols) for name, cols in (tables or {}).items()}
        self.catalog = MagicMock()
        self.catalog.table_exists.side_effect = self._table_exists
        self.catalog.get_schema.side_effect = self._get_schema
        self.ddl = MagicMock()
        self.ddl.add_column.side_effect = self._add_column

    def _table_exists(self, database, table_name):
        return table_name in self.tables

    def _get_schema(self, database, table_name):
        return make_table_schema(*self.tables[table_name])

    def _add_column(self, table_name, field):
        self.tables[table_name].append((field.name, field.type_name))

    def reset_mocks(self):
        self.catalog.reset_mock()
        self.ddl.reset_mock()
