"""Keep Doris table columns in step with the fields records carry."""

import logging
from typing import Optional, Protocol

from dksink.converter.descriptor import FieldDescriptor, RecordDescriptor
from dksink.exceptions import (
    MissingTableError,
    SchemaChangeError,
    SchemaEvolutionDisabledError,
)
from dksink.schema.cache import TableMetadataCache
from dksink.schema.models import TableDescriptor, TableSchema
from dksink.types import DatabaseName, SchemaEvolutionMode, TableName

__all__ = ["Catalog", "DDLService", "SchemaEvolutionCoordinator"]

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    def table_exists(self, database: DatabaseName, table_name: TableName) -> bool: ...

    def get_schema(self, database: DatabaseName, table_name: TableName) -> TableSchema: ...


class DDLService(Protocol):
    def add_column(self, table_name: str, field: FieldDescriptor) -> None: ...


class SchemaEvolutionCoordinator:
    """
    Compare record fields against cached table metadata and add missing columns.

    Semantics:
    - Tables are never created; an unknown table that the catalog does not
      report is a MissingTableError.
    - Columns are added one per missing field, in record order. The cache entry
      is replaced only after every column was added; a failure part way leaves
      the cache as it was (and the table partially altered).
    - Not internally synchronized. Callers that may alter one table from
      several threads must hold ``cache.lock(table_name)`` around
      ``ensure_schema``.
    """

    def __init__(
        self,
        catalog: Catalog,
        ddl: DDLService,
        database: DatabaseName,
        mode: SchemaEvolutionMode = SchemaEvolutionMode.NONE,
        cache: Optional[TableMetadataCache] = None,
    ) -> None:
        self._catalog = catalog
        self._ddl = ddl
        self._database = database
        self._mode = mode
        self.cache = cache if cache is not None else TableMetadataCache()
        self.last_missing_fields: list[FieldDescriptor] = []

    def has_table(self, table_name: str) -> bool:
        if table_name in self.cache:
            return True
        exists = self._catalog.table_exists(self._database, table_name)
        if exists:
            self.cache.mark_exists(table_name)
        return exists

    def fetch_table_descriptor(self, table_name: str) -> TableDescriptor:
        """Return cached metadata for a known table, loading it on first use."""
        descriptor = self.cache.get(table_name)
        if descriptor is None:
            descriptor = self._load_table_descriptor(table_name)
            self.cache.put(descriptor)
            logger.info(f"Loaded metadata for table {table_name}.")
        else:
            logger.debug(f"Metadata cache hit for table {table_name}.")
        return descriptor

    def _load_table_descriptor(self, table_name: str) -> TableDescriptor:
        schema = self._catalog.get_schema(self._database, table_name)
        return TableDescriptor.from_schema(table_name, schema)

    @staticmethod
    def resolve_missing_fields(
        record: RecordDescriptor, table: TableDescriptor
    ) -> list[FieldDescriptor]:
        """Record fields with no column of the same name, in record order."""
        return [f for name, f in record.fields.items() if not table.has_column(name)]

    def ensure_schema(
        self, table_name: str, record: RecordDescriptor
    ) -> list[FieldDescriptor]:
        """Make sure ``table_name`` has a column for every field of ``record``.

        Returns:
            The fields whose columns were added (empty when nothing was missing).

        Raises:
            MissingTableError: If the table does not exist.
            SchemaEvolutionDisabledError: If columns are missing and evolution
                is disabled.
            SchemaChangeError: If adding a column fails.
        """
        if not self.has_table(table_name):
            logger.warning(
                f"The {table_name} table does not exist, please create it manually."
            )
            raise MissingTableError(table_name)

        table = self.fetch_table_descriptor(table_name)
        missing = self.resolve_missing_fields(record, table)
        self.last_missing_fields = missing
        if not missing:
            return []

        names = [f.name for f in missing]
        logger.info(
            f"Found missing columns in {table_name} table, "
            f"trying to add columns={names}."
        )
        if self._mode is SchemaEvolutionMode.NONE:
            logger.warning(
                f"Table '{table_name}' cannot be altered because schema evolution "
                "is disabled."
            )
            raise SchemaEvolutionDisabledError(table_name, names)

        for field in missing:
            try:
                self._ddl.add_column(table_name, field)
            except SchemaChangeError:
                raise
            except Exception as e:
                raise SchemaChangeError(
                    f"Failed to add column {field.name} to {table_name}: {e}",
                    table_name=table_name,
                    field_name=field.name,
                ) from e

        self.cache.put(self._load_table_descriptor(table_name))
        logger.info(f"Added columns {names} to {table_name}; refreshed table metadata.")
        return missing
