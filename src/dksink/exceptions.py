"""Exception classes for dksink."""

from typing import Iterable, Optional

__all__ = [
    "DksinkError",
    "ConfigError",
    "DecodeError",
    "UnsupportedRecordError",
    "MissingTableError",
    "SchemaChangeError",
    "SchemaEvolutionDisabledError",
    "CatalogError",
    "DataFormatError",
]


class DksinkError(Exception):
    """Base exception for dksink."""


class ConfigError(DksinkError):
    """Error in configuration."""


class DecodeError(DksinkError):
    """Record shape cannot be reconciled with its declared schema."""


class UnsupportedRecordError(DksinkError):
    """Record belongs to a category the sink does not ingest."""

    def __init__(self, category: str, message: str):
        self.category = category
        super().__init__(message)


class MissingTableError(DksinkError):
    """Destination table does not exist and must be created out of band."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(
            f"The {table_name} table does not exist, please create it manually."
        )


class SchemaChangeError(DksinkError):
    """Error altering a destination table."""

    def __init__(
        self,
        message: str,
        table_name: Optional[str] = None,
        field_name: Optional[str] = None,
    ):
        self.table_name = table_name
        self.field_name = field_name
        super().__init__(message)


class SchemaEvolutionDisabledError(SchemaChangeError):
    """Record needs columns the table lacks, but schema evolution is disabled."""

    def __init__(self, table_name: str, field_names: Iterable[str]):
        self.field_names = list(field_names)
        super().__init__(
            f"Cannot alter table {table_name} because schema evolution is disabled. "
            f"Missing columns: {', '.join(self.field_names)}",
            table_name=table_name,
        )


class CatalogError(DksinkError):
    """Error reading table metadata from the destination catalog."""


class DataFormatError(DksinkError):
    """Error serializing a record payload."""
