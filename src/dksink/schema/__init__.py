"""Table metadata, introspection and caching modules."""

from dksink.schema.cache import NOT_LOADED, TableMetadataCache
from dksink.schema.introspect import DorisCatalog
from dksink.schema.models import (
    ColumnDescriptor,
    SchemaProperty,
    TableDescriptor,
    TableSchema,
)

__all__ = [
    "ColumnDescriptor",
    "DorisCatalog",
    "NOT_LOADED",
    "SchemaProperty",
    "TableDescriptor",
    "TableMetadataCache",
    "TableSchema",
]
