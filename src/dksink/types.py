"""Core type definitions for dksink."""

from enum import Enum
from typing import TypeAlias

TableName: TypeAlias = str
ColumnName: TypeAlias = str
TopicName: TypeAlias = str
DatabaseName: TypeAlias = str

__all__ = [
    "TableName",
    "ColumnName",
    "TopicName",
    "DatabaseName",
    "ConverterMode",
    "SchemaEvolutionMode",
    "RecordShape",
]


class ConverterMode(Enum):
    """How structured record values are converted to rows."""

    NORMAL = "normal"
    DEBEZIUM_INGESTION = "debezium_ingestion"

    @classmethod
    def instances(cls) -> list[str]:
        return [m.value for m in cls]


class SchemaEvolutionMode(Enum):
    """Whether missing destination columns may be added automatically.

    BASIC adds one column per newly observed record field.
    """

    NONE = "none"
    BASIC = "basic"

    @classmethod
    def instances(cls) -> list[str]:
        return [m.value for m in cls]


class RecordShape(Enum):
    """Shape of a record value, decided once when a record enters the pipeline."""

    TOMBSTONE = "tombstone"
    STRUCT = "struct"
    LIST = "list"
    MAP = "map"
    SCALAR = "scalar"
