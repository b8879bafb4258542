"""Normalized per-record view used by the transformer and schema evolution."""

from dataclasses import dataclass, field
from typing import Optional

from dksink.connect import ConnectSchema, SchemaType, SinkRecord, Struct
from dksink.converter.types import Type, TypeRegistry
from dksink.exceptions import DecodeError

__all__ = ["FieldDescriptor", "RecordDescriptor", "build_record_descriptor"]

BEFORE_FIELD = "before"
AFTER_FIELD = "after"


@dataclass(frozen=True, eq=False)
class FieldDescriptor:
    """A record field resolved against the type registry.

    Two descriptors are equal when their names are equal, so sets of
    descriptors can be checked against table columns by name.
    """

    name: str
    type: Type
    schema: ConnectSchema
    is_key: bool = False

    @property
    def schema_optional(self) -> bool:
        return self.schema.optional

    @property
    def type_name(self) -> str:
        """Doris column type for this field."""
        return self.type.get_type_name(self.schema)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldDescriptor):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True)
class RecordDescriptor:
    """Read-only view of one sink record."""

    topic_name: str
    partition: int
    offset: int
    fields: dict[str, FieldDescriptor] = field(default_factory=dict)
    key_field_names: list[str] = field(default_factory=list)
    non_key_field_names: list[str] = field(default_factory=list)
    before_struct: Optional[Struct] = None
    after_struct: Optional[Struct] = None
    is_delete: bool = False
    is_tombstone: bool = False

    @property
    def is_upsert(self) -> bool:
        return not self.is_delete and not self.is_tombstone


def _is_envelope(schema: ConnectSchema) -> bool:
    return schema.get_field(BEFORE_FIELD) is not None and schema.get_field(
        AFTER_FIELD
    ) is not None


def _envelope_part(record: SinkRecord, value: Struct, name: str) -> Optional[Struct]:
    part = value.get(name)
    if part is not None and not isinstance(part, Struct):
        raise DecodeError(
            f"Record from topic {record.topic} at offset {record.offset} has a "
            f"non-struct '{name}' value"
        )
    return part


def _row_schema(record: SinkRecord, envelope_schema: ConnectSchema) -> ConnectSchema:
    for name in (AFTER_FIELD, BEFORE_FIELD):
        f = envelope_schema.get_field(name)
        if f is not None and f.schema.type is SchemaType.STRUCT:
            return f.schema
    raise DecodeError(
        f"Record from topic {record.topic} has no struct schema for its "
        f"'{BEFORE_FIELD}'/'{AFTER_FIELD}' fields"
    )


def _key_field_names(record: SinkRecord) -> list[str]:
    if record.key_schema is not None and record.key_schema.type is SchemaType.STRUCT:
        return record.key_schema.field_names()
    return []


def build_record_descriptor(
    record: SinkRecord, registry: TypeRegistry
) -> RecordDescriptor:
    """Build the descriptor for one record.

    Debezium envelopes (value schema with ``before`` and ``after`` fields) give
    the before/after views directly; any other struct is a flattened upsert.

    Raises:
        DecodeError: If the value is not a struct matching its schema, both
            views are empty, or a field type cannot be resolved.
    """
    if record.value is None and record.value_schema is None:
        return RecordDescriptor(
            topic_name=record.topic,
            partition=record.partition,
            offset=record.offset,
            is_tombstone=True,
        )

    value = record.value
    schema = record.value_schema
    if not isinstance(value, Struct):
        raise DecodeError(
            f"Record from topic {record.topic} at offset {record.offset} is not a "
            f"struct: {type(value).__name__}"
        )
    if schema is None:
        schema = value.schema
    if schema.type is not SchemaType.STRUCT or value.schema != schema:
        raise DecodeError(
            f"Record from topic {record.topic} at offset {record.offset} does not "
            "match its value schema"
        )

    if _is_envelope(schema):
        before = _envelope_part(record, value, BEFORE_FIELD)
        after = _envelope_part(record, value, AFTER_FIELD)
        row_schema = _row_schema(record, schema)
    else:
        before, after, row_schema = None, value, schema

    if before is None and after is None:
        raise DecodeError(
            f"Record from topic {record.topic} at offset {record.offset} has "
            f"neither a '{BEFORE_FIELD}' nor an '{AFTER_FIELD}' value"
        )

    key_names = _key_field_names(record)
    fields: dict[str, FieldDescriptor] = {}
    for f in row_schema.fields:
        try:
            type_ = registry.resolve(f.schema)
        except DecodeError as e:
            raise DecodeError(
                f"Cannot resolve type of field '{f.name}' in topic {record.topic}: {e}"
            ) from e
        fields[f.name] = FieldDescriptor(
            name=f.name,
            type=type_,
            schema=f.schema,
            is_key=f.name in key_names,
        )

    return RecordDescriptor(
        topic_name=record.topic,
        partition=record.partition,
        offset=record.offset,
        fields=fields,
        key_field_names=[n for n in key_names if n in fields],
        non_key_field_names=[n for n in fields if n not in key_names],
        before_struct=before,
        after_struct=after,
        is_delete=before is not None and after is None,
    )
