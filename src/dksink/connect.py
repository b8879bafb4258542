"""Kafka Connect data model consumed by the record pipeline.

Records arrive already decoded from the streaming platform. This module holds
the shapes the pipeline reads (schemas, structs and sink records) plus a parser
for the Connect JSON format (``{"schema": ..., "payload": ...}``) used by the
CLI and by tests.
"""

import base64
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from dksink.exceptions import DecodeError

__all__ = [
    "SchemaType",
    "Field",
    "ConnectSchema",
    "Struct",
    "SinkRecord",
    "DECIMAL_LOGICAL_NAME",
    "DATE_LOGICAL_NAME",
    "TIME_LOGICAL_NAME",
    "TIMESTAMP_LOGICAL_NAME",
    "schema_from_json",
    "value_from_json",
    "record_from_json",
]

DECIMAL_LOGICAL_NAME = "org.apache.kafka.connect.data.Decimal"
DATE_LOGICAL_NAME = "org.apache.kafka.connect.data.Date"
TIME_LOGICAL_NAME = "org.apache.kafka.connect.data.Time"
TIMESTAMP_LOGICAL_NAME = "org.apache.kafka.connect.data.Timestamp"

_EPOCH = datetime(1970, 1, 1)
_EPOCH_DATE = date(1970, 1, 1)


class SchemaType(Enum):
    """Connect schema types."""

    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BOOLEAN = "boolean"
    STRING = "string"
    BYTES = "bytes"
    ARRAY = "array"
    MAP = "map"
    STRUCT = "struct"


@dataclass
class Field:
    """A named field of a struct schema."""

    name: str
    index: int
    schema: "ConnectSchema"


@dataclass
class ConnectSchema:
    """Connect schema: a primitive or container type, optionally logical (named)."""

    type: SchemaType
    optional: bool = False
    default: Any = None
    name: Optional[str] = None
    version: Optional[int] = None
    doc: Optional[str] = None
    parameters: dict[str, str] = field(default_factory=dict)
    fields: list[Field] = field(default_factory=list)
    key_schema: Optional["ConnectSchema"] = None
    value_schema: Optional["ConnectSchema"] = None

    @classmethod
    def struct(
        cls,
        fields: list[tuple[str, "ConnectSchema"]],
        name: Optional[str] = None,
        optional: bool = False,
    ) -> "ConnectSchema":
        """Build a struct schema from ``(field_name, schema)`` pairs."""
        return cls(
            type=SchemaType.STRUCT,
            optional=optional,
            name=name,
            fields=[Field(n, i, s) for i, (n, s) in enumerate(fields)],
        )

    def get_field(self, name: str) -> Optional[Field]:
        """Get a field by name (struct schemas only)."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


class Struct:
    """Structured value bound to a struct schema."""

    def __init__(self, schema: ConnectSchema, values: Optional[dict[str, Any]] = None):
        if schema.type is not SchemaType.STRUCT:
            raise DecodeError(f"Struct requires a struct schema, got {schema.type.value}")
        self.schema = schema
        self._values: dict[str, Any] = {}
        for name, value in (values or {}).items():
            self.put(name, value)

    def _lookup(self, name: str) -> Field:
        f = self.schema.get_field(name)
        if f is None:
            raise DecodeError(f"{name} is not a valid field name")
        return f

    def put(self, name: str, value: Any) -> "Struct":
        self._lookup(name)
        self._values[name] = value
        return self

    def get(self, name: str) -> Any:
        """Get a field value, falling back to the field schema's default."""
        f = self._lookup(name)
        value = self._values.get(name)
        if value is None and f.schema.default is not None:
            return f.schema.default
        return value

    def get_without_default(self, name: str) -> Any:
        """Get a field value as set, without applying the schema default."""
        self._lookup(name)
        return self._values.get(name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Struct):
            return NotImplemented
        return self.schema == other.schema and self._values == other._values

    def __repr__(self) -> str:
        body = ",".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"Struct{{{body}}}"


@dataclass
class SinkRecord:
    """A decoded record handed to the sink by the streaming platform."""

    topic: str
    partition: int
    offset: int
    value: Any
    value_schema: Optional[ConnectSchema] = None
    key: Any = None
    key_schema: Optional[ConnectSchema] = None
    timestamp: Optional[int] = None


def schema_from_json(obj: Optional[dict]) -> Optional[ConnectSchema]:
    """Parse a Connect JSON schema definition."""
    if obj is None:
        return None
    try:
        schema_type = SchemaType(obj["type"])
    except (KeyError, ValueError) as e:
        raise DecodeError(f"Invalid schema type in {obj!r}") from e

    schema = ConnectSchema(
        type=schema_type,
        optional=bool(obj.get("optional", False)),
        name=obj.get("name"),
        version=obj.get("version"),
        doc=obj.get("doc"),
        parameters=dict(obj.get("parameters") or {}),
    )
    if schema_type is SchemaType.STRUCT:
        for index, field_obj in enumerate(obj.get("fields", [])):
            if "field" not in field_obj:
                raise DecodeError(f"Struct field definition missing 'field': {field_obj!r}")
            schema.fields.append(
                Field(field_obj["field"], index, schema_from_json(field_obj))
            )
    elif schema_type is SchemaType.ARRAY:
        schema.value_schema = schema_from_json(obj.get("items"))
    elif schema_type is SchemaType.MAP:
        schema.key_schema = schema_from_json(obj.get("keys"))
        schema.value_schema = schema_from_json(obj.get("values"))

    if obj.get("default") is not None:
        schema.default = value_from_json(schema, obj["default"])
    return schema


def value_from_json(schema: Optional[ConnectSchema], payload: Any) -> Any:
    """Convert a Connect JSON payload into the value shape of ``schema``."""
    if payload is None or schema is None:
        return payload

    if schema.name == DECIMAL_LOGICAL_NAME:
        if isinstance(payload, str):
            unscaled = int.from_bytes(base64.b64decode(payload), "big", signed=True)
            scale = int(schema.parameters.get("scale", "0"))
            return Decimal(unscaled).scaleb(-scale)
        return Decimal(str(payload))
    if schema.name == DATE_LOGICAL_NAME:
        return _EPOCH_DATE + timedelta(days=int(payload))
    if schema.name == TIME_LOGICAL_NAME:
        return (_EPOCH + timedelta(milliseconds=int(payload))).time()
    if schema.name == TIMESTAMP_LOGICAL_NAME:
        return _EPOCH + timedelta(milliseconds=int(payload))

    if schema.type is SchemaType.STRUCT:
        if not isinstance(payload, dict):
            raise DecodeError(f"Expected an object for struct payload, got {payload!r}")
        return Struct(
            schema,
            {
                f.name: value_from_json(f.schema, payload.get(f.name))
                for f in schema.fields
                if f.name in payload
            },
        )
    if schema.type is SchemaType.ARRAY:
        return [value_from_json(schema.value_schema, item) for item in payload]
    if schema.type is SchemaType.MAP:
        if isinstance(payload, list):
            return {
                value_from_json(schema.key_schema, k): value_from_json(schema.value_schema, v)
                for k, v in payload
            }
        return {k: value_from_json(schema.value_schema, v) for k, v in payload.items()}
    if schema.type is SchemaType.BYTES:
        return base64.b64decode(payload)
    return payload


def record_from_json(
    topic: str,
    envelope: Any,
    partition: int = 0,
    offset: int = 0,
    key: Any = None,
) -> SinkRecord:
    """Build a SinkRecord from a Connect JSON message.

    ``envelope`` may be ``{"schema": ..., "payload": ...}``, or any other JSON
    value which is then taken as a schemaless payload. ``key`` follows the same
    convention.
    """
    value_schema, value = _split_envelope(envelope)
    key_schema, key_value = _split_envelope(key)
    return SinkRecord(
        topic=topic,
        partition=partition,
        offset=offset,
        value=value,
        value_schema=value_schema,
        key=key_value,
        key_schema=key_schema,
    )


def _split_envelope(message: Any) -> tuple[Optional[ConnectSchema], Any]:
    if isinstance(message, dict) and set(message.keys()) == {"schema", "payload"}:
        schema = schema_from_json(message["schema"])
        return schema, value_from_json(schema, message["payload"])
    return None, message
