"""Type registry: Connect and Debezium field types to Doris row values and columns.

A field resolves to a ``Type`` by its logical schema name first and by its
primitive Connect type otherwise. The type converts raw field values into the
representation Doris stream load expects and names the Doris column type used
when the column has to be added.
"""

import base64
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable
from zoneinfo import ZoneInfo

from dksink.connect import (
    DATE_LOGICAL_NAME,
    DECIMAL_LOGICAL_NAME,
    TIME_LOGICAL_NAME,
    TIMESTAMP_LOGICAL_NAME,
    ConnectSchema,
    SchemaType,
    Struct,
)
from dksink.converter.json_codec import dumps, to_plain
from dksink.exceptions import DecodeError

__all__ = ["Type", "TypeRegistry"]

DORIS_MAX_DECIMAL_PRECISION = 38
DORIS_MAX_VARCHAR_LENGTH = 65533
SOURCE_COLUMN_LENGTH = "__debezium.source.column.length"
DECIMAL_PRECISION = "connect.decimal.precision"

_EPOCH = datetime(1970, 1, 1)
_EPOCH_DATE = date(1970, 1, 1)


def _decimal_text(value: Decimal) -> str:
    return format(value, "f")


def _unscaled_to_decimal(raw: bytes, scale: int) -> Decimal:
    return Decimal(int.from_bytes(raw, "big", signed=True)).scaleb(-scale)


def _millis(value: int) -> int:
    return value * 1000


def _micros(value: int) -> int:
    return value


def _nanos(value: int) -> int:
    return value // 1000


def _format_time(value: time, digits: int) -> str:
    timespec = "milliseconds" if digits == 3 else "microseconds"
    return value.isoformat(timespec=timespec)


def _format_datetime(value: datetime, digits: int) -> str:
    timespec = "milliseconds" if digits == 3 else "microseconds"
    return value.isoformat(sep=" ", timespec=timespec)


class Type(ABC):
    """Conversion handle for one field type."""

    @abstractmethod
    def registration_keys(self) -> list[str]:
        """Logical schema names or primitive type names this type handles."""

    @abstractmethod
    def get_type_name(self, schema: ConnectSchema) -> str:
        """Doris column type for a field with this schema."""

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        return value

    def is_number(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class _NumericType(Type):
    def __init__(self, schema_type: SchemaType, doris_type: str):
        self._schema_type = schema_type
        self._doris_type = doris_type

    def registration_keys(self) -> list[str]:
        return [self._schema_type.value]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return self._doris_type

    def is_number(self) -> bool:
        return True


class BooleanType(Type):
    def registration_keys(self) -> list[str]:
        return [SchemaType.BOOLEAN.value]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "BOOLEAN"


class StringType(Type):
    """Strings become VARCHAR when the source column length is known."""

    def registration_keys(self) -> list[str]:
        return [
            SchemaType.STRING.value,
            "io.debezium.data.Enum",
            "io.debezium.data.EnumSet",
            "io.debezium.data.Uuid",
            "io.debezium.data.Xml",
            "io.debezium.time.ZonedTime",
        ]

    def get_type_name(self, schema: ConnectSchema) -> str:
        length = schema.parameters.get(SOURCE_COLUMN_LENGTH)
        if length and length.isdigit():
            # Doris measures VARCHAR in bytes; allow 3 bytes per character.
            varchar_length = int(length) * 3
            if varchar_length <= DORIS_MAX_VARCHAR_LENGTH:
                return f"VARCHAR({varchar_length})"
        return "STRING"


class JsonType(Type):
    def registration_keys(self) -> list[str]:
        return ["io.debezium.data.Json"]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "JSON"


class BytesType(Type):
    def registration_keys(self) -> list[str]:
        return [SchemaType.BYTES.value]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "STRING"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if isinstance(value, (bytes, bytearray)):
            return base64.b64encode(value).decode("ascii")
        return value


class DecimalType(Type):
    """Fixed-scale decimals (Connect ``Decimal`` logical type)."""

    def registration_keys(self) -> list[str]:
        return [DECIMAL_LOGICAL_NAME]

    def get_type_name(self, schema: ConnectSchema) -> str:
        scale = int(schema.parameters.get("scale", "0"))
        precision = int(
            schema.parameters.get(DECIMAL_PRECISION, DORIS_MAX_DECIMAL_PRECISION)
        )
        if precision > DORIS_MAX_DECIMAL_PRECISION or scale > precision:
            return "STRING"
        return f"DECIMAL({precision},{scale})"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            value = _unscaled_to_decimal(value, int(schema.parameters.get("scale", "0")))
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return _decimal_text(value)


class VariableScaleDecimalType(Type):
    """Debezium decimals carrying their own scale: ``{scale: int32, value: bytes}``."""

    def registration_keys(self) -> list[str]:
        return ["io.debezium.data.VariableScaleDecimal"]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "STRING"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        if not isinstance(value, Struct):
            raise DecodeError(f"VariableScaleDecimal value must be a struct, got {value!r}")
        raw = value.get("value")
        if raw is None:
            return None
        return _decimal_text(_unscaled_to_decimal(raw, int(value.get("scale") or 0)))


class ConnectDateType(Type):
    def registration_keys(self) -> list[str]:
        return [DATE_LOGICAL_NAME]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "DATE"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if isinstance(value, int):
            value = _EPOCH_DATE + timedelta(days=value)
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat() if isinstance(value, date) else value


class ConnectTimeType(Type):
    def registration_keys(self) -> list[str]:
        return [TIME_LOGICAL_NAME]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "STRING"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if isinstance(value, int):
            value = (_EPOCH + timedelta(milliseconds=value)).time()
        return _format_time(value, 3) if isinstance(value, time) else value


class ConnectTimestampType(Type):
    def registration_keys(self) -> list[str]:
        return [TIMESTAMP_LOGICAL_NAME]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "DATETIME(3)"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if isinstance(value, int):
            value = _EPOCH + timedelta(milliseconds=value)
        return _format_datetime(value, 3) if isinstance(value, datetime) else value


class DebeziumDateType(Type):
    """``io.debezium.time.Date``: days since the epoch."""

    def registration_keys(self) -> list[str]:
        return ["io.debezium.time.Date"]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "DATE"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        return (_EPOCH_DATE + timedelta(days=int(value))).isoformat()


class DebeziumTimeType(Type):
    """Time of day counted in ms, us or ns since midnight."""

    def __init__(self, logical_name: str, to_micros: Callable[[int], int], digits: int):
        self._logical_name = logical_name
        self._to_micros = to_micros
        self._digits = digits

    def registration_keys(self) -> list[str]:
        return [self._logical_name]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "STRING"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        micros = self._to_micros(int(value))
        return _format_time((_EPOCH + timedelta(microseconds=micros)).time(), self._digits)


class DebeziumTimestampType(Type):
    """Local timestamps counted in ms, us or ns since the epoch."""

    def __init__(self, logical_name: str, to_micros: Callable[[int], int], digits: int):
        self._logical_name = logical_name
        self._to_micros = to_micros
        self._digits = digits

    def registration_keys(self) -> list[str]:
        return [self._logical_name]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return f"DATETIME({self._digits})"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        micros = self._to_micros(int(value))
        return _format_datetime(_EPOCH + timedelta(microseconds=micros), self._digits)


class ZonedTimestampType(Type):
    """ISO-8601 timestamps with offset, rendered in the database time zone."""

    def __init__(self, time_zone: ZoneInfo):
        self._time_zone = time_zone

    def registration_keys(self) -> list[str]:
        return ["io.debezium.time.ZonedTimestamp"]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "DATETIME(6)"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise DecodeError(f"Invalid ZonedTimestamp value {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        local = parsed.astimezone(self._time_zone).replace(tzinfo=None)
        return _format_datetime(local, 6)


class YearType(_NumericType):
    def registration_keys(self) -> list[str]:
        return ["io.debezium.time.Year"]


class StructuredType(Type):
    """Arrays, maps and nested structs, written as JSON text."""

    def registration_keys(self) -> list[str]:
        return [SchemaType.ARRAY.value, SchemaType.MAP.value, SchemaType.STRUCT.value]

    def get_type_name(self, schema: ConnectSchema) -> str:
        return "STRING"

    def get_value(self, value: Any, schema: ConnectSchema) -> Any:
        if value is None:
            return None
        return dumps(to_plain(value, schema))


class TypeRegistry:
    """Resolve field schemas to conversion types."""

    def __init__(self, time_zone: str = "UTC") -> None:
        self.time_zone = ZoneInfo(time_zone)
        self._types: dict[str, Type] = {}

    def register(self, type_: Type) -> None:
        for key in type_.registration_keys():
            self._types[key] = type_

    def resolve(self, schema: ConnectSchema) -> Type:
        """Find the type for a field schema: logical name first, then primitive type.

        Raises:
            DecodeError: If neither the name nor the type is registered.
        """
        if schema.name and schema.name in self._types:
            return self._types[schema.name]
        type_ = self._types.get(schema.type.value)
        if type_ is None:
            label = schema.name or schema.type.value
            raise DecodeError(f"No type registered for schema type '{label}'")
        return type_

    @classmethod
    def default(cls, time_zone: str = "UTC") -> "TypeRegistry":
        """Registry with every Connect and Debezium type the sink understands."""
        registry = cls(time_zone)
        for type_ in (
            _NumericType(SchemaType.INT8, "TINYINT"),
            _NumericType(SchemaType.INT16, "SMALLINT"),
            _NumericType(SchemaType.INT32, "INT"),
            _NumericType(SchemaType.INT64, "BIGINT"),
            _NumericType(SchemaType.FLOAT32, "FLOAT"),
            _NumericType(SchemaType.FLOAT64, "DOUBLE"),
            BooleanType(),
            StringType(),
            JsonType(),
            BytesType(),
            DecimalType(),
            VariableScaleDecimalType(),
            ConnectDateType(),
            ConnectTimeType(),
            ConnectTimestampType(),
            DebeziumDateType(),
            DebeziumTimeType("io.debezium.time.Time", _millis, 3),
            DebeziumTimeType("io.debezium.time.MicroTime", _micros, 6),
            DebeziumTimeType("io.debezium.time.NanoTime", _nanos, 6),
            DebeziumTimestampType("io.debezium.time.Timestamp", _millis, 3),
            DebeziumTimestampType("io.debezium.time.MicroTimestamp", _micros, 6),
            DebeziumTimestampType("io.debezium.time.NanoTimestamp", _nanos, 6),
            ZonedTimestampType(registry.time_zone),
            YearType(SchemaType.INT32, "INT"),
            StructuredType(),
        ):
            registry.register(type_)
        return registry
