"""Connect values to JSON, with schemas disabled and decimals written as exact numbers."""

import base64
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

import simplejson

from dksink.connect import (
    DATE_LOGICAL_NAME,
    DECIMAL_LOGICAL_NAME,
    TIME_LOGICAL_NAME,
    TIMESTAMP_LOGICAL_NAME,
    ConnectSchema,
    SchemaType,
    Struct,
)

__all__ = ["dumps", "to_plain"]

_EPOCH = datetime(1970, 1, 1)
_EPOCH_DATE = date(1970, 1, 1)
_MILLISECOND = timedelta(milliseconds=1)


def dumps(value: Any) -> str:
    """Serialize to the compact JSON text Doris stream load reads."""
    return simplejson.dumps(
        value, separators=(",", ":"), ensure_ascii=False, use_decimal=True
    )


def _millis_of_day(value: time) -> int:
    return ((value.hour * 60 + value.minute) * 60 + value.second) * 1000 + (
        value.microsecond // 1000
    )


def to_plain(value: Any, schema: Optional[ConnectSchema] = None) -> Any:
    """Convert a Connect value to plain JSON-compatible Python data.

    Logical types follow the Connect JSON converter: dates as days since the
    epoch, times and timestamps as milliseconds, bytes as base64.
    """
    if value is None:
        return None
    if schema is None and isinstance(value, Struct):
        schema = value.schema

    name = schema.name if schema is not None else None
    if name == DECIMAL_LOGICAL_NAME or isinstance(value, Decimal):
        return value if isinstance(value, Decimal) else Decimal(str(value))
    if name == DATE_LOGICAL_NAME and isinstance(value, date):
        return (value - _EPOCH_DATE).days
    if name == TIME_LOGICAL_NAME and isinstance(value, time):
        return _millis_of_day(value)
    if name == TIMESTAMP_LOGICAL_NAME and isinstance(value, datetime):
        return (value - _EPOCH) // _MILLISECOND

    if isinstance(value, Struct):
        return {f.name: to_plain(value.get(f.name), f.schema) for f in value.schema.fields}
    if isinstance(value, (list, tuple)):
        item_schema = schema.value_schema if schema is not None else None
        return [to_plain(item, item_schema) for item in value]
    if isinstance(value, dict):
        key_schema = schema.key_schema if schema is not None else None
        value_schema = schema.value_schema if schema is not None else None
        if key_schema is None or key_schema.type is SchemaType.STRING:
            return {str(k): to_plain(v, value_schema) for k, v in value.items()}
        return [[to_plain(k, key_schema), to_plain(v, value_schema)] for k, v in value.items()]
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value
