"""Turn sink records into JSON rows for Doris stream load."""

import logging
from typing import Any, Optional

from dksink.config import Config
from dksink.connect import SinkRecord, Struct
from dksink.converter.descriptor import RecordDescriptor, build_record_descriptor
from dksink.converter.json_codec import dumps, to_plain
from dksink.converter.types import TypeRegistry
from dksink.exceptions import ConfigError, DataFormatError, UnsupportedRecordError
from dksink.schema.evolution import SchemaEvolutionCoordinator
from dksink.types import ConverterMode, RecordShape

__all__ = ["RecordService", "classify_value"]

logger = logging.getLogger(__name__)

SCHEMA_CHANGE_VALUE = "SchemaChangeValue"


def classify_value(value: Any) -> RecordShape:
    """Decide the shape of a record value."""
    if value is None:
        return RecordShape.TOMBSTONE
    if isinstance(value, Struct):
        return RecordShape.STRUCT
    if isinstance(value, (list, tuple)):
        return RecordShape.LIST
    if isinstance(value, dict):
        return RecordShape.MAP
    return RecordShape.SCALAR


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return str(value)


class RecordService:
    """Transform records into row payloads, evolving table schemas on the way.

    In ``debezium_ingestion`` mode structured records are unpacked into the
    row of their before/after view, the destination table is brought up to
    date through the schema evolution coordinator, and a delete-sign column is
    added. In ``normal`` mode structured records pass through as JSON.
    """

    def __init__(
        self,
        config: Config,
        coordinator: Optional[SchemaEvolutionCoordinator] = None,
        registry: Optional[TypeRegistry] = None,
    ) -> None:
        if config.converter_mode is ConverterMode.DEBEZIUM_INGESTION and coordinator is None:
            raise ConfigError(
                "A schema evolution coordinator is required in debezium_ingestion mode"
            )
        self._config = config
        self._coordinator = coordinator
        self._registry = registry or TypeRegistry.default(config.database_time_zone)

    @property
    def coordinator(self) -> Optional[SchemaEvolutionCoordinator]:
        return self._coordinator

    def transform(self, record: SinkRecord) -> Optional[str]:
        """Return the row text for ``record``, or None for a tombstone.

        Any record without a value is a tombstone here, whether or not it
        carries a value schema.
        """
        shape = classify_value(record.value)
        if shape is RecordShape.TOMBSTONE:
            logger.warning(
                f"Skipping tombstone record from topic {record.topic} "
                f"partition {record.partition} offset {record.offset}"
            )
            return None
        if shape is RecordShape.STRUCT:
            return self.process_struct_record(record)
        if shape is RecordShape.LIST:
            return self.process_list_record(record)
        if shape is RecordShape.MAP:
            return self.process_map_record(record)
        return self.process_scalar_record(record)

    get_processed_record = transform

    def process_scalar_record(self, record: SinkRecord) -> str:
        try:
            return _as_text(record.value)
        except UnicodeDecodeError as e:
            raise DataFormatError(
                f"Scalar record from topic {record.topic} at offset {record.offset} "
                f"is not valid UTF-8: {e}"
            ) from e

    def process_struct_record(self, record: SinkRecord) -> str:
        if self._config.converter_mode is ConverterMode.DEBEZIUM_INGESTION:
            self._validate_record(record)
            return self._process_change_event(record)
        return dumps(to_plain(record.value, record.value_schema))

    def process_list_record(self, record: SinkRecord) -> str:
        item_schema = record.value_schema.value_schema if record.value_schema else None
        try:
            rows = [dumps(to_plain(item, item_schema)) for item in record.value]
        except (TypeError, ValueError) as e:
            raise DataFormatError(
                f"Failed to serialize list record from topic {record.topic} "
                f"at offset {record.offset}: {e}"
            ) from e
        return self._config.line_separator.join(rows)

    def process_map_record(self, record: SinkRecord) -> str:
        try:
            return dumps(to_plain(record.value, record.value_schema))
        except (TypeError, ValueError) as e:
            raise DataFormatError(
                f"Failed to serialize map record from topic {record.topic} "
                f"at offset {record.offset}: {e}"
            ) from e

    def _validate_record(self, record: SinkRecord) -> None:
        schema = record.value_schema or record.value.schema
        if schema.name and SCHEMA_CHANGE_VALUE in schema.name:
            logger.warning(
                f"Rejected schema change record from topic {record.topic} "
                f"at offset {record.offset}"
            )
            raise UnsupportedRecordError(
                SCHEMA_CHANGE_VALUE,
                f"Schema change records from topic {record.topic} are not supported "
                "in debezium_ingestion mode; use Debezium's schema evolution instead.",
            )

    def _process_change_event(self, record: SinkRecord) -> str:
        descriptor = build_record_descriptor(record, self._registry)
        table_name = self._config.table_for_topic(descriptor.topic_name)
        with self._coordinator.cache.lock(table_name):
            self._coordinator.ensure_schema(table_name, descriptor)

        if descriptor.is_delete:
            row = self._parse_field_values(
                descriptor, descriptor.before_struct, descriptor.non_key_field_names
            )
        else:
            row = self._parse_field_values(
                descriptor, descriptor.after_struct, descriptor.non_key_field_names
            )
        row[self._config.delete_sign_column] = (
            self._config.delete_true if descriptor.is_delete else self._config.delete_false
        )
        return dumps(row)

    def _parse_field_values(
        self, descriptor: RecordDescriptor, source: Struct, field_names: list[str]
    ) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for name in field_names:
            field = descriptor.fields[name]
            # Optional fields must not pick up the schema default.
            if field.schema_optional:
                raw = source.get_without_default(name)
            else:
                raw = source.get(name)

            value = field.type.get_value(raw, field.schema) if raw is not None else None
            if value is not None and not field.type.is_number():
                value = _as_text(value)
            row[name] = value
        return row
