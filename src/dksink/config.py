"""Configuration management for dksink."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from dksink.exceptions import ConfigError
from dksink.types import ConverterMode, SchemaEvolutionMode, TableName, TopicName

NAME = "name"
TOPICS = "topics"
TOPICS_REGEX = "topics.regex"
TOPICS_TABLES_MAP = "doris.topic2table.map"
DORIS_URLS = "doris.urls"
DORIS_QUERY_PORT = "doris.query.port"
DORIS_HTTP_PORT = "doris.http.port"
DORIS_USER = "doris.user"
DORIS_PASSWORD = "doris.password"
DORIS_DATABASE = "doris.database"
CONVERTER_MODE = "converter.mode"
DEBEZIUM_SCHEMA_EVOLUTION = "debezium.schema.evolution"
DATABASE_TIME_ZONE = "database.time_zone"
DELETE_SIGN_COLUMN = "delete.sign.column"
DELETE_SIGN_TRUE = "delete.sign.true"
DELETE_SIGN_FALSE = "delete.sign.false"
LINE_DELIMITER = "sink.properties.line_delimiter"
REQUEST_TIMEOUT = "doris.request.timeout.sec"

DORIS_DELETE_SIGN = "__DORIS_DELETE_SIGN__"
DORIS_DEL_TRUE = "1"
DORIS_DEL_FALSE = "0"
LINE_SEPARATOR = "\n"

_APPLICATION_NAME_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")
_TABLE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")


def parse_topic_to_table_map(text: str) -> dict[TopicName, TableName]:
    """Parse ``topic1:table1,topic2:table2``.

    Raises:
        ConfigError: On malformed pairs or duplicated topics.
    """
    mapping: dict[TopicName, TableName] = {}
    for pair in text.split(","):
        parts = pair.split(":")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ConfigError(f"Invalid {TOPICS_TABLES_MAP} config format: {text}")
        topic, table = parts[0].strip(), parts[1].strip()
        if topic in mapping:
            raise ConfigError(f"Topic name {topic} is duplicated in {TOPICS_TABLES_MAP}")
        mapping[topic] = table
    return mapping


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _parse_enum(enum_cls: Any, value: Any, key: str) -> Any:
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ConfigError(
            f"The value {value!r} is an illegal parameter of {key}. "
            f"Expected one of: {', '.join(enum_cls.instances())}"
        ) from None


def _parse_int(value: Any, key: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


@dataclass
class Config:
    """Configuration read by the record pipeline and its Doris collaborators."""

    name: Optional[str] = None
    topics: list[TopicName] = field(default_factory=list)
    topics_regex: Optional[str] = None
    topic2table: dict[TopicName, TableName] = field(default_factory=dict)
    doris_urls: list[str] = field(default_factory=list)
    doris_query_port: int = 9030
    doris_http_port: int = 8030
    doris_user: Optional[str] = None
    doris_password: str = ""
    database: Optional[str] = None
    converter_mode: ConverterMode = ConverterMode.NORMAL
    schema_evolution: SchemaEvolutionMode = SchemaEvolutionMode.NONE
    database_time_zone: str = "UTC"
    delete_sign_column: str = DORIS_DELETE_SIGN
    delete_true: str = DORIS_DEL_TRUE
    delete_false: str = DORIS_DEL_FALSE
    line_separator: str = LINE_SEPARATOR
    request_timeout: float = 30

    @classmethod
    def from_properties(cls, props: Mapping[str, Any]) -> "Config":
        """Build a Config from connector properties (``doris.urls`` style keys).

        Raises:
            ConfigError: If a value cannot be parsed.
        """
        config = cls()
        if NAME in props:
            config.name = str(props[NAME])
        config.topics = _as_list(props.get(TOPICS))
        if props.get(TOPICS_REGEX):
            config.topics_regex = str(props[TOPICS_REGEX])
        if props.get(TOPICS_TABLES_MAP):
            config.topic2table = parse_topic_to_table_map(str(props[TOPICS_TABLES_MAP]))
        config.doris_urls = _as_list(props.get(DORIS_URLS))
        if props.get(DORIS_QUERY_PORT) is not None:
            config.doris_query_port = _parse_int(props[DORIS_QUERY_PORT], DORIS_QUERY_PORT)
        if props.get(DORIS_HTTP_PORT) is not None:
            config.doris_http_port = _parse_int(props[DORIS_HTTP_PORT], DORIS_HTTP_PORT)
        if props.get(DORIS_USER) is not None:
            config.doris_user = str(props[DORIS_USER])
        if props.get(DORIS_PASSWORD) is not None:
            config.doris_password = str(props[DORIS_PASSWORD])
        if props.get(DORIS_DATABASE) is not None:
            config.database = str(props[DORIS_DATABASE])
        if props.get(CONVERTER_MODE) is not None:
            config.converter_mode = _parse_enum(
                ConverterMode, props[CONVERTER_MODE], CONVERTER_MODE
            )
        if props.get(DEBEZIUM_SCHEMA_EVOLUTION) is not None:
            config.schema_evolution = _parse_enum(
                SchemaEvolutionMode,
                props[DEBEZIUM_SCHEMA_EVOLUTION],
                DEBEZIUM_SCHEMA_EVOLUTION,
            )
        if props.get(DATABASE_TIME_ZONE):
            config.database_time_zone = str(props[DATABASE_TIME_ZONE])
        if props.get(DELETE_SIGN_COLUMN):
            config.delete_sign_column = str(props[DELETE_SIGN_COLUMN])
        if props.get(DELETE_SIGN_TRUE) is not None:
            config.delete_true = str(props[DELETE_SIGN_TRUE])
        if props.get(DELETE_SIGN_FALSE) is not None:
            config.delete_false = str(props[DELETE_SIGN_FALSE])
        if props.get(LINE_DELIMITER):
            config.line_separator = (
                str(props[LINE_DELIMITER]).encode().decode("unicode_escape")
            )
        if props.get(REQUEST_TIMEOUT) is not None:
            config.request_timeout = float(
                _parse_int(props[REQUEST_TIMEOUT], REQUEST_TIMEOUT)
            )
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load connector properties from a YAML mapping file."""
        if not path.is_file():
            raise ConfigError(f"Config file does not exist: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ConfigError(f"Empty config file: {path}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        if isinstance(data.get("config"), dict):
            data = {**data["config"], **({NAME: data[NAME]} if NAME in data else {})}
        return cls.from_properties(data)

    @classmethod
    def from_env(
        cls,
        *,
        doris_urls: Optional[str] = None,
        doris_user: Optional[str] = None,
        doris_password: Optional[str] = None,
        database: Optional[str] = None,
        converter_mode: Optional[str] = None,
        schema_evolution: Optional[str] = None,
    ) -> "Config":
        """Load configuration from environment variables, with explicit overrides.

        Priority (highest to lowest):
        1. Explicit parameters (CLI args)
        2. Environment variables
        3. Defaults
        """

        def resolve(explicit, env_key):
            if explicit is not None:
                return explicit
            return os.environ.get(env_key)

        props = {
            DORIS_URLS: resolve(doris_urls, "DORIS_URLS"),
            DORIS_QUERY_PORT: os.environ.get("DORIS_QUERY_PORT"),
            DORIS_HTTP_PORT: os.environ.get("DORIS_HTTP_PORT"),
            DORIS_USER: resolve(doris_user, "DORIS_USER"),
            DORIS_PASSWORD: resolve(doris_password, "DORIS_PASSWORD"),
            DORIS_DATABASE: resolve(database, "DORIS_DATABASE"),
            CONVERTER_MODE: resolve(converter_mode, "DKSINK_CONVERTER_MODE"),
            DEBEZIUM_SCHEMA_EVOLUTION: resolve(
                schema_evolution, "DKSINK_SCHEMA_EVOLUTION"
            ),
            DATABASE_TIME_ZONE: os.environ.get("DKSINK_TIME_ZONE"),
        }
        return cls.from_properties({k: v for k, v in props.items() if v is not None})

    def table_for_topic(self, topic: TopicName) -> TableName:
        """Destination table for a topic.

        The explicit topic-to-table map wins; otherwise a topic that is a valid
        table identifier is used as is, and a Debezium ``server.db.table``
        topic maps to its last segment.
        """
        if not topic:
            raise ConfigError("Topic name is empty")
        if topic in self.topic2table:
            return self.topic2table[topic]
        if _TABLE_IDENTIFIER_RE.match(topic):
            return topic
        if "." in topic:
            return topic.split(".")[-1]
        raise ConfigError(f"Failed to get table name from topic {topic}")

    def validate_for_db_ops(self) -> None:
        """Validate that all required fields for Doris access are present.

        Raises:
            ConfigError: If urls, user or database is missing.
        """
        missing = []
        if not self.doris_urls:
            missing.append(f"{DORIS_URLS} (or DORIS_URLS)")
        if not self.doris_user:
            missing.append(f"{DORIS_USER} (or DORIS_USER)")
        if not self.database:
            missing.append(f"{DORIS_DATABASE} (or DORIS_DATABASE)")

        if missing:
            raise ConfigError(
                "Missing required configuration:\n  - " + "\n  - ".join(missing)
            )

    def validate(self) -> None:
        """Validate a complete connector configuration, reporting every problem.

        Raises:
            ConfigError: If any value is missing or invalid.
        """
        problems = []
        if not self.name or not _APPLICATION_NAME_RE.match(self.name):
            problems.append(
                f"{NAME} is empty or invalid; it may only contain letters, digits, '_' and '-'"
            )
        if not self.topics and not self.topics_regex:
            problems.append(f"{TOPICS} or {TOPICS_REGEX} cannot be empty")
        if self.topics and self.topics_regex:
            problems.append(f"{TOPICS} and {TOPICS_REGEX} cannot be set at the same time")
        if not self.doris_urls:
            problems.append(f"{DORIS_URLS} cannot be empty")
        if not self.doris_user:
            problems.append(f"{DORIS_USER} cannot be empty")
        if not self.database:
            problems.append(f"{DORIS_DATABASE} cannot be empty")
        for port_key, port in (
            (DORIS_QUERY_PORT, self.doris_query_port),
            (DORIS_HTTP_PORT, self.doris_http_port),
        ):
            if not 0 < port < 65536:
                problems.append(f"{port_key} must be a valid port, got {port}")
        if not self.delete_sign_column:
            problems.append(f"{DELETE_SIGN_COLUMN} cannot be empty")
        if self.delete_true == self.delete_false:
            problems.append(
                f"{DELETE_SIGN_TRUE} and {DELETE_SIGN_FALSE} must differ, "
                f"both are {self.delete_true!r}"
            )

        if problems:
            raise ConfigError(
                "Invalid connector configuration:\n  - " + "\n  - ".join(problems)
            )
