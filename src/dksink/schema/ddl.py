"""Generate and apply ADD COLUMN statements for Doris tables."""

import logging
from typing import Any

import requests

from dksink.converter.descriptor import FieldDescriptor
from dksink.exceptions import SchemaChangeError
from dksink.schema.introspect import RestClient

logger = logging.getLogger(__name__)


def _escape_sql_string(value: str) -> str:
    """Escape single quotes for SQL string literals."""
    return value.replace("'", "''")


def _quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _default_literal(field: FieldDescriptor) -> str | None:
    default = field.schema.default
    if default is None:
        return None
    value = field.type.get_value(default, field.schema)
    if isinstance(value, bool):
        value = str(value).lower()
    return f"'{_escape_sql_string(str(value))}'"


def build_add_column_ddl(database: str, table_name: str, field: FieldDescriptor) -> str:
    """Generate ALTER TABLE ADD COLUMN for a record field.

    Columns are nullable unless the field is required and carries a default.
    """
    col_def = f"{_quote_identifier(field.name)} {field.type_name}"
    default = _default_literal(field)
    if default is not None and not field.schema_optional:
        col_def += f" NOT NULL DEFAULT {default}"
    else:
        col_def += " NULL"
        if default is not None:
            col_def += f" DEFAULT {default}"
    if field.schema.doc:
        col_def += f" COMMENT '{_escape_sql_string(field.schema.doc)}'"

    fqn = f"{_quote_identifier(database)}.{_quote_identifier(table_name)}"
    return f"ALTER TABLE {fqn} ADD COLUMN {col_def}"


class SchemaChangeManager:
    """Execute schema changes through the Doris FE query endpoint."""

    def __init__(self, rest_client: RestClient, database: str) -> None:
        self._rest_client = rest_client
        self._database = database

    def add_column(self, table_name: str, field: FieldDescriptor) -> None:
        """Add one column for ``field`` to ``table_name``.

        Raises:
            SchemaChangeError: If Doris rejects the statement or is unreachable.
        """
        ddl = build_add_column_ddl(self._database, table_name, field)
        logger.info(f"Adding column {field.name} to {table_name}: {ddl}")
        self.execute(ddl, table_name=table_name, field_name=field.name)

    def execute(self, ddl: str, table_name: str, field_name: str | None = None) -> Any:
        path = f"/api/query/default_cluster/{self._database}"
        try:
            body = self._rest_client.post_json(path, {"stmt": ddl})
        except requests.RequestException as e:
            raise SchemaChangeError(
                f"Failed to execute schema change on {table_name}: {e}",
                table_name=table_name,
                field_name=field_name,
            ) from e

        if not isinstance(body, dict) or body.get("code") != 0:
            message = (body.get("msg") or body.get("data")) if isinstance(body, dict) else body
            raise SchemaChangeError(
                f"Schema change on {table_name} failed"
                + (f" for column {field_name}" if field_name else "")
                + f": {message}",
                table_name=table_name,
                field_name=field_name,
            )
        return body.get("data")
