"""Table metadata lookups against the Doris catalog."""

from typing import Any, Protocol

import requests

from dksink.exceptions import CatalogError
from dksink.schema.models import SchemaProperty, TableDescriptor, TableSchema


class SQLClient(Protocol):
    """Protocol for SQL client used by the catalog."""

    def fetchall(self, sql: str, params: Any = None) -> list: ...


class RestClient(Protocol):
    """Protocol for the Doris FE REST client."""

    def get_json(self, path: str) -> Any: ...

    def post_json(self, path: str, payload: dict[str, Any]) -> Any: ...


class DorisCatalog:
    """Answer existence and column questions about Doris tables.

    Existence is checked with ``information_schema`` over the MySQL protocol;
    column sets come from the FE ``_schema`` REST endpoint.
    """

    _TABLE_EXISTS_SQL = """
        SELECT TABLE_NAME AS table_name
        FROM information_schema.tables
        WHERE TABLE_SCHEMA = %s
          AND TABLE_NAME = %s
    """

    def __init__(self, sql_client: SQLClient, rest_client: RestClient) -> None:
        self._sql_client = sql_client
        self._rest_client = rest_client

    def _row_get(self, row: Any, key: str, default: Any = None) -> Any:
        """Safely get a value from a row, supporting dict-like and tuple rows."""
        if hasattr(row, "get"):
            return row.get(key, default)
        try:
            return row[0]
        except (IndexError, TypeError):
            return default

    def table_exists(self, database: str, table_name: str) -> bool:
        try:
            rows = self._sql_client.fetchall(
                self._TABLE_EXISTS_SQL, (database, table_name)
            )
        except Exception as e:
            raise CatalogError(
                f"Failed to check whether table {database}.{table_name} exists: {e}"
            ) from e
        return any(self._row_get(row, "table_name") == table_name for row in rows)

    def get_schema(self, database: str, table_name: str) -> TableSchema:
        """Fetch keys type and columns of a table.

        Raises:
            CatalogError: If the request fails or Doris reports an error.
        """
        path = f"/api/{database}/{table_name}/_schema"
        try:
            body = self._rest_client.get_json(path)
        except requests.RequestException as e:
            raise CatalogError(
                f"Failed to fetch schema of {database}.{table_name}: {e}"
            ) from e

        if not isinstance(body, dict):
            raise CatalogError(
                f"Unexpected schema response for {database}.{table_name}: {body!r}"
            )
        if body.get("code", 0) != 0:
            raise CatalogError(
                f"Failed to fetch schema of {database}.{table_name}: "
                f"{body.get('msg') or body.get('data')}"
            )

        data = body.get("data") if isinstance(body.get("data"), dict) else body
        properties = [
            SchemaProperty(
                name=prop["name"],
                type=prop["type"],
                comment=prop.get("comment") or None,
            )
            for prop in data.get("properties", [])
        ]
        return TableSchema(keys_type=data.get("keysType"), properties=properties)

    def get_table_descriptor(self, database: str, table_name: str) -> TableDescriptor:
        return TableDescriptor.from_schema(
            table_name, self.get_schema(database, table_name)
        )
