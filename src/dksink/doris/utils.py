"""Utility functions for Doris operations.

Wires configuration into the Doris clients and the record pipeline so the CLI
stays thin and the wiring can be tested on its own.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import urlparse

from dksink.config import Config
from dksink.converter.service import RecordService
from dksink.doris.client import DorisQueryClient, DorisRestClient
from dksink.exceptions import MissingTableError
from dksink.schema.ddl import SchemaChangeManager
from dksink.schema.evolution import SchemaEvolutionCoordinator
from dksink.schema.introspect import DorisCatalog
from dksink.schema.models import TableDescriptor
from dksink.types import ConverterMode


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load config from a YAML file when given, else from the environment."""
    if config_path is not None:
        return Config.from_yaml(config_path)
    return Config.from_env()


def build_config_and_validate(config_path: Optional[Path] = None) -> Config:
    """Load config and validate it for Doris operations.

    Raises:
        ConfigError: If required configuration is missing.
    """
    config = load_config(config_path)
    config.validate_for_db_ops()
    return config


def query_host(url: str) -> str:
    """Host part of a ``doris.urls`` entry (``fe1``, ``fe1:8030``, ``http://fe1``)."""
    url = url.strip()
    if "://" not in url:
        url = f"http://{url}"
    host = urlparse(url).hostname
    if not host:
        raise ValueError(f"Invalid Doris url: {url}")
    return host


def get_table_descriptor(config: Config, table_name: str) -> TableDescriptor:
    """Fetch a table's current columns from Doris.

    Raises:
        ConfigError: If DB config is invalid.
        MissingTableError: If the table does not exist.
        CatalogError: If the catalog cannot be read.
    """
    config.validate_for_db_ops()

    rest_client = _rest_client(config)
    try:
        with _query_client(config) as sql_client:
            catalog = DorisCatalog(sql_client, rest_client)
            if not catalog.table_exists(config.database, table_name):
                raise MissingTableError(table_name)
            return catalog.get_table_descriptor(config.database, table_name)
    finally:
        rest_client.close()


@contextmanager
def open_record_service(config: Config) -> Iterator[RecordService]:
    """Yield a RecordService wired for ``config``.

    In ``debezium_ingestion`` mode the service gets a schema evolution
    coordinator backed by live Doris clients, which are closed on exit. In
    ``normal`` mode no connection is opened.
    """
    if config.converter_mode is not ConverterMode.DEBEZIUM_INGESTION:
        yield RecordService(config)
        return

    config.validate_for_db_ops()
    rest_client = _rest_client(config)
    try:
        with _query_client(config) as sql_client:
            coordinator = SchemaEvolutionCoordinator(
                catalog=DorisCatalog(sql_client, rest_client),
                ddl=SchemaChangeManager(rest_client, config.database),
                database=config.database,
                mode=config.schema_evolution,
            )
            yield RecordService(config, coordinator=coordinator)
    finally:
        rest_client.close()


def _rest_client(config: Config) -> DorisRestClient:
    return DorisRestClient(
        hosts=config.doris_urls,
        http_port=config.doris_http_port,
        user=config.doris_user,
        password=config.doris_password,
        timeout=config.request_timeout,
    )


def _query_client(config: Config) -> DorisQueryClient:
    return DorisQueryClient(
        host=query_host(config.doris_urls[0]),
        port=config.doris_query_port,
        user=config.doris_user,
        password=config.doris_password,
        database=config.database,
    )
