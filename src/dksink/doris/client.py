"""Doris FE clients: MySQL protocol for catalog queries, HTTP for the REST API."""

import logging
import threading
from typing import Any, Optional

import pymysql
import requests
from pymysql.cursors import DictCursor

logger = logging.getLogger(__name__)


class DorisQueryClient:
    """Thin wrapper around a pymysql connection to a Doris FE query port.

    One connection is shared by every caller, so statements are serialized
    on an internal lock.
    """

    def __init__(
        self,
        host: str,
        port: int = 9030,
        user: str = "root",
        password: str = "",
        database: Optional[str] = None,
        connect_timeout: int = 10,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._database = database
        self._connect_timeout = connect_timeout
        self._connection: Any = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open the connection. Must be called before execute/fetchall."""
        if self._connection is not None:
            raise RuntimeError("Already connected. Call close() before reconnecting.")
        self._connection = pymysql.connect(
            host=self._host,
            port=self._port,
            user=self._user,
            password=self._password,
            database=self._database,
            connect_timeout=self._connect_timeout,
            cursorclass=DictCursor,
            autocommit=True,
        )

    def execute(self, sql: str, params: Any = None) -> None:
        if self._connection is None:
            raise RuntimeError("Not connected. Call connect() first.")
        with self._lock, self._connection.cursor() as cursor:
            cursor.execute(sql, params)

    def fetchall(self, sql: str, params: Any = None) -> list[dict[str, Any]]:
        if self._connection is None:
            raise RuntimeError("Not connected. Call connect() first.")
        with self._lock, self._connection.cursor() as cursor:
            cursor.execute(sql, params)
            return list(cursor.fetchall())

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None

    def __enter__(self) -> "DorisQueryClient":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


class DorisRestClient:
    """HTTP client for the Doris FE REST API.

    Requests go to the first FE that accepts a connection; connection errors
    and timeouts move on to the next configured FE. Other failures propagate
    as ``requests.RequestException``.
    """

    def __init__(
        self,
        hosts: list[str],
        http_port: int = 8030,
        user: str = "root",
        password: str = "",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not hosts:
            raise ValueError("At least one Doris FE host is required")
        self._base_urls = [self._base_url(h, http_port) for h in hosts]
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (user, password)

    @staticmethod
    def _base_url(host: str, http_port: int) -> str:
        host = host.strip().rstrip("/")
        if host.startswith("http://") or host.startswith("https://"):
            return host
        if ":" in host:
            return f"http://{host}"
        return f"http://{host}:{http_port}"

    @property
    def base_urls(self) -> list[str]:
        return list(self._base_urls)

    def get_json(self, path: str) -> Any:
        return self._request("GET", path)

    def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        return self._request("POST", path, json=payload)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        last_error: Optional[Exception] = None
        for base_url in self._base_urls:
            url = f"{base_url}{path}"
            try:
                response = self._session.request(
                    method, url, timeout=self._timeout, **kwargs
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                logger.warning(f"Doris FE {base_url} unreachable: {e}")
                last_error = e
                continue
            response.raise_for_status()
            return response.json()
        raise requests.ConnectionError(
            f"No Doris FE reachable among {', '.join(self._base_urls)}"
        ) from last_error

    def close(self) -> None:
        self._session.close()
