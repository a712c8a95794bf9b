# influx_catalog/session.py
# Explicit session handle: one InfluxDBClient per credential, opened once, handed to the write
# buffer and the catalog, and closed when the caller is done. No module-level client.
from dataclasses import dataclass, field
from typing import Optional

from influxdb_client import InfluxDBClient
from influxdb_client.client.write_api import SYNCHRONOUS
from loguru import logger

from influx_catalog.errors import ConfigError, SessionClosedError
from influx_catalog.logger import mask_token


@dataclass(frozen=True)
class Credential:
    """Access token scoped to one organization. Never persisted by this package."""

    token: str = field(repr=False)
    org: str
    bucket: Optional[str] = None
    user: Optional[str] = None

    def __post_init__(self):
        if not self.token:
            raise ConfigError("Credential token must not be empty", keys=["token"])
        if not self.org:
            raise ConfigError("Credential org must not be empty", keys=["org"])


def http_status(exc) -> Optional[int]:
    """HTTP status carried by an influxdb_client error, if any."""
    status = getattr(exc, "status", None)
    if status is None and getattr(exc, "response", None) is not None:
        status = getattr(exc.response, "status", None)
    return status


class CatalogSession:
    """
    Owns the transport resources for one credential.

    open() creates the client, write_api()/query_api() hand out cached APIs, close() releases them.
    Also usable as a context manager.
    """

    def __init__(self, url: str, credential: Credential, timeout_ms: int = 10_000,
                 client_factory=None):
        if not url:
            raise ConfigError("Session url must not be empty", keys=["url"])
        self.url = url
        self.credential = credential
        self.timeout_ms = timeout_ms
        self._client_factory = client_factory or InfluxDBClient
        self._client = None
        self._write_api = None
        self._query_api = None

    @property
    def org(self) -> str:
        return self.credential.org

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self) -> "CatalogSession":
        if self._client is None:
            self._client = self._client_factory(url=self.url, token=self.credential.token,
                                                org=self.credential.org, timeout=self.timeout_ms)
            logger.debug("Opened session to {} (org={}, token={})", self.url, self.org,
                         mask_token(self.credential.token))
        return self

    @property
    def client(self) -> InfluxDBClient:
        if self._client is None:
            raise SessionClosedError(f"Session to {self.url} is not open")
        return self._client

    def write_api(self):
        if self._write_api is None:
            self._write_api = self.client.write_api(write_options=SYNCHRONOUS)
        return self._write_api

    def query_api(self):
        if self._query_api is None:
            self._query_api = self.client.query_api()
        return self._query_api

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self):
        if self._client is None:
            return
        try:
            if self._write_api is not None:
                self._write_api.close()
        finally:
            self._client.close()
            self._client = None
            self._write_api = None
            self._query_api = None
            logger.debug("Closed session to {}", self.url)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
