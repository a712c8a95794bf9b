# influx_catalog/tests/conftest.py
from datetime import datetime, timezone

import pytest
from loguru import logger

from influx_catalog.session import CatalogSession, Credential
from influx_catalog.tests.fakes import FakeClient, FakeQueryApi, FakeWriteApi


@pytest.fixture(autouse=True)
def quiet_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def credential():
    return Credential(token="test-token-abcdef", org="opennms", bucket="opennms")


@pytest.fixture
def write_api():
    return FakeWriteApi()


@pytest.fixture
def query_api():
    return FakeQueryApi()


@pytest.fixture
def client(write_api, query_api):
    return FakeClient(write_api=write_api, query_api=query_api)


@pytest.fixture
def session(client, credential):
    s = CatalogSession("http://localhost:8086", credential, client_factory=lambda **kw: client)
    s.open()
    yield s
    s.close()


@pytest.fixture
def ts():
    return datetime(2024, 1, 1, tzinfo=timezone.utc)
