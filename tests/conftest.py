from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from vigia import config
from vigia.db.schema import create_tables
from vigia.db.strikes import InMemoryStrikeStore
from vigia.services.guardrail import Guardrail
from vigia.services.runtime_config import RuntimeConfigProvider

REGION = "sa-east-1"

# never let a test reach real AWS
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", REGION)


class FakeClock:
    """Callable returning a controllable UTC datetime."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, hour: int, minute: int) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return self.now


class FakeSeconds:
    """Callable returning a controllable epoch-seconds float."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def dynamodb(aws_credentials):
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name=REGION)
        create_tables(resource, wait=False)
        yield resource


@pytest.fixture
def incidents_table(dynamodb):
    return dynamodb.Table(config.INCIDENTS_TABLE)


@pytest.fixture
def footprints_table(dynamodb):
    return dynamodb.Table(config.FOOTPRINTS_TABLE)


@pytest.fixture
def strikes_table(dynamodb):
    return dynamodb.Table(config.STRIKES_TABLE)


@pytest.fixture
def config_table(dynamodb):
    return dynamodb.Table(config.CONFIG_TABLE)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 10, 5, tzinfo=timezone.utc))


@pytest.fixture
def seconds():
    return FakeSeconds()


@pytest.fixture
def config_doc():
    """Mutable remote config document served by `config_provider`."""
    return {"forbiddenAliases": [], "knownPlaces": []}


@pytest.fixture
def config_provider(config_doc):
    provider = RuntimeConfigProvider(lambda: dict(config_doc), ttl_s=600)
    provider.load()
    return provider


@pytest.fixture
def strike_store(seconds):
    return InMemoryStrikeStore(limit=3, window_s=6 * 3600, block_s=6 * 3600, clock=seconds)


@pytest.fixture
def guardrail(config_provider, strike_store):
    return Guardrail(config_provider=config_provider, strikes=strike_store)
