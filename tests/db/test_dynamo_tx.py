from __future__ import annotations

from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from vigia import config
from vigia.db import dynamo
from vigia.db.schema import create_tables
from vigia.errors import TransactionConflictError


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "PutItem")


class AlwaysConflicting:
    def __init__(self, code: str = "ConditionalCheckFailedException"):
        self.code = code
        self.puts = 0

    def get_item(self, **kwargs):
        return {}

    def put_item(self, **kwargs):
        self.puts += 1
        raise _client_error(self.code)


def test_create_then_update_bumps_version(incidents_table) -> None:
    created = dynamo.run_transaction(incidents_table, {"id": "a"}, lambda cur: {"n": 1})
    assert created["version"] == 1

    updated = dynamo.run_transaction(incidents_table, {"id": "a"}, lambda cur: {**cur, "n": cur["n"] + 1})
    assert updated["version"] == 2
    item = incidents_table.get_item(Key={"id": "a"})["Item"]
    assert item["n"] == 2
    assert item["version"] == 2


def test_mutate_returning_none_skips_write(incidents_table) -> None:
    assert dynamo.run_transaction(incidents_table, {"id": "a"}, lambda cur: None) is None
    assert "Item" not in incidents_table.get_item(Key={"id": "a"})


def test_legacy_item_without_version(incidents_table) -> None:
    incidents_table.put_item(Item={"id": "old", "n": 5})
    out = dynamo.run_transaction(incidents_table, {"id": "old"}, lambda cur: {**cur, "n": cur["n"] + 1})
    assert out["version"] == 1
    assert incidents_table.get_item(Key={"id": "old"})["Item"]["n"] == 6


def test_retries_exhausted_raise_conflict() -> None:
    table = AlwaysConflicting()
    with pytest.raises(TransactionConflictError):
        dynamo.run_transaction(table, {"id": "a"}, lambda cur: {"n": 1}, max_attempts=3, backoff_s=0)
    assert table.puts == 3


def test_other_client_errors_propagate() -> None:
    table = AlwaysConflicting("ProvisionedThroughputExceededException")
    with pytest.raises(ClientError):
        dynamo.run_transaction(table, {"id": "a"}, lambda cur: {"n": 1}, backoff_s=0)
    assert table.puts == 1


def test_put_if_absent(footprints_table) -> None:
    item = {"id": "f1", "gh1": "7", "geohash": "7pkd", "lat": -3.7}
    assert dynamo.put_if_absent(footprints_table, item, "id") is True
    assert dynamo.put_if_absent(footprints_table, {**item, "lat": 0.0}, "id") is False
    assert footprints_table.get_item(Key={"id": "f1"})["Item"]["lat"] == Decimal("-3.7")


def test_type_conversion() -> None:
    raw = {"a": 1.5, "b": [0.1, 2], "c": True, "d": None, "e": float("nan")}
    converted = dynamo.to_dynamo(raw)
    assert converted == {"a": Decimal("1.5"), "b": [Decimal("0.1"), 2], "c": True, "d": None, "e": None}
    back = dynamo.from_dynamo({"a": Decimal("1.5"), "n": Decimal("3"), "l": [Decimal("2.0")]})
    assert back == {"a": 1.5, "n": 3, "l": [2]}
    assert isinstance(back["n"], int)


def test_create_tables_is_idempotent(dynamodb) -> None:
    assert create_tables(dynamodb, wait=False) == []
    names = {t.name for t in dynamodb.tables.all()}
    assert {config.INCIDENTS_TABLE, config.FOOTPRINTS_TABLE, config.STRIKES_TABLE, config.CONFIG_TABLE} <= names
