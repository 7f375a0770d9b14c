# vigia/db/dynamo.py
from __future__ import annotations

import logging
import math
import random
import time
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.config import Config
from botocore.exceptions import ClientError

from vigia import config
from vigia.errors import TransactionConflictError

log = logging.getLogger(__name__)

VERSION_ATTR = "version"


@lru_cache(maxsize=1)
def get_dynamodb():
    """Shared DynamoDB resource for request paths."""
    return boto3.resource("dynamodb", region_name=config.AWS_REGION)


@lru_cache(maxsize=1)
def get_config_dynamodb():
    """
    Separate resource with short timeouts for the remote-config fetch,
    so a slow config read can never hold up a report submission.
    """
    timeout = config.CONFIG_FETCH_TIMEOUT_S
    return boto3.resource(
        "dynamodb",
        region_name=config.AWS_REGION,
        config=Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 2, "mode": "standard"},
        ),
    )


def incidents_table():
    return get_dynamodb().Table(config.INCIDENTS_TABLE)


def footprints_table():
    return get_dynamodb().Table(config.FOOTPRINTS_TABLE)


def strikes_table():
    return get_dynamodb().Table(config.STRIKES_TABLE)


def config_table():
    return get_config_dynamodb().Table(config.CONFIG_TABLE)


# ---------------- Type conversion ----------------
def to_dynamo(value: Any) -> Any:
    """Recursively convert floats to Decimal (boto3 rejects float)."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Recursively turn Decimals back into int (when integral) or float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    if isinstance(value, set):
        return {from_dynamo(v) for v in value}
    return value


def _is_conditional_failure(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


# ---------------- Optimistic transactions ----------------
def run_transaction(
    table,
    key: Dict[str, Any],
    mutate: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]],
    *,
    max_attempts: int = config.TX_MAX_ATTEMPTS,
    backoff_s: float = 0.02,
) -> Optional[Dict[str, Any]]:
    """
    Linearized read-modify-write on a single item.

    `mutate` receives the current item (plain Python types, or None when the
    key does not exist yet) and returns the full replacement item, or None to
    skip the write. It may run several times, so it must not keep side
    effects between attempts.

    The write is conditioned on the version read: `attribute_not_exists` for
    creates, `version = :read` for updates. A failed condition means another
    writer got there first, so we re-read and retry. Exhausting the retries
    raises TransactionConflictError.
    """
    key_attr = next(iter(key))
    for attempt in range(1, max_attempts + 1):
        resp = table.get_item(Key=key, ConsistentRead=True)
        raw = resp.get("Item")
        current = from_dynamo(raw) if raw else None

        new_item = mutate(current)
        if new_item is None:
            return current

        if current is None:
            condition = Attr(key_attr).not_exists()
            version = 0
        else:
            version = int(current.get(VERSION_ATTR, 0) or 0)
            if VERSION_ATTR in current:
                condition = Attr(VERSION_ATTR).eq(version)
            else:
                condition = Attr(key_attr).exists() & Attr(VERSION_ATTR).not_exists()

        new_item = dict(new_item)
        new_item.update(key)
        new_item[VERSION_ATTR] = version + 1

        try:
            table.put_item(Item=to_dynamo(new_item), ConditionExpression=condition)
            return new_item
        except ClientError as e:
            if not _is_conditional_failure(e):
                raise
            log.info("tx conflict on %s (attempt %d/%d)", key, attempt, max_attempts)
            time.sleep(backoff_s * attempt * (1 + random.random()))

    log.error("tx retries exhausted on %s", key)
    raise TransactionConflictError()


def put_if_absent(table, item: Dict[str, Any], key_attr: str) -> bool:
    """Create-only write. Returns False when the key already exists."""
    try:
        table.put_item(
            Item=to_dynamo(item),
            ConditionExpression=Attr(key_attr).not_exists(),
        )
        return True
    except ClientError as e:
        if _is_conditional_failure(e):
            return False
        raise
