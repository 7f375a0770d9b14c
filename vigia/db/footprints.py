# vigia/db/footprints.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from vigia import config
from vigia.db.dynamo import from_dynamo, put_if_absent
from vigia.models.footprint import Footprint

log = logging.getLogger(__name__)


def put_footprint(table, footprint: Footprint) -> bool:
    """Write-once. Returns False if a footprint with this id already exists."""
    return put_if_absent(table, footprint.to_item(), "id")


def query_geohash_range(
    table,
    gh1: str,
    start: str,
    end: str,
    since_ms: int,
    limit_cap: int,
    *,
    index_name: str = config.FOOTPRINTS_GEOHASH_INDEX,
    page_limit: int = 1000,
) -> List[Dict[str, Any]]:
    """
    Footprints whose geohash is in [start, end] inside the `gh1` partition,
    created at or after `since_ms`. Pages through the GSI until `limit_cap`
    rows are collected or the range is exhausted.
    """
    items: List[Dict[str, Any]] = []
    lek: Optional[Dict[str, Any]] = None

    while True:
        kwargs = {
            "IndexName": index_name,
            "KeyConditionExpression": Key("gh1").eq(gh1) & Key("geohash").between(start, end),
            "FilterExpression": Attr("createdAt").gte(since_ms),
            "Limit": min(page_limit, max(1, limit_cap)),
        }
        if lek:
            kwargs["ExclusiveStartKey"] = lek

        resp = table.query(**kwargs)
        items.extend(from_dynamo(it) for it in resp.get("Items", []))
        lek = resp.get("LastEvaluatedKey")
        if not lek or len(items) >= limit_cap:
            break

    if len(items) > limit_cap:
        log.debug("range %s [%s, %s] capped at %d", gh1, start, end, limit_cap)
    return items[:limit_cap]
