# vigia/db/schema.py
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from vigia import config

log = logging.getLogger(__name__)

# DynamoDB TTL wants epoch seconds; the purge itself is DynamoDB's job.
TTL_ATTR = "ttlEpoch"


def table_definitions() -> List[Tuple[dict, Optional[str]]]:
    """(create_table kwargs, TTL attribute or None) for every table we touch."""
    return [
        (
            {
                "TableName": config.INCIDENTS_TABLE,
                "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
                "AttributeDefinitions": [{"AttributeName": "id", "AttributeType": "S"}],
                "BillingMode": "PAY_PER_REQUEST",
            },
            TTL_ATTR,
        ),
        (
            {
                # gh1 = first geohash char, so every [start, end] bound maps
                # to one partition plus a sort-key BETWEEN.
                "TableName": config.FOOTPRINTS_TABLE,
                "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
                "AttributeDefinitions": [
                    {"AttributeName": "id", "AttributeType": "S"},
                    {"AttributeName": "gh1", "AttributeType": "S"},
                    {"AttributeName": "geohash", "AttributeType": "S"},
                ],
                "GlobalSecondaryIndexes": [
                    {
                        "IndexName": config.FOOTPRINTS_GEOHASH_INDEX,
                        "KeySchema": [
                            {"AttributeName": "gh1", "KeyType": "HASH"},
                            {"AttributeName": "geohash", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
                "BillingMode": "PAY_PER_REQUEST",
            },
            TTL_ATTR,
        ),
        (
            {
                "TableName": config.STRIKES_TABLE,
                "KeySchema": [{"AttributeName": "userId", "KeyType": "HASH"}],
                "AttributeDefinitions": [{"AttributeName": "userId", "AttributeType": "S"}],
                "BillingMode": "PAY_PER_REQUEST",
            },
            None,
        ),
        (
            {
                "TableName": config.CONFIG_TABLE,
                "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
                "AttributeDefinitions": [{"AttributeName": "id", "AttributeType": "S"}],
                "BillingMode": "PAY_PER_REQUEST",
            },
            None,
        ),
    ]


def create_tables(dynamodb, *, wait: bool = True) -> List[str]:
    """Create missing tables. Returns the names that were created."""
    existing = {t.name for t in dynamodb.tables.all()}
    created: List[str] = []
    for definition, ttl_attr in table_definitions():
        name = definition["TableName"]
        if name in existing:
            continue
        table = dynamodb.create_table(**definition)
        if wait:
            table.wait_until_exists()
        if ttl_attr:
            dynamodb.meta.client.update_time_to_live(
                TableName=name,
                TimeToLiveSpecification={"Enabled": True, "AttributeName": ttl_attr},
            )
        log.info("created table %s", name)
        created.append(name)
    return created
