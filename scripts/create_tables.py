# scripts/create_tables.py
"""
Provision the DynamoDB tables and seed the guardrail config document.

    python scripts/create_tables.py
    python scripts/create_tables.py --known-place "Av. Polícia Militar" --alias "bonde do x"
    python scripts/create_tables.py --endpoint-url http://localhost:8000   # DynamoDB Local
"""
from pathlib import Path
import sys
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(REPO_ROOT))

import argparse
import logging

import boto3

from vigia import config
from vigia.db.schema import create_tables

log = logging.getLogger("create_tables")


def seed_config(dynamodb, aliases, places, overwrite: bool = False) -> bool:
    table = dynamodb.Table(config.CONFIG_TABLE)
    if not overwrite and table.get_item(Key={"id": config.CONFIG_DOC_ID}).get("Item"):
        log.info("config document %s already present, leaving it", config.CONFIG_DOC_ID)
        return False
    table.put_item(
        Item={
            "id": config.CONFIG_DOC_ID,
            "forbiddenAliases": list(aliases),
            "knownPlaces": list(places),
        }
    )
    log.info("seeded %s: %d aliases, %d known places", config.CONFIG_DOC_ID, len(aliases), len(places))
    return True


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--region", default=config.AWS_REGION)
    ap.add_argument("--endpoint-url", default=None)
    ap.add_argument("--alias", action="append", default=[], help="extra forbidden alias (repeatable)")
    ap.add_argument("--known-place", action="append", default=[], help="whitelisted place name (repeatable)")
    ap.add_argument("--overwrite-config", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    dynamodb = boto3.resource("dynamodb", region_name=args.region, endpoint_url=args.endpoint_url)

    created = create_tables(dynamodb)
    print(f"Tables created: {', '.join(created) or '(none, all present)'}")
    seed_config(dynamodb, args.alias, args.known_place, overwrite=args.overwrite_config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
