# vigia/deps.py
"""
Process-wide service instances, built lazily and cached. Routers receive
them through FastAPI `Depends`, so tests swap them via
`app.dependency_overrides`.
"""
from __future__ import annotations

from functools import lru_cache

from vigia import config
from vigia.db import dynamo
from vigia.db.strikes import DynamoStrikeStore
from vigia.services.footprint_service import FootprintService
from vigia.services.guardrail import Guardrail
from vigia.services.incidents import IncidentStore
from vigia.services.runtime_config import RuntimeConfigProvider, dynamo_config_fetcher


@lru_cache(maxsize=1)
def get_config_provider() -> RuntimeConfigProvider:
    return RuntimeConfigProvider(dynamo_config_fetcher(), ttl_s=config.RUNTIME_CONFIG_TTL_S)


@lru_cache(maxsize=1)
def get_guardrail() -> Guardrail:
    return Guardrail(
        config_provider=get_config_provider(),
        strikes=DynamoStrikeStore(dynamo.strikes_table()),
    )


@lru_cache(maxsize=1)
def get_incident_store() -> IncidentStore:
    return IncidentStore(
        dynamo.incidents_table(),
        dynamo.footprints_table(),
        get_guardrail(),
    )


@lru_cache(maxsize=1)
def get_footprint_service() -> FootprintService:
    return FootprintService(dynamo.footprints_table())
