# vigia/services/runtime_config.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from vigia import config
from vigia.db.dynamo import config_table
from vigia.services.lexicon import DEFAULT_FORBIDDEN_ALIASES, DEFAULT_KNOWN_PLACES

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeConfig:
    forbidden_aliases: Tuple[str, ...] = DEFAULT_FORBIDDEN_ALIASES
    known_places: Tuple[str, ...] = DEFAULT_KNOWN_PLACES
    loaded_at: float = 0.0
    source: str = "default"


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple, set)):
        return ()
    return tuple(str(v).strip() for v in value if v is not None and str(v).strip())


def parse_config_document(doc: Optional[Dict[str, Any]]) -> Dict[str, Tuple[str, ...]]:
    doc = doc or {}
    return {
        "forbidden_aliases": _str_tuple(doc.get("forbiddenAliases")),
        "known_places": _str_tuple(doc.get("knownPlaces")),
    }


def dynamo_config_fetcher(table=None, doc_id: str = config.CONFIG_DOC_ID) -> Callable[[], Dict[str, Any]]:
    """Fetch callable reading the admin config document (short boto timeouts)."""

    def fetch() -> Dict[str, Any]:
        tbl = table if table is not None else config_table()
        resp = tbl.get_item(Key={"id": doc_id})
        return resp.get("Item") or {}

    return fetch


class RuntimeConfigProvider:
    """
    In-process cache of the remote guardrail config.

    - `load()` primes the cache (called on app start)
    - `get()` refreshes when the TTL has elapsed
    - `invalidate()` forces the next `get()` to refetch

    A failed fetch never raises: the last known config is served, or the
    built-in defaults when nothing was ever loaded. The next fetch is then
    held off for `retry_s`, so callers queued on the lock during an outage
    do not each wait out their own fetch timeout.
    """

    def __init__(
        self,
        fetch: Callable[[], Optional[Dict[str, Any]]],
        *,
        ttl_s: float = config.RUNTIME_CONFIG_TTL_S,
        retry_s: float = config.RUNTIME_CONFIG_RETRY_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._ttl_s = ttl_s
        self._retry_s = min(retry_s, ttl_s)
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: RuntimeConfig = RuntimeConfig()
        self._expires_at: float = float("-inf")

    def load(self) -> RuntimeConfig:
        with self._lock:
            return self._refresh_locked()

    def get(self) -> RuntimeConfig:
        with self._lock:
            if self._clock() < self._expires_at:
                return self._cached
            return self._refresh_locked()

    def invalidate(self) -> None:
        with self._lock:
            self._expires_at = float("-inf")

    def set(self, forbidden_aliases=(), known_places=()) -> RuntimeConfig:
        """Pin a config without fetching (admin tooling and tests)."""
        with self._lock:
            self._cached = RuntimeConfig(
                forbidden_aliases=_str_tuple(list(forbidden_aliases)),
                known_places=_str_tuple(list(known_places)),
                loaded_at=self._clock(),
                source="pinned",
            )
            self._expires_at = self._clock() + self._ttl_s
            return self._cached

    def _refresh_locked(self) -> RuntimeConfig:
        now = self._clock()
        try:
            parsed = parse_config_document(self._fetch())
        except Exception as e:  # any fetch failure falls back
            log.warning("runtime config fetch failed, serving %s config: %s", self._cached.source, e)
            self._expires_at = self._clock() + self._retry_s
            return self._cached
        self._cached = RuntimeConfig(
            forbidden_aliases=parsed["forbidden_aliases"],
            known_places=parsed["known_places"],
            loaded_at=now,
            source="remote",
        )
        self._expires_at = now + self._ttl_s
        log.info(
            "runtime config loaded: %d forbidden aliases, %d known places",
            len(self._cached.forbidden_aliases),
            len(self._cached.known_places),
        )
        return self._cached
