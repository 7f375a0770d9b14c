# vigia/db/strikes.py
"""
Per-user abuse strikes consulted by the guardrail.

Only counts and timestamps are stored, never the rejected text.
`limit` strikes inside `window_s` block the user for `block_s` seconds and
reset the counter.
"""
from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

from vigia import config
from vigia.db.dynamo import from_dynamo, run_transaction


@dataclass
class StrikeState:
    count: int = 0
    window_start: float = 0.0
    last: float = 0.0
    blocked_until: float = 0.0

    def is_blocked(self, now: float) -> bool:
        return now < self.blocked_until


def apply_strike(
    state: StrikeState,
    now: float,
    *,
    limit: int,
    window_s: float,
    block_s: float,
) -> StrikeState:
    if state.count == 0 or now - state.window_start > window_s:
        state = StrikeState(count=0, window_start=now, blocked_until=state.blocked_until)
    state.count += 1
    state.last = now
    if state.count >= limit:
        state.blocked_until = now + block_s
        state.count = 0
    return state


class AbuseStrikeStore:
    """Interface shared by the in-memory and DynamoDB stores."""

    def __init__(
        self,
        *,
        limit: int = config.STRIKE_LIMIT,
        window_s: float = config.STRIKE_WINDOW_S,
        block_s: float = config.BLOCK_DURATION_S,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_s = window_s
        self.block_s = block_s
        self.clock = clock

    def add_strike(self, user_id: Optional[str]) -> StrikeState:
        raise NotImplementedError

    def get_state(self, user_id: Optional[str]) -> StrikeState:
        raise NotImplementedError

    def is_blocked(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        return self.get_state(user_id).is_blocked(self.clock())


class InMemoryStrikeStore(AbuseStrikeStore):
    """
    Process-local store. Fine for a single instance; with several instances
    each one keeps its own counters and blocks do not survive restarts, so
    production uses DynamoStrikeStore.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._lock = threading.Lock()
        self._states: Dict[str, StrikeState] = {}

    def add_strike(self, user_id: Optional[str]) -> StrikeState:
        if not user_id:
            return StrikeState()
        with self._lock:
            state = self._states.get(user_id, StrikeState())
            state = apply_strike(
                StrikeState(**asdict(state)),
                self.clock(),
                limit=self.limit,
                window_s=self.window_s,
                block_s=self.block_s,
            )
            self._states[user_id] = state
            return StrikeState(**asdict(state))

    def get_state(self, user_id: Optional[str]) -> StrikeState:
        if not user_id:
            return StrikeState()
        with self._lock:
            return StrikeState(**asdict(self._states.get(user_id, StrikeState())))


class DynamoStrikeStore(AbuseStrikeStore):
    """Strike counters in the AbuseStrikes table, one item per user."""

    def __init__(self, table, **kwargs):
        super().__init__(**kwargs)
        self.table = table

    @staticmethod
    def _from_item(item: Optional[dict]) -> StrikeState:
        if not item:
            return StrikeState()
        return StrikeState(
            count=int(item.get("count", 0) or 0),
            window_start=float(item.get("windowStart", 0) or 0),
            last=float(item.get("lastStrikeAt", 0) or 0),
            blocked_until=float(item.get("blockedUntil", 0) or 0),
        )

    def add_strike(self, user_id: Optional[str]) -> StrikeState:
        if not user_id:
            return StrikeState()
        now = self.clock()

        def mutate(current: Optional[dict]) -> dict:
            state = apply_strike(
                self._from_item(current),
                now,
                limit=self.limit,
                window_s=self.window_s,
                block_s=self.block_s,
            )
            return {
                "userId": user_id,
                "count": state.count,
                "windowStart": state.window_start,
                "lastStrikeAt": state.last,
                "blockedUntil": state.blocked_until,
            }

        item = run_transaction(self.table, {"userId": user_id}, mutate)
        return self._from_item(item)

    def get_state(self, user_id: Optional[str]) -> StrikeState:
        if not user_id:
            return StrikeState()
        resp = self.table.get_item(Key={"userId": user_id}, ConsistentRead=True)
        item = resp.get("Item")
        return self._from_item(from_dynamo(item) if item else None)
