# vigia/services/incidents.py
"""
First-write-wins incident deduplication.

Every report is screened by the guardrail, mapped to a deterministic
`<time bucket>__<grid cell>` id, and folded into the canonical document with
that id inside one optimistic read-modify-write:

- no document yet   -> create it (reportsCount=1, declarants={user})
- new declarant     -> reportsCount+1, add declarant, merge category alias
- known declarant   -> refresh lastReportAt / lastReport only

The first reporter's payload and location are never overwritten. A footprint
is written once, when the canonical document is created.
"""
from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from vigia import config
from vigia.db.dynamo import from_dynamo, run_transaction
from vigia.db.footprints import put_footprint
from vigia.errors import AuthRequiredError, CoordsRequiredError, SiblingConflictError
from vigia.models.footprint import Footprint
from vigia.models.incident import (
    CanonicalIncident,
    Coordinates,
    Grouping,
    IncidentPayload,
    ReportSnapshot,
    UpsertResult,
)
from vigia.services.buckets import build_group_id, time_bucket_key
from vigia.services.geo_utils import encode_geohash
from vigia.services.guardrail import Guardrail
from vigia.services.tracing import mask_token, span_id

log = logging.getLogger(__name__)

MAX_ALIASES = 20
MAX_DECLARANTS = 500
SIBLING_SUFFIX_LEN = 5
DAY_MS = 24 * 60 * 60 * 1000

# (existing item, {"description", "category", "reportedAt"}) -> True to split
SplitPolicy = Callable[[Dict[str, Any], Dict[str, Any]], bool]

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def short_rand(n: int = SIBLING_SUFFIX_LEN) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(n))


def _user_id(user: Any) -> Optional[str]:
    """Accepts a bare id or an auth mapping carrying `uid`."""
    if isinstance(user, Mapping):
        user = user.get("uid") or user.get("id")
    uid = str(user).strip() if user is not None else ""
    return uid or None


def _parse_coords(coords: Any) -> Coordinates:
    if coords is None:
        raise CoordsRequiredError()
    if isinstance(coords, Coordinates):
        return coords
    try:
        return Coordinates.model_validate(coords)
    except ValidationError as e:
        raise CoordsRequiredError() from e


def _location(c: Coordinates) -> Dict[str, Any]:
    return c.model_dump(by_alias=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IncidentStore:
    """
    Canonical incident documents in the PublicAlerts table.

    `clock` returns the server time used for bucketing and timestamps.
    `split_policy`, when given, is asked whether a same-bucket report
    describes a different event; if so the report gets a sibling document
    instead of being merged. The default merges unconditionally.
    """

    def __init__(
        self,
        incidents_table,
        footprints_table=None,
        guardrail: Optional[Guardrail] = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
        split_policy: Optional[SplitPolicy] = None,
        window_min: int = config.INCIDENT_WINDOW_MIN,
        grid_km: float = config.GRID_KM,
        max_attempts: int = config.TX_MAX_ATTEMPTS,
    ):
        self.incidents_table = incidents_table
        self.footprints_table = footprints_table
        self.guardrail = guardrail
        self.clock = clock
        self.split_policy = split_policy
        self.window_min = window_min
        self.grid_km = grid_km
        self.max_attempts = max_attempts

    # ---------------- Public API ----------------
    def upsert(
        self,
        user: Any,
        coords: Any,
        payload: Optional[Mapping[str, Any]] = None,
        ttl_days: Optional[int] = None,
        force_unique: bool = False,
    ) -> UpsertResult:
        span = span_id()
        t0 = time.monotonic()

        uid = _user_id(user)
        if not uid:
            log.warning("[%s] upsert: AUTH_REQUIRED", span)
            raise AuthRequiredError()
        c = _parse_coords(coords)
        p = IncidentPayload.model_validate(dict(payload or {}))

        log.info(
            "[%s] upsert START user=%s lat=%.5f lng=%.5f cat=%r desc_len=%d force_unique=%s",
            span, mask_token(uid), c.latitude, c.longitude, p.category, len(p.description), force_unique,
        )

        if self.guardrail is not None:
            self.guardrail.enforce(p.description, uid)

        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        ttl = max(1, min(365, int(ttl_days or config.DEFAULT_TTL_DAYS)))

        base_id = build_group_id(
            c.latitude, c.longitude, now, window_min=self.window_min, grid_km=self.grid_km
        )
        result = self._apply(span, uid, c, p, now, ttl, base_id, force_unique)

        log.info(
            "[%s] upsert END id=%s action=%s ms=%d",
            span, result.id, result.action, int((time.monotonic() - t0) * 1000),
        )
        return result

    def get(self, incident_id: str) -> Optional[CanonicalIncident]:
        resp = self.incidents_table.get_item(Key={"id": incident_id}, ConsistentRead=True)
        item = resp.get("Item")
        if not item:
            return None
        return CanonicalIncident.model_validate(from_dynamo(item))

    # ---------------- Transaction ----------------
    def _apply(
        self,
        span: str,
        uid: str,
        c: Coordinates,
        p: IncidentPayload,
        now: datetime,
        ttl_days: int,
        base_id: str,
        force_unique: bool,
    ) -> UpsertResult:
        effective_id = f"{base_id}_{short_rand()}" if force_unique else base_id
        now_ms = int(now.timestamp() * 1000)
        snapshot = ReportSnapshot(
            description=p.description,
            category=p.category,
            severity=p.severity,
            street=p.street,
            city=p.city,
            state=p.state,
            location=_location(c),
            radius_m=p.radius_m,
            reported_at=now_ms,
        )
        incoming = {"description": p.description, "category": p.category, "reportedAt": now_ms}
        # reassigned on every attempt, read after the commit
        outcome: Dict[str, Any] = {}

        def mutate(current: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            outcome.clear()
            if current is None:
                expires_at = now_ms + ttl_days * DAY_MS
                doc = CanonicalIncident(
                    id=effective_id,
                    payload=p,
                    location=_location(c),
                    created_at=now_ms,
                    expires_at=expires_at,
                    last_report_at=now_ms,
                    ttl_epoch=expires_at // 1000,
                    reports_count=1,
                    declarants_map={uid: True},
                    category_aliases=[p.category] if p.category else [],
                    grouping=Grouping(
                        time_key=time_bucket_key(now, self.window_min),
                        grid_km=self.grid_km,
                        window_min=self.window_min,
                        base_id=base_id,
                    ),
                    last_report=snapshot,
                )
                outcome["created"] = True
                log.info("[%s] TX: CREATE id=%s", span, effective_id)
                return doc.to_item()

            if force_unique:
                log.warning("[%s] forceUnique collision: sibling %s exists", span, effective_id)
                raise SiblingConflictError()

            if self.split_policy is not None and self.split_policy(current, incoming):
                outcome["split"] = True
                return None

            doc = CanonicalIncident.model_validate(current)
            declarants = len(doc.declarants_map)
            already = uid in doc.declarants_map

            doc.last_report_at = now_ms
            doc.last_report = snapshot
            if not already and declarants < MAX_DECLARANTS:
                doc.reports_count += 1
                doc.declarants_map[uid] = True

            cat = p.category.strip()
            if cat and cat not in doc.category_aliases:
                doc.category_aliases = (doc.category_aliases + [cat])[-MAX_ALIASES:]

            outcome["already"] = already
            outcome["aggregated"] = not already
            log.info(
                "[%s] TX: UPDATE id=%s already=%s declarants_before=%d aliases=%d",
                span, effective_id, already, declarants, len(doc.category_aliases),
            )
            return doc.to_item()

        item = run_transaction(
            self.incidents_table, {"id": effective_id}, mutate, max_attempts=self.max_attempts
        )

        if outcome.get("split"):
            log.info("[%s] split policy: report is a different event, creating sibling of %s", span, base_id)
            return self._apply(span, uid, c, p, now, ttl_days, base_id, True)

        was_created = bool(outcome.get("created"))
        if was_created:
            self._write_footprint(span, uid, item, p, c)

        aggregated = bool(outcome.get("aggregated"))
        already = bool(outcome.get("already"))
        action = "created"
        if not was_created and aggregated:
            action = "reinforced"
        elif not was_created and already:
            action = "already"
        return UpsertResult(
            id=effective_id,
            was_created=was_created,
            was_aggregated=aggregated,
            already_declared=already,
            action=action,
        )

    def _write_footprint(
        self,
        span: str,
        uid: str,
        item: Dict[str, Any],
        p: IncidentPayload,
        c: Coordinates,
    ) -> None:
        if self.footprints_table is None:
            return
        fp = Footprint(
            id=item["id"],
            lat=c.latitude,
            lng=c.longitude,
            radius_m=p.radius_m,
            category=p.category,
            alert_id=item["id"],
            user_id=uid,
            created_at=item["createdAt"],
            expire_at=item["expiresAt"],
            ttl_epoch=item["ttlEpoch"],
            geohash=encode_geohash(c.latitude, c.longitude),
            endereco=p.street,
            cidade=p.city,
            uf=p.state,
        )
        try:
            written = put_footprint(self.footprints_table, fp)
        except Exception:
            # incident already committed, only the map trace is missing
            log.exception("[%s] footprint write failed for %s", span, fp.id)
            return
        log.info("[%s] footprint %s id=%s", span, "written" if written else "exists", fp.id)
