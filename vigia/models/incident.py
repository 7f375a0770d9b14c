# vigia/models/incident.py
from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_TEXT_LEN = 10_000
DEFAULT_RADIUS_M = 1000.0


def _safe_str(value: Any) -> str:
    if value is None:
        return ""
    s = str(value).strip()
    return s if len(s) <= MAX_TEXT_LEN else s[:MAX_TEXT_LEN]


def _finite_or_none(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


# ---------- Input ----------

class Coordinates(BaseModel):
    """Device position. Accepts `latitude/longitude` or `lat/lng`."""

    model_config = ConfigDict(populate_by_name=True)

    latitude: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    altitude_accuracy: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("altitudeAccuracy", "altitude_accuracy"),
        serialization_alias="altitudeAccuracy",
    )
    speed: Optional[float] = None

    @field_validator("accuracy", "heading", "altitude_accuracy", "speed", mode="before")
    @classmethod
    def _optional_finite(cls, v: Any) -> Optional[float]:
        return _finite_or_none(v)


class IncidentPayload(BaseModel):
    """
    Report fields coming from the composition screen. Portuguese keys used
    by the app (`categoria`, `descricao`, `ruaNumero`...) are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str = Field("", validation_alias=AliasChoices("category", "categoria"))
    description: str = Field("", validation_alias=AliasChoices("description", "descricao", "desc"))
    severity: str = Field("medium", validation_alias=AliasChoices("severity", "gravidade"))
    color: str = "#FFA500"
    street: str = Field("", validation_alias=AliasChoices("street", "ruaNumero", "endereco"))
    city: str = Field("", validation_alias=AliasChoices("city", "cidade"))
    state: str = Field("", validation_alias=AliasChoices("state", "estado", "uf"))
    cep: str = ""
    country: str = Field("BR", validation_alias=AliasChoices("country", "pais"))
    radius_m: float = Field(DEFAULT_RADIUS_M, validation_alias=AliasChoices("radius_m", "radius"))

    @field_validator("category", "description", "street", "city", "cep", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _safe_str(v)

    @field_validator("state", mode="before")
    @classmethod
    def _uf(cls, v: Any) -> str:
        return _safe_str(v).upper()

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, v: Any) -> str:
        return _safe_str(v) or "medium"

    @field_validator("color", mode="before")
    @classmethod
    def _color(cls, v: Any) -> str:
        return _safe_str(v) or "#FFA500"

    @field_validator("country", mode="before")
    @classmethod
    def _country(cls, v: Any) -> str:
        return _safe_str(v) or "BR"

    @field_validator("radius_m", mode="before")
    @classmethod
    def _radius(cls, v: Any) -> float:
        f = _finite_or_none(v)
        return f if f is not None and f > 0 else DEFAULT_RADIUS_M


class IncidentIn(BaseModel):
    """POST /report_incident body."""

    reported_by: Optional[str] = Field(None, description="User identifier (auth subject)")
    coords: Optional[Dict[str, Any]] = Field(None, description="{latitude, longitude, accuracy?, heading?, speed?}")
    payload: Dict[str, Any] = Field(default_factory=dict)
    ttl_days: Optional[int] = Field(None, ge=1, le=365)
    force_unique: bool = False


# ---------- Stored ----------

class Grouping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time_key: str = Field(..., alias="timeKey")
    grid_km: float = Field(..., alias="gridKm")
    window_min: int = Field(..., alias="windowMin")
    base_id: str = Field(..., alias="baseId")


class ReportSnapshot(BaseModel):
    """Most recent contribution, refreshed on every accepted report."""

    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    category: str = ""
    severity: str = "medium"
    street: str = ""
    city: str = ""
    state: str = ""
    location: Dict[str, Any] = Field(default_factory=dict)
    radius_m: float = DEFAULT_RADIUS_M
    reported_at: int = Field(0, alias="reportedAt")


class CanonicalIncident(BaseModel):
    """
    One document per grouping key. Every optional field has a defined
    default, so old documents without e.g. `categoryAliases` load cleanly.
    Timestamps are epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    payload: IncidentPayload
    location: Dict[str, Any]
    created_at: int = Field(..., alias="createdAt")
    expires_at: int = Field(..., alias="expiresAt")
    last_report_at: int = Field(..., alias="lastReportAt")
    ttl_epoch: int = Field(0, alias="ttlEpoch")
    status: str = "active"
    reports_count: int = Field(1, alias="reportsCount")
    declarants_map: Dict[str, bool] = Field(default_factory=dict, alias="declarantsMap")
    category_aliases: List[str] = Field(default_factory=list, alias="categoryAliases")
    grouping: Optional[Grouping] = None
    last_report: Optional[ReportSnapshot] = Field(None, alias="lastReport")
    version: int = 0

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at

    def to_item(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class UpsertResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    was_created: bool = Field(False, alias="wasCreated")
    was_aggregated: bool = Field(False, alias="wasAggregated")
    already_declared: bool = Field(False, alias="alreadyDeclared")
    action: Literal["created", "reinforced", "already"] = "created"


class GuardrailCheckIn(BaseModel):
    text: str = ""
    user_id: Optional[str] = None
