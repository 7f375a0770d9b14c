# vigia/models/footprint.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Footprint(BaseModel):
    """
    Immutable public trace of a canonical incident, written once when the
    incident is created. Timestamps are epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    lat: float
    lng: float
    radius_m: float = 1000.0
    kind: str = "publicIncident"
    # first reporter's category, shown as the tooltip title
    category: str = ""
    alert_id: str = Field("", alias="alertId")
    user_id: str = Field("", alias="userId")
    created_at: int = Field(0, alias="createdAt")
    expire_at: Optional[int] = Field(None, alias="expireAt")
    ttl_epoch: int = Field(0, alias="ttlEpoch")
    geohash: str
    gh1: str = ""
    # address bits used only for the tooltip
    endereco: str = ""
    cidade: str = ""
    uf: str = ""

    def to_item(self) -> dict:
        item = self.model_dump(by_alias=True)
        item["gh1"] = self.gh1 or self.geohash[:1]
        return item


class TooltipMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    alert_id: str = Field("", alias="alertId")
    user_id: str = Field("", alias="userId")
    radius_text: str = Field("", alias="radiusText")


class Tooltip(BaseModel):
    title: str
    subtitle: str
    meta: TooltipMeta


class FootprintItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    lat: float
    lng: float
    radius_m: float
    kind: str
    alert_id: str = Field("", alias="alertId")
    user_id: str = Field("", alias="userId")
    created_at: int = Field(0, alias="createdAt")
    tooltip: Tooltip


class FootprintResponse(BaseModel):
    ok: bool = True
    mode: str
    since: str
    count: int
    items: List[FootprintItem] = Field(default_factory=list)
