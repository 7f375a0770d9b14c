# vigia/routes/footprints.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from vigia.deps import get_footprint_service
from vigia.errors import QueryParamError, QueryTimeoutError
from vigia.services.footprint_service import FootprintService

log = logging.getLogger(__name__)

router = APIRouter(tags=["footprints"])


def _fail(status: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"ok": False, "error": error})


@router.get("/footprints")
def footprints(
    mode: Optional[str] = Query(None, description="circle | bbox (auto when omitted)"),
    lat: Optional[str] = Query(None),
    lng: Optional[str] = Query(None),
    radius_m: Optional[str] = Query(None, description="Circle radius in meters (default 1000)"),
    north: Optional[str] = Query(None),
    south: Optional[str] = Query(None),
    east: Optional[str] = Query(None),
    west: Optional[str] = Query(None),
    since: Optional[str] = Query(None, description="ISO date; at most 90 days back"),
    sinceDays: Optional[str] = Query(None, description="1-90, default 90"),
    limit: Optional[str] = Query(None, description="1-10000, default 2000"),
    x_api_key: Optional[str] = Header(None),
    service: FootprintService = Depends(get_footprint_service),
):
    """
    Historical incident footprints inside a circle or bbox. Params are taken
    as raw strings and parsed leniently; malformed required fields are a 400.
    """
    if not service.check_api_key(x_api_key):
        log.warning("[FOOTPRINTS] invalid x-api-key")
        return _fail(401, "unauthorized")

    params = {
        "mode": mode, "lat": lat, "lng": lng, "radius_m": radius_m,
        "north": north, "south": south, "east": east, "west": west,
        "since": since, "sinceDays": sinceDays, "limit": limit,
    }
    try:
        return service.query(params)
    except QueryParamError as e:
        log.warning("[FOOTPRINTS] bad params: %s", e)
        return _fail(400, str(e))
    except QueryTimeoutError as e:
        return _fail(504, str(e))
    except Exception:
        log.exception("[FOOTPRINTS] ERROR")
        return _fail(500, "internal error")
