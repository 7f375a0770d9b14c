# vigia/routes/incident.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from vigia.deps import get_guardrail, get_incident_store
from vigia.errors import (
    AuthRequiredError,
    CoordsRequiredError,
    PrivacyBlockedError,
    SiblingConflictError,
    TransactionConflictError,
)
from vigia.models.incident import GuardrailCheckIn, IncidentIn
from vigia.services.guardrail import Guardrail
from vigia.services.incidents import IncidentStore

log = logging.getLogger(__name__)

router = APIRouter(tags=["incident"])


@router.post("/report_incident")
def report_incident(data: IncidentIn, store: IncidentStore = Depends(get_incident_store)):
    """
    Screen the description, then create or reinforce the canonical incident
    for the report's hour bucket and ~1 km cell.
    """
    try:
        result = store.upsert(
            data.reported_by,
            data.coords,
            data.payload,
            ttl_days=data.ttl_days,
            force_unique=data.force_unique,
        )
    except AuthRequiredError as e:
        raise HTTPException(status_code=401, detail={"code": e.code, "message": e.message})
    except CoordsRequiredError as e:
        raise HTTPException(status_code=400, detail={"code": e.code, "message": e.message})
    except PrivacyBlockedError as e:
        return JSONResponse(
            status_code=422,
            content={"code": e.code, "message": e.message, "suggestion": e.suggestion},
        )
    except (TransactionConflictError, SiblingConflictError) as e:
        log.warning("report_incident: %s", e.code)
        raise HTTPException(status_code=503, detail={"code": e.code, "message": e.message})

    return result.model_dump(by_alias=True)


@router.post("/guardrail/check")
def guardrail_check(data: GuardrailCheckIn, guardrail: Guardrail = Depends(get_guardrail)):
    """
    Pre-submit check for the composition screen. `user_id` is unverified
    here, so a rejection never adds a strike; strikes only come from
    /report_incident. An already blocked user still gets the rejection.
    """
    return guardrail.check(data.text, data.user_id, record_strike=False).to_dict()
