# vigia/main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import RedirectResponse

from vigia import __version__, config
from vigia.deps import get_config_provider
from vigia.routes.footprints import router as footprints_router
from vigia.routes.incident import router as incident_router

log = logging.getLogger("uvicorn.error")

# Optional global API prefix (e.g., "/api")
_API_PREFIX = config.API_PREFIX
if _API_PREFIX:
    if not _API_PREFIX.startswith("/"):
        _API_PREFIX = "/" + _API_PREFIX
    _API_PREFIX = _API_PREFIX.rstrip("/")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # prime the guardrail config; a failed fetch falls back to defaults
    cfg = get_config_provider().load()
    log.info("guardrail config source=%s", cfg.source)
    yield


app = FastAPI(
    title="Vigia Incident API",
    version=__version__,
    description="Incident dedup, content guardrail and footprint queries.",
    lifespan=lifespan,
)

# ---------------- CORS ----------------
# Explicit origins via CORS_ORIGINS="https://app.example.com,https://staging.example.com";
# otherwise any localhost/127.0.0.1 port.
cors_kwargs = dict(allow_methods=["*"], allow_headers=["*"])

if config.CORS_ORIGINS:
    allow_origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]
    cors_kwargs.update(allow_origins=allow_origins, allow_credentials=True)
else:
    cors_kwargs.update(
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
    )

app.add_middleware(CORSMiddleware, **cors_kwargs)
log.info("CORS configured: %s", cors_kwargs)

# ---------------- Routers ----------------
app.include_router(incident_router, prefix=_API_PREFIX)
app.include_router(footprints_router, prefix=_API_PREFIX)


# ---------------- Meta/utility ----------------
@app.get("/", include_in_schema=False)
def root() -> RedirectResponse:
    return RedirectResponse(url="/docs")


@app.get(f"{_API_PREFIX or ''}/health", tags=["meta"])
def health():
    return {"status": "ok", "prefix": _API_PREFIX or "", "version": __version__}


# ---------------- Local dev entrypoint ----------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vigia.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
