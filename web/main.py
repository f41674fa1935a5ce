"""FastAPI application entrypoint for the premium entitlement service."""

from __future__ import annotations

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.env import env_csv
from core.logging import get_logger, setup_logging
from web import routers
from web.errors import register_error_handlers

setup_logging()
logger = get_logger(__name__)

app = FastAPI(title="Easy Budget Premium API", version="1.0.0")

_cors_origins = list(env_csv("CORS_ALLOW_ORIGINS")) or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials="*" not in _cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


@app.get("/", summary="Health Check", tags=["Default"])
def health_check():
    """Liveness check for the API process."""
    return {"status": "ok", "message": "Easy Budget Premium API is running."}


@app.get("/healthz", include_in_schema=False)
def readiness_check():
    """Lightweight readiness probe that pings the database."""
    db_ok, db_error = routers.health.ping_database()
    payload = {"status": "ok" if db_ok else "unhealthy", "database": {"ok": db_ok}}
    if db_error:
        payload["database"]["error"] = db_error
    status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(routers.premium.router, prefix="/api")
app.include_router(routers.user.router, prefix="/api")
app.include_router(routers.health.router, prefix="/api")

logger.info("Premium API initialised with %d routers.", 3)
