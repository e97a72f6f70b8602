from dotenv import load_dotenv
import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY

from unievent.core.config import settings
from unievent.core.database import AsyncSessionLocal
from unievent.core.logging import setup_logging
from unievent.services.event_store import SqlAlchemyEventStore
from unievent.services.event_status_service import EventStatusService

# ───────────────── ROUTER IMPORTS ─────────────────
from unievent.routes.auth import router as auth_router
from unievent.routes.admin_events import router as admin_events_router

setup_logging()

_STARTED_AT = time.monotonic()


# ───────────────── LIFESPAN ─────────────────
# The scheduler is built once here and reached by routes via app.state

@asynccontextmanager
async def lifespan(app: FastAPI):
    service = EventStatusService.from_settings(SqlAlchemyEventStore(AsyncSessionLocal), settings)
    app.state.event_status_service = service
    service.start()
    try:
        yield
    finally:
        await service.stop()


app = FastAPI(
    title="UniEvent API",
    description="Backend API for the university event platform",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# ───────── SAFE VALIDATION HANDLER ─────────

def _sanitize(obj):
    if isinstance(obj, (bytes, bytearray)):
        return f"<bytes:{len(obj)}>"
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    return obj


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    safe_errors = _sanitize(exc.errors())
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": safe_errors},
    )

# ───────────────── CORS ─────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ───────────────── ROUTES ─────────────────

app.include_router(auth_router, prefix="/api")
app.include_router(admin_events_router, prefix="/api")

# ───────────────── HEALTH ─────────────────

@app.get("/", tags=["Health"])
async def root():
    return {
        "message": "Welcome to UniEvent API",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }


@app.get("/api/health", tags=["Health"])
async def health(request: Request):
    service = getattr(request.app.state, "event_status_service", None)
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "event_status_service": service.get_status() if service else None,
    }
