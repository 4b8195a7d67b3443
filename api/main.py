"""Twitch Game Bridge API — FastAPI entry point.

Registers logging, tracing, middleware, exception handlers, routers and
lifecycle hooks. The EventSub callback lives at /webhook/{tenant_id};
everything else is under /api/.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.middleware import RequestLoggingMiddleware, get_request_id
from core.database import close_db, init_db, ping_db
from core.integrations.errors import (
    AuthorizationRequiredError,
    CredentialError,
    PlatformAPIError,
    UnknownTenant,
)
from core.logging_config import configure_logging
from core.observability.otel_setup import setup_otel
from verticals.twitch.dependencies import TwitchServices, get_services, init_services

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"


def _uses_database() -> bool:
    return os.getenv("TENANT_STORE", "sql").lower() == "sql"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    configure_logging("DEBUG" if DEBUG else None)
    tracer = setup_otel()
    init_services(tracer=tracer)
    if _uses_database():
        await init_db()

    logger.info("Twitch Game Bridge started (tracing %s)", "on" if tracer else "off")
    yield
    logger.info("Twitch Game Bridge shutting down")

    if _uses_database():
        await close_db()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Twitch Game Bridge",
    description="Relays Twitch EventSub notifications to per-streamer game servers",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Access log + request ids
app.add_middleware(RequestLoggingMiddleware)


# ---------------------------------------------------------------------------
# Exception handlers: every error body is {"error": message}
# ---------------------------------------------------------------------------

@app.exception_handler(UnknownTenant)
async def unknown_tenant_handler(request: Request, exc: UnknownTenant):
    return JSONResponse({"error": "User not found"}, status_code=404)


@app.exception_handler(AuthorizationRequiredError)
async def authorization_required_handler(request: Request, exc: AuthorizationRequiredError):
    return JSONResponse({"error": str(exc)}, status_code=401)


@app.exception_handler(CredentialError)
async def credential_error_handler(request: Request, exc: CredentialError):
    logger.warning("Credential error on %s [%s]: %s", request.url.path, get_request_id(), exc)
    return JSONResponse({"error": str(exc)}, status_code=502)


@app.exception_handler(PlatformAPIError)
async def platform_error_handler(request: Request, exc: PlatformAPIError):
    logger.warning("Platform API error on %s [%s]: %s", request.url.path, get_request_id(), exc)
    return JSONResponse({"error": str(exc)}, status_code=502)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    return JSONResponse(
        {"error": f"Invalid {field}: {first.get('msg', 'validation failed')}"},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from verticals.twitch.router import api_router, webhook_router  # noqa: E402

app.include_router(webhook_router, tags=["Webhook"])
app.include_router(api_router, prefix="/api", tags=["Twitch"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health(services: TwitchServices = Depends(get_services)):
    integrations = [services.eventsub.get_health().to_dict()]
    status = "healthy"
    if _uses_database() and not await ping_db():
        status = "degraded"
    return {"status": status, "version": VERSION, "integrations": integrations}


@app.get("/")
async def root():
    return {
        "name": "Twitch Game Bridge",
        "version": VERSION,
        "docs": "/docs",
        "endpoints": {
            "webhook": "/webhook/:tenantId",
            "tenants": "/api/tenants",
            "oauth": "/api/oauth",
            "twitch": "/api/twitch",
            "events": "/api/events",
        },
    }
