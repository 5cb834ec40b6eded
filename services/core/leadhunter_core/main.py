"""LeadHunter Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadhunter_core.api.routes import hunting as hunting_routes
from leadhunter_core.api.routes import leads as leads_routes
from leadhunter_core.api.routes import notifications as notifications_routes
from leadhunter_core.config import get_settings
from leadhunter_core.domain.errors import (
    AuthExpiredError,
    InvalidTransitionError,
    LeadNotFoundError,
    OutreachError,
)
from leadhunter_core.observability import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="leadhunter-core",
    )
    app.state.settings = settings
    yield
    # Shutdown


app = FastAPI(
    title="LeadHunter Core API",
    description="Multi-tenant Reddit lead discovery and outreach",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================


@app.exception_handler(LeadNotFoundError)
async def lead_not_found_handler(request: Request, exc: LeadNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(AuthExpiredError)
async def auth_expired_handler(request: Request, exc: AuthExpiredError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Reddit connection expired, please reconnect"},
    )


@app.exception_handler(OutreachError)
async def outreach_error_handler(request: Request, exc: OutreachError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "retryable": exc.retryable},
    )


# Include API routers
app.include_router(hunting_routes.router)
app.include_router(leads_routes.router)
app.include_router(notifications_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "leadhunter-core"}
