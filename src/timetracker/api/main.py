"""
TimeTracker Sync API - Main FastAPI application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import ConfigurationError, JiraApiError, SyncLockedError, Unauthorized
from ..services.oauth_client import close_client_caches
from .models.database import init_db
from .models.schemas import ErrorResponse
from .routers import auth, entries, jira

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events"""
    # Startup: Initialize database
    init_db()
    yield
    # Shutdown: close cached Jira sessions
    close_client_caches()


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def register_exception_handlers(app: FastAPI):
    """Map Jira integration errors to JSON responses"""

    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized):
        return _error(401, ErrorResponse(
            error="Jira authentication required",
            message=exc.message,
            redirect_url=exc.redirect_url,
        ))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Ticket system misconfigured: {exc.message}")
        return _error(500, ErrorResponse(error="Jira configuration error", message=exc.message))

    @app.exception_handler(JiraApiError)
    async def jira_error_handler(request: Request, exc: JiraApiError):
        return _error(502, ErrorResponse(error="Jira API error", message=exc.message))

    @app.exception_handler(SyncLockedError)
    async def sync_locked_handler(request: Request, exc: SyncLockedError):
        return _error(409, ErrorResponse(error="Sync already running", message=str(exc)))


def create_app(initialize_db: bool = True) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="TimeTracker Sync API",
        description="Synchronize TimeTracker entries to Jira worklogs.",
        version=VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan if initialize_db else None,
    )

    register_exception_handlers(app)

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(entries.router, prefix="/api/entries", tags=["entries"])
    # OAuth callback lives at the root, Jira redirects the browser there
    app.include_router(jira.router, tags=["jira"])

    @app.get("/api/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "ok", "version": VERSION}

    return app
