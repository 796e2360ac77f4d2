"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Every request gets fresh log context (request id) before routing;
     host-scoped routes then resolve their tenant as their first dependency.
  4. Routers are registered.
  5. Exception handlers render compliance errors and normalise unexpected ones.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from compliance_api.api.routes import admin, auth, compliance, orders, tenants
from compliance_api.core.config import settings
from compliance_api.core.exceptions import ComplianceError
from compliance_api.core.logging import (
    REQUEST_ID_HEADER,
    begin_request_logging,
    configure_logging,
    get_logger,
)
from compliance_api.db.session import engine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
    )
    yield
    logger.info("Shutting down, disposing DB engine")
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant dispensary compliance backend: host-based tenant "
            "isolation, hash-chained audit trail, purchase limits and daily "
            "sales reporting."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request log context ──────────────────────────────────────────────────
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        rid = begin_request_logging(request.headers.get(REQUEST_ID_HEADER))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(tenants.router)
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(orders.router)
    app.include_router(compliance.router)

    # ── Exception Handlers ────────────────────────────────────────────────────

    @app.exception_handler(ComplianceError)
    async def compliance_error_handler(
        request: Request, exc: ComplianceError
    ) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
            **exc.payload,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
