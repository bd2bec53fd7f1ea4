from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from incident_scan.config import Settings, settings as default_settings
from incident_scan.db.session import build_engine, build_session_factory, create_tables
from incident_scan.errors import IntakeError, InvalidInput
from incident_scan.routers import extraction, health, incidents, reports
from incident_scan.services.rate_limit import FixedWindowRateLimiter

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url)
        await create_tables(engine)
        app.state.engine = engine
        app.state.session_factory = build_session_factory(engine)
        logger.info("Incident Scan API started (database: {})", engine.url.render_as_string(hide_password=True))
        yield
        await engine.dispose()

    app = FastAPI(
        title="Incident Scan — Fire Report Digitization",
        description="AI-powered extraction of handwritten fire department incident reports",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window_seconds
    )
    app.state.extraction_service = None  # built on first extraction

    # CORS: allow the front end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    @app.exception_handler(IntakeError)
    async def intake_error_handler(request: Request, exc: IntakeError):
        logger.info("{} {} → {} ({})", request.method, request.url.path, exc.status_code, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        where = ".".join(str(part) for part in errors[0]["loc"]) if errors else "request"
        body = InvalidInput(f"Invalid value for {where}.").to_body()
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on {} {}", request.method, request.url.path)
        return JSONResponse(status_code=500, content=IntakeError().to_body())

    # Register routers
    app.include_router(health.router)
    app.include_router(extraction.router)
    app.include_router(incidents.router)
    app.include_router(reports.router)

    return app


app = create_app()
