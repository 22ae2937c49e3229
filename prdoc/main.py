"""PR Doc Generator FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_fastapi_instrumentator import Instrumentator

from prdoc.config import Settings, get_settings
from prdoc.errors import PRDocError
from prdoc.middleware.auth_gate import AuthGateMiddleware
from prdoc.middleware.error_handler import ErrorHandlerMiddleware
from prdoc.middleware.logging import LoggingMiddleware, setup_logging
from prdoc.routers import ai, auth, docs, drive, pages, pat, pr

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app.state.settings
    setup_logging(debug=settings.debug)
    logger.info("Starting PR Doc Generator (env=%s)", settings.app_env)
    if not settings.encryption_key.get_secret_value() and settings.is_production:
        logger.warning("ENCRYPTION_KEY is not set; cookies are sealed with a key derived from SESSION_SECRET")

    yield

    logger.info("PR Doc Generator shutting down")


async def prdoc_error_handler(request: Request, exc: PRDocError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.details or exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": fields})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="PR Doc Generator",
        description="Turn GitHub pull requests into AI-written Google Docs",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_exception_handler(PRDocError, prdoc_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Middleware (last added runs first)
    app.add_middleware(AuthGateMiddleware, settings=settings)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
        max_age=600,
    )

    # Routers
    app.include_router(pages.router)
    app.include_router(auth.router)
    app.include_router(pat.router)
    app.include_router(pr.router)
    app.include_router(drive.router)
    app.include_router(ai.router)
    app.include_router(docs.router)

    @app.get("/")
    async def root():
        return {"status": "running", "service": "prdoc", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "prdoc"}

    # Prometheus instrumentation
    instrumentator = Instrumentator(
        excluded_handlers=["/health", "/docs", "/redoc", "/openapi.json", "/metrics"],
    )
    instrumentator.instrument(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


# Default app instance for uvicorn
app = create_app()
