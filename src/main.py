"""
Small Business CRM

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import Settings, get_settings
from src.database import build_engine, build_session_maker
from src.kernel.identity.errors import AuthError, MissingCredentialError
from src.kernel.identity.maintenance import AuthComponents
from src.kernel.migrations import MigrationManager
from src.logging_config import configure_logging, get_logger
from src.schemas.common import ErrorResponse, HealthResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Applies pending migrations, starts auth cache maintenance, and releases
    the database engine on shutdown.
    """
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    if settings.auto_migrate:
        await MigrationManager(app.state.engine, settings.migrations_dir).migrate()

    auth: AuthComponents = app.state.auth
    auth.maintenance.start()

    yield

    logger.info("Shutting down...")
    await auth.maintenance.stop()
    await app.state.engine.dispose()
    logger.info("Database connections closed")


def _cors_origins(settings: Settings) -> list[str]:
    origins = [
        "http://localhost:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:3000",
    ]
    if not (settings.debug or settings.environment == "development"):
        origins = ["https://crm.example.com"] + origins
    return origins


def _error_headers(request: Request, origins: list[str]) -> dict:
    """CORS and correlation headers for error responses produced by handlers."""
    origin = request.headers.get("origin") or ""
    headers = {
        "Access-Control-Allow-Origin": origin if origin in origins else origins[0],
        "Access-Control-Allow-Credentials": "true",
    }
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
    return headers


def _install_exception_handlers(app: FastAPI, settings: Settings, origins: list[str]) -> None:

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        """Gate and guard failures: ``{success: false, message, error}``."""
        headers = _error_headers(request, origins)
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers["WWW-Authenticate"] = (
                "Bearer" if isinstance(exc, MissingCredentialError) else 'Bearer error="invalid_token"'
            )
        if exc.is_server_fault:
            logger.error("Authentication failed internally", extra={"path": request.url.path})
        body = ErrorResponse(message=exc.message, error=exc.kind.value)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        headers = _error_headers(request, origins)
        if exc.headers:
            headers.update(exc.headers)
        content = {"detail": exc.detail}
        req_id = getattr(request.state, "request_id", None)
        if req_id and exc.status_code >= 500:
            content["request_id"] = req_id
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            })
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Validation error", "errors": errors},
            headers=_error_headers(request, origins),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        req_id = getattr(request.state, "request_id", None)
        if settings.debug:
            content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
        else:
            content = {"detail": "Internal server error", "request_id": req_id}
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers=_error_headers(request, origins),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with its own engine and auth components.

    Everything a request needs hangs off ``app.state``; tests create one
    app per database.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.project_name,
        description="Customer, contact and staff management for small businesses.",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url, echo=settings.debug)
    app.state.session_maker = build_session_maker(app.state.engine)
    app.state.auth = AuthComponents.from_settings(settings)

    # add_middleware stacks innermost-first: CORS is added last so it wraps everything
    origins = _cors_origins(settings)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    _install_exception_handlers(app, settings, origins)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Check application and database health."""
        database = "connected"
        try:
            async with request.app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Health check database probe failed")
            database = "unavailable"
        return HealthResponse(
            status="ok" if database == "connected" else "degraded",
            version=settings.version,
            database=database,
        )

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": "/docs" if settings.debug else "disabled",
            "api": {"v1": settings.api_v1_prefix},
        }

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
