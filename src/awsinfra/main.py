"""awsinfra API.

REST endpoints for creating and reading entries, authenticated by bearer
JWTs issued by an external identity provider.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from sqlalchemy.engine import make_url

from . import __version__
from .api.v1 import router as api_v1_router
from .auth import SigningKeyCache, TokenValidator
from .config import Settings
from .core.exceptions import AwsInfraException, InvalidInputError
from .database import create_engine, create_session_maker, init_db
from .middleware import RequestLoggingMiddleware, error_response
from .observability import LoggingMetricsSink, MetricsSink, configure_logging
from .schemas import HealthResponse, validation_details


def _ensure_sqlite_dir(database_url: str) -> None:
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings
    configure_logging(settings)

    engine = create_engine(settings)
    if settings.is_sqlite:
        _ensure_sqlite_dir(settings.database_url)
        await init_db(engine)
    app.state.engine = engine
    app.state.session_maker = create_session_maker(engine)

    await app.state.signing_keys.start()
    logger.info(f"awsinfra API {__version__} started")
    yield
    await app.state.signing_keys.close()
    await engine.dispose()
    logger.info("awsinfra API shutting down")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AwsInfraException)
    async def handle_app_error(request: Request, exc: AwsInfraException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        error = InvalidInputError("Request validation failed", details=validation_details(exc.errors()))
        logger.info(f"{request.method} {request.url.path} rejected: {error.code}")
        return error_response(error)


def create_app(
    settings: Optional[Settings] = None,
    signing_keys: Optional[SigningKeyCache] = None,
    metrics: Optional[MetricsSink] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()
    signing_keys = signing_keys or SigningKeyCache(
        settings.jwks_url,
        timeout=settings.jwks_timeout_seconds,
        refresh_interval=settings.jwks_refresh_interval_seconds,
        min_refresh_interval=settings.jwks_min_refresh_interval_seconds,
    )

    app = FastAPI(
        title="awsinfra API",
        description="Entry service with JWT-authenticated access control",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.signing_keys = signing_keys
    app.state.metrics = metrics or LoggingMetricsSink()
    app.state.token_validator = TokenValidator(
        signing_keys,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        roles_claim=settings.jwt_roles_claim,
        role_map=settings.role_map,
        leeway_seconds=settings.jwt_leeway_seconds,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_v1_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Liveness probe."""
        return HealthResponse(version=__version__)

    return app


def run():
    """Run the server."""
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "awsinfra.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    run()
