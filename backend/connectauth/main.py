"""connectauth - Main FastAPI Application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from connectauth import __version__
from connectauth.auth.oauth import get_error_messages, get_registry, router as oauth_router
from connectauth.config import get_settings
from connectauth.core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from connectauth.core.slowapi_limiter import limiter
from connectauth.database import close_db, init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: fail fast on bad provider or message configuration
    registry = get_registry()
    get_error_messages()
    await init_db()
    logger.info("connectauth started", providers=[p.provider.value for p in registry.enabled_providers()])
    yield
    # Shutdown
    await close_db()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="connectauth",
        description="Log in, sign up and link accounts with Apple, Google and GitHub",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.redirect_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(oauth_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
