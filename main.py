import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dal.bootstrap import initialize_store
from dal.kv_store import KVStore
from routes.auth_route import router as auth_router
from routes.folder_route import router as folder_router
from routes.image_route import router as image_router
from routes.sync_route import router as sync_router
from routes.upload_route import router as upload_router
from services.rate_limiter import SlidingWindowRateLimiter
from utils.database_init import AsyncDatabaseInitializer
from utils.errors import RateLimitError
from utils.logging_config import setup_logging
from utils.settings import Settings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    telegram_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Runtime configuration; read from the environment when omitted.
        telegram_transport: Optional httpx transport for the Telegram client
            (tests plug in an `httpx.MockTransport`).
        clock: Wall clock used for token issuance and expiry.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the SQLite-backed metadata store (at DATABASE_DIR/imgbed.db)
          - the upload rate limiter
        and attach them to `app.state`. The Telegram client is created on
        first use and closed here on shutdown.
        """
        setup_logging(settings.log_level)

        db_initializer = AsyncDatabaseInitializer(settings.database_dir)
        await db_initializer.ensure_database()
        kv_store = KVStore(db_initializer)
        await initialize_store(kv_store)

        app.state.settings = settings
        app.state.db_initializer = db_initializer
        app.state.kv_store = kv_store
        app.state.rate_limiter = SlidingWindowRateLimiter(
            settings.rate_limit_max_requests, settings.rate_limit_window_seconds
        )
        app.state.clock = clock
        app.state.telegram_transport = telegram_transport
        app.state.telegram_client = None

        if not settings.telegram_configured:
            LOGGER.warning("Telegram is not configured; upload and sync requests will fail")
        LOGGER.info("Metadata store ready at %s", db_initializer.db_path)

        try:
            yield
        finally:
            client = getattr(app.state, "telegram_client", None)
            if client is not None:
                await client.aclose()
                app.state.telegram_client = None

    app = FastAPI(title="Telegram image bed", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        """Render every error as `{"success": false, "error": ...}`."""
        if exc.status_code >= 500:
            LOGGER.error(
                "%s %s failed: %s", request.method, request.url.path, exc.detail,
                exc_info=exc.__cause__,
            )
        content = {"success": False, "error": exc.detail}
        if isinstance(exc, RateLimitError):
            content["retryAfter"] = exc.retry_after
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in errors
        )
        return JSONResponse(status_code=400, content={"success": False, "error": message or "Invalid request"})

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports store and Telegram configuration state.
        """
        state = request.app.state
        return {
            "ok": True,
            "db_initialized": hasattr(state, "kv_store"),
            "telegram_configured": settings.telegram_configured,
        }

    # Register application routers
    app.include_router(auth_router)
    app.include_router(image_router)
    app.include_router(folder_router)
    app.include_router(upload_router)
    app.include_router(sync_router)

    return app


app = create_app()
