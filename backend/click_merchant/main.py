"""
Click Merchant Backend - FastAPI Application

Merchant-side callback endpoint for the Click two-phase payment API
(Prepare / Complete), plus the order and catalog routes it depends on.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from .config import Settings, settings
from .exceptions import ClickErrorCode, MerchantError, StorageError
from .db.init_db import create_engine, create_session_factory, initialize_database
from .db.store import TransactionStore
from .services.callback_service import CallbackHandler
from .services.notification_service import (
    NotificationDispatcher,
    NotificationSink,
    build_notification_sink,
)
from .api.click import router as click_router
from .api.products import router as products_router
from .api.transactions import router as transactions_router

VERSION = "0.1.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    notification_sink: Optional[NotificationSink] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings override (defaults to the global settings)
        notification_sink: Sink override; built from settings when omitted
    """
    cfg = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        - Startup: create engine and tables, wire store, notifier and handler
        - Shutdown: drain pending notifications, dispose engine
        """
        logger.info("Starting Click merchant backend...")

        engine = create_engine(cfg.database_url)
        try:
            await initialize_database(engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            await engine.dispose()
            raise

        sink = notification_sink or build_notification_sink(
            cfg.bot_token,
            cfg.chat_id,
            api_url=cfg.telegram_api_url,
            timeout_seconds=cfg.notification_timeout_seconds,
        )
        notifier = NotificationDispatcher(sink)
        store = TransactionStore(create_session_factory(engine))

        app.state.callback_handler = CallbackHandler(
            store=store,
            notifier=notifier,
            secret_key=cfg.secret_key,
        )

        logger.info("Server startup complete")

        yield

        logger.info("Shutting down Click merchant backend...")
        try:
            await notifier.aclose()
        except Exception as e:
            logger.error(f"Error while closing notifier: {e}")
        await engine.dispose()

    app = FastAPI(
        title="Click Merchant API",
        description="Merchant callbacks for Click Prepare/Complete payments",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.exception_handler(MerchantError)
    async def merchant_error_handler(request: Request, exc: MerchantError):
        """Business errors of merchant routes: 400 with {error, error_note}."""
        logger.warning(f"Merchant error on {request.url.path}: {exc.error_note}")
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed merchant request bodies: 400 with {error, error_note}."""
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        note = f"{location}: {first.get('msg')}" if location else "Invalid request"
        logger.warning(f"Validation error on {request.url.path}: {note}")
        return JSONResponse(
            status_code=400,
            content={"error": int(ClickErrorCode.BAD_REQUEST), "error_note": note},
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": int(ClickErrorCode.UPDATE_FAILED), "error_note": "Storage error"},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring and load balancers."""
        return {"status": "healthy", "version": VERSION}

    app.include_router(click_router, tags=["Click"])
    app.include_router(products_router, prefix="/products", tags=["Products"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "click_merchant.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
