from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from sqlalchemy.engine import Engine
from typing import Callable, Optional
from sqlalchemy.orm import Session
import logging
import uuid

from .config import Settings, settings as default_settings
from .database import create_tables, engine, SessionLocal
from .exceptions import InsufficientInventoryError, NotFoundError, UnknownChannelError, ValidationError
from .services.channel_clients import default_registry
from .services.credential_vault import CredentialVault
from .services.event_bus import EventBus
from .services.scheduler import SyncScheduler
from .services.sync_orchestrator import SyncOrchestrator
from .utils.logging_config import clear_request_context, set_request_context, setup_logging

from .routers import health, integrations, inventory

logger = logging.getLogger(__name__)


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


def create_app(
    app_settings: Optional[Settings] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    bind: Optional[Engine] = None
) -> FastAPI:
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the process-wide collaborators and run the sync scheduler"""
        setup_logging(app_settings.log_level, app_settings.log_json)
        logger.info(f"Starting roomsync ({app_settings.environment})")

        create_tables(bind or engine)

        vault = CredentialVault(app_settings.secret_key)
        clients = default_registry(app_settings)
        bus = EventBus()

        def build_orchestrator(db: Session) -> SyncOrchestrator:
            return SyncOrchestrator.build(db, vault, clients, app_settings, bus)

        scheduler = SyncScheduler(session_factory, build_orchestrator, app_settings)
        scheduler.attach(bus)

        app.state.settings = app_settings
        app.state.vault = vault
        app.state.clients = clients
        app.state.event_bus = bus
        app.state.scheduler = scheduler

        if app_settings.scheduler_enabled:
            scheduler.start()
        else:
            logger.info("Sync scheduler disabled; manual and real-time syncs only")

        yield

        logger.info("Shutting down roomsync...")
        await scheduler.shutdown()

    app = FastAPI(
        title="roomsync",
        description="Hotel inventory ledger and OTA channel synchronization",
        version="1.0.0",
        docs_url=None if app_settings.is_production else "/docs",
        redoc_url=None if app_settings.is_production else "/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": "Validation failed", "errors": exc.errors})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(UnknownChannelError)
    async def unknown_channel_handler(request: Request, exc: UnknownChannelError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InsufficientInventoryError)
    async def insufficient_inventory_handler(request: Request, exc: InsufficientInventoryError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(health.router)
    app.include_router(integrations.router)
    app.include_router(inventory.router)

    @app.get("/")
    async def root():
        return {
            "name": "roomsync",
            "version": "1.0.0",
            "docs": None if app_settings.is_production else "/docs",
            "status": "running"
        }

    return app


app = create_app()
