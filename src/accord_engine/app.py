"""FastAPI application factory for Accord-Engine."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from accord_engine.common.config import get_settings
from accord_engine.common.logging import setup_logging
from accord_engine.common.schemas import HealthResponse

logger = logging.getLogger(__name__)


async def run_sweeper(interval: int) -> None:
    """Expire overdue contracts and send due reminders every ``interval`` seconds."""
    from accord_engine.deps import get_contract_engine

    engine = get_contract_engine()
    while True:
        await asyncio.sleep(interval)
        try:
            await engine.check_expired_contracts()
            await engine.send_due_reminders()
        except Exception:
            logger.exception("Background sweep failed")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from accord_engine.deps import get_db, get_notifier
        db = get_db()
        await db.init()
        await db.create_all()
        sweeper = None
        if settings.sweep_interval > 0:
            sweeper = asyncio.create_task(run_sweeper(settings.sweep_interval))
        yield
        # Shutdown
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        notifier = get_notifier()
        if hasattr(notifier, "aclose"):
            await notifier.aclose()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from accord_engine.contracts.router import router as contracts_router
    from accord_engine.audit.router import router as audit_router

    prefix = settings.api_prefix
    app.include_router(contracts_router, prefix=prefix, tags=["contracts"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])

    return app
