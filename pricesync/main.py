"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from pricesync.api.routes import marketplaces, products, sandbox, settings as settings_routes, suppliers, sync
from pricesync.config import settings
from pricesync.db.models import Base
from pricesync.db.session import engine
from pricesync.errors import (
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    RemoteError,
    ValidationError,
)
from pricesync.logging_config import setup_logging
from pricesync.worker.scheduler import setup_scheduler
from pricesync.worker.tasks import task_runner

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting price sync service...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await task_runner.initialize()

    app.state.scheduler = None
    if settings.scheduler_enabled:
        scheduler = setup_scheduler()
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Scheduler started")

    yield

    logger.info("Shutting down...")
    if app.state.scheduler:
        app.state.scheduler.shutdown()
    await task_runner.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Price Sync",
    description="Supplier price download, repricing and marketplace upload",
    version="0.1.0",
    lifespan=lifespan,
)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(QuotaExceededError)
async def quota_handler(request: Request, exc: QuotaExceededError):
    return JSONResponse(
        status_code=429,
        content={"detail": exc.reason, "used": exc.used, "limit": exc.limit},
    )


@app.exception_handler(RemoteError)
async def remote_handler(request: Request, exc: RemoteError):
    logger.warning(f"Upstream error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc), "upstream_status": exc.status_code})


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence error on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


app.include_router(suppliers.router)
app.include_router(marketplaces.router)
app.include_router(products.router)
app.include_router(sync.router)
app.include_router(sandbox.router)
app.include_router(settings_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "active_runs": len(task_runner.list_active())}


def run():
    uvicorn.run(
        "pricesync.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
