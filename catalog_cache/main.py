"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from catalog_cache.config import settings
from catalog_cache.db.session import AsyncSessionLocal, init_db
from catalog_cache.api.deps import build_services
from catalog_cache.api.routes import catalog, scraper
from catalog_cache.catalog.errors import CatalogError, NotFoundError
from catalog_cache.worker.scheduler import setup_scheduler
from catalog_cache.worker.tasks import task_runner

# Configure structured logging
from catalog_cache.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Global scheduler
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global scheduler

    # Startup
    logger.info("Starting catalog cache...")

    # Initialize database
    await init_db()

    services = build_services(AsyncSessionLocal)
    app.state.services = services
    task_runner.initialize(services.catalog)

    if settings.scheduler_enabled:
        scheduler = setup_scheduler()
        scheduler.start()
        logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()
        scheduler = None

    await services.close()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="World of Books Catalog Cache",
    description="Read-through cache of the World of Books product catalog",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(catalog.router)
app.include_router(scraper.router)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    """Translate catalog lookup failures into error envelopes."""
    if not isinstance(exc, NotFoundError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc), "status_code": exc.status_code},
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    """Return empty favicon response to avoid 404 noise."""
    return Response(status_code=204)


def run():
    """Console entry point."""
    uvicorn.run(
        "catalog_cache.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
