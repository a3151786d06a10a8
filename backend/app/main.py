import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.database import init_db
from app.routers import health, plans, scrape

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    # Only start scheduler in production or if explicitly enabled
    # This prevents duplicate schedulers during development with --reload
    if settings.scheduler_enabled:
        from app.dependencies import get_supervisor
        from collector.scheduler import start_scheduler
        start_scheduler(get_supervisor())
    yield
    if settings.scheduler_enabled:
        from collector.scheduler import shutdown_scheduler
        shutdown_scheduler()


app = FastAPI(
    title="Tap.az Listing Tracker",
    description="Scheduled collection and canonical tracking of tap.az marketplace listings",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(scrape.router, prefix="/api/admin/scrape", tags=["scrape"])
app.include_router(plans.router, prefix="/api/admin", tags=["plans"])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and answer with a generic 500."""
    logger.exception(
        "Unhandled exception: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
