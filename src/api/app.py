"""FastAPI application for the rent invoice service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.invoices import router as invoices_router
from src.config.settings import settings
from src.services import AsyncSessionLocal
from src.services.errors import InvoiceError
from src.services.scheduler_service import RentScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the daily rent scheduler with the server and stop it on shutdown."""
    scheduler = RentScheduler(
        AsyncSessionLocal,
        timezone=settings.scheduler_timezone,
        run_hour=settings.scheduler_run_hour,
        late_fee_daily_rate=settings.late_fee_daily_rate,
        directory_timeout=settings.directory_timeout_seconds,
    )
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        await scheduler.start()
    else:
        logger.info("Rent scheduler disabled (SCHEDULER_ENABLED=false)")
    try:
        yield
    finally:
        await scheduler.stop()


app = FastAPI(
    title=settings.api_title,
    description="Recurring rent invoice generation, lifecycle and overdue sweeps",
    version=settings.api_version,
    lifespan=lifespan,
)


@app.exception_handler(InvoiceError)
async def invoice_error_handler(request: Request, exc: InvoiceError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.include_router(invoices_router)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}
