from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.contracts.pressure_contracts import (
    ClearResponse, ErrorResponse, HealthResponse, MemoryStats, StressResponse
)
from src.pressure.burner.cpu_burner import CpuBurner
from src.pressure.config import Settings
from src.pressure.dispatcher import PressureDispatcher
from src.pressure.errors import PressureError
from src.pressure.ledger.memory_ledger import MemoryLedger
from src.pressure.shutdown.coordinator import ShutdownCoordinator
from src.pressure.stats import ProcessStats, to_mb

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'self'",
}


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[MemoryLedger] = None,
    coordinator: Optional[ShutdownCoordinator] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    stats = ProcessStats()
    ledger = ledger or MemoryLedger(measure=stats.heap_used, max_total_bytes=settings.max_reservation_bytes)
    coordinator = coordinator or ShutdownCoordinator(ledger, settings.drain_deadline_s)
    burner = CpuBurner(max_duration_ms=settings.max_duration_ms)

    app = FastAPI(title="Resource Pressure Service", version="0.1")
    app.state.settings = settings
    app.state.stats = stats
    app.state.ledger = ledger
    app.state.coordinator = coordinator
    app.state.dispatcher = PressureDispatcher(ledger, burner, coordinator, settings, stats)

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(CORSMiddleware, allow_origins=list(settings.cors_origins), allow_methods=["GET"])

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        resp = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            resp.headers.setdefault(name, value)
        return resp

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        resp = await call_next(request)
        logger.info(
            '%s "%s %s" %d %.1fms',
            request.client.host if request.client else "-",
            request.method, request.url.path, resp.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return resp

    _register_error_handlers(app, settings)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(PressureError)
    async def pressure_error(request: Request, exc: PressureError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "validation_error", "message": details})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Error occurred on %s %s", request.method, request.url.path, exc_info=exc)
        message = str(exc) if settings.development else "Something went wrong"
        # ServerErrorMiddleware answers outside the http middlewares, so the headers are set here
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": message},
            headers=SECURITY_HEADERS,
        )


def _register_routes(app: FastAPI) -> None:
    error_responses = {400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}

    @app.get("/", response_class=PlainTextResponse)
    def root():
        logger.info("Root endpoint accessed")
        return "Hello from the resource pressure service!"

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        logger.debug("Health check performed")
        coordinator = request.app.state.coordinator
        snap = request.app.state.stats.snapshot()
        return HealthResponse(
            state=coordinator.state.value,
            inFlight=coordinator.in_flight,
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptimeSeconds=snap.uptime_seconds,
            memory=MemoryStats(heapUsedMB=to_mb(snap.heap_used_bytes), heapTotalMB=to_mb(snap.heap_total_bytes)),
        )

    @app.get("/stress", response_model=StressResponse, responses=error_responses)
    def stress(
        request: Request,
        duration: Optional[int] = Query(None, description="CPU burn duration in ms"),
        chunks: Optional[int] = Query(None, description="number of memory blocks to reserve"),
        mode: Optional[str] = Query(None, description="cpu|memory|combined"),
    ):
        dispatcher: PressureDispatcher = request.app.state.dispatcher
        req = dispatcher.build_request(mode=mode, duration_ms=duration, chunk_count=chunks)
        summary = dispatcher.dispatch(req)

        return StressResponse(
            mode=summary.mode.value,
            durationMs=summary.duration_ms,
            chunks=summary.chunk_count,
            memoryUsedMB=to_mb(summary.process.heap_used_bytes),
            totalMemoryStoredMB=to_mb(summary.reserved_bytes),
            reservedBytes=summary.reserved_bytes,
            result=round(summary.burn.work_counter) if summary.burn else None,
        )

    @app.get("/clear", response_model=ClearResponse)
    def clear(request: Request):
        released = request.app.state.ledger.release()
        return ClearResponse(freedMB=to_mb(released.freed_bytes), releasedMB=to_mb(released.released_bytes))
