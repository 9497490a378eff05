"""FastAPI application with error mapping, metrics and CORS middleware"""

import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from src.cache.manager import CacheManager
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.errors import ArbitrageError, ExecutionLockedError, InsufficientFundsError, PartialExecutionError
from src.execution.pipeline import ArbitragePipeline
from src.monitoring import metrics
from src.monitoring.metrics import get_content_type, get_metrics

logger = structlog.get_logger()


def error_body(exc: ArbitrageError) -> dict:
    """JSON body for a pipeline error; never carries stack traces"""
    body = {"error": exc.message, "type": type(exc).__name__}
    if isinstance(exc, ExecutionLockedError):
        body["reason"] = exc.reason
    elif isinstance(exc, PartialExecutionError):
        body["completed_tx_ref"] = exc.completed_tx_ref
        body["run_id"] = exc.run_id
        body["requires_manual_reconciliation"] = True
    elif isinstance(exc, InsufficientFundsError):
        body["required"] = str(exc.required)
        body["available"] = str(exc.available)
    return body


def create_app(
    settings: Settings,
    db_manager: DatabaseManager,
    pipeline: ArbitragePipeline,
    cache_manager: Optional[CacheManager] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings
        db_manager: Database manager instance
        pipeline: Scan, execution and monitoring components
        cache_manager: Optional cache manager instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Cross-Chain Arbitrage Executor API",
        description="Admin API for route scans, gated execution, alerts and the execution lock",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8080",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Middleware to track API request metrics"""
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()

        try:
            response = await call_next(request)

            latency = time.time() - start_time
            metrics.api_request_latency.labels(
                endpoint=request.url.path,
                method=request.method
            ).observe(latency)

            metrics.api_requests_total.labels(
                endpoint=request.url.path,
                method=request.method,
                status=response.status_code
            ).inc()

            return response
        except Exception as e:
            metrics.api_errors.labels(
                endpoint=request.url.path,
                error_type=type(e).__name__
            ).inc()
            raise

    @app.exception_handler(ArbitrageError)
    async def arbitrage_error_handler(request: Request, exc: ArbitrageError) -> JSONResponse:
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            "api_request_failed",
            path=request.url.path,
            status=exc.http_status,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.http_status, content=error_body(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": [str(err.get("msg")) for err in exc.errors()]},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api_unhandled_error", path=request.url.path, error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.state.db_manager = db_manager
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.cache_manager = cache_manager

    from src.api.routes import alerts, executions, fee_payers, health, runs, scans
    from src.api.routes import settings as settings_routes

    app.include_router(health.router)
    app.include_router(scans.router)
    app.include_router(executions.router)
    app.include_router(settings_routes.router)
    app.include_router(alerts.router)
    app.include_router(runs.router)
    app.include_router(fee_payers.router)

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint"""
        return Response(content=get_metrics(), media_type=get_content_type())

    logger.info(
        "fastapi_app_created",
        title=app.title,
        version=app.version,
        docs_url=app.docs_url,
    )

    return app
