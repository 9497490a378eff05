"""Main application entry point for the Cross-Chain Arbitrage Executor"""

import asyncio
import signal
import sys
from typing import Optional

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from src.api.app import create_app
from src.cache.manager import CacheManager
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.execution.pipeline import ArbitragePipeline, build_pipeline
from src.monitoring.metrics import start_metrics_server
from src.services.scheduler import ArbitrageScheduler
from src.utils.logging import setup_logging

# Load environment variables
load_dotenv()

setup_logging()

logger = structlog.get_logger()


class Application:
    """Owns the database, cache, pipeline, scheduler and API server lifecycles"""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.db_manager: Optional[DatabaseManager] = None
        self.cache_manager: Optional[CacheManager] = None
        self.pipeline: Optional[ArbitragePipeline] = None
        self.scheduler: Optional[ArbitrageScheduler] = None

        self.app: Optional[FastAPI] = None
        self._shutdown_event = asyncio.Event()

        self._logger = logger.bind(component="application")

    async def initialize(self) -> None:
        """Initialize all application components"""
        self._logger.info("application_initializing")

        try:
            self._logger.info("loading_settings")
            self.settings = Settings()

            setup_logging(self.settings.log_level)

            self._logger.info(
                "settings_loaded",
                log_level=self.settings.log_level.upper(),
                arb_env=self.settings.arb_env,
                execution_enabled=self.settings.arb_execution_enabled,
                database_url=self.settings.database_url.split("@")[-1] if "@" in self.settings.database_url else "***",
            )

            self._logger.info("initializing_database")
            self.db_manager = DatabaseManager(self.settings.database_url)
            await self.db_manager.connect()
            await self.db_manager.initialize_schema()
            self._logger.info("database_initialized")

            # Cache is optional; scans still run without it
            if self.settings.redis_url:
                try:
                    self._logger.info("initializing_cache")
                    self.cache_manager = CacheManager(self.settings.redis_url)
                    await self.cache_manager.connect()
                    self._logger.info("cache_initialized")
                except Exception as e:
                    self._logger.warning(
                        "cache_initialization_failed",
                        error=str(e),
                        message="Continuing without cache",
                    )
                    self.cache_manager = None

            self._logger.info("building_arbitrage_pipeline")
            self.pipeline = build_pipeline(self.settings, self.db_manager)

            if self.settings.scheduler_enabled:
                self.scheduler = ArbitrageScheduler(
                    route_scanner=self.pipeline.route_scanner,
                    auto_executor=self.pipeline.auto_executor,
                    scan_interval_seconds=self.settings.strategy_scan_interval_seconds,
                    execute_interval_seconds=self.settings.auto_execute_interval_seconds,
                    fee_payer_funder=(
                        self.pipeline.fee_payer_funder
                        if self.settings.fee_payer_encryption_key is not None
                        else None
                    ),
                    maintenance_interval_seconds=self.settings.fee_payer_maintenance_interval_seconds,
                )

            self._logger.info("creating_fastapi_app")
            self.app = create_app(
                settings=self.settings,
                db_manager=self.db_manager,
                pipeline=self.pipeline,
                cache_manager=self.cache_manager,
            )

            self._logger.info("application_initialized")

        except Exception as e:
            self._logger.error(
                "application_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def start(self) -> None:
        """Start the scheduler and the Prometheus exporter"""
        if self.scheduler:
            await self.scheduler.start()
        start_metrics_server(port=self.settings.prometheus_port)
        self._logger.info(
            "application_started",
            scheduler=self.scheduler is not None,
            metrics_port=self.settings.prometheus_port,
        )

    async def stop(self) -> None:
        """Stop background loops first, then release clients and pools"""
        self._logger.info("application_stopping")
        steps = [
            ("arbitrage_scheduler", self.scheduler.stop if self.scheduler else None),
            ("arbitrage_pipeline", self.pipeline.close if self.pipeline else None),
            ("cache", self.cache_manager.disconnect if self.cache_manager else None),
            ("database", self.db_manager.disconnect if self.db_manager else None),
        ]
        for name, close in steps:
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                # Keep closing the remaining components
                self._logger.error(
                    "application_stop_error", component=name, error=str(e), error_type=type(e).__name__
                )
        self._logger.info("application_stopped")

    def setup_signal_handlers(self) -> None:
        """SIGTERM and SIGINT trigger a graceful shutdown"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._request_shutdown, sig)

    def _request_shutdown(self, sig: signal.Signals) -> None:
        self._logger.info("shutdown_signal_received", signal=sig.name)
        self._shutdown_event.set()

    async def serve(self) -> None:
        """Serve the admin API until a shutdown signal arrives"""
        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level=self.settings.log_level.lower(),
            )
        )
        server_task = asyncio.create_task(server.serve())
        self._logger.info("api_server_started", host=self.settings.api_host, port=self.settings.api_port)

        await self._shutdown_event.wait()
        server.should_exit = True
        await server_task


async def main() -> None:
    """Main application entry point"""
    app = Application()
    try:
        await app.initialize()
        app.setup_signal_handlers()
        await app.start()
        await app.serve()
    except Exception as e:
        logger.error("application_error", error=str(e), error_type=type(e).__name__)
        await app.stop()
        sys.exit(1)
    await app.stop()
    logger.info("application_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("application_terminated")
