"""Wiring of the scan, gate, execution and monitoring components"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from src.chains.factory import ConnectorRegistry
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.detectors.route_scanner import RouteScanner
from src.execution.auto_executor import AutoExecutor
from src.execution.orchestrator import ArbitrageOrchestrator
from src.monitors.pnl_monitor import PnlMonitor
from src.quotes.registry import QuoteProviderRegistry
from src.risk.gate import RiskGate
from src.wallets.fee_payers import FeePayerPool
from src.wallets.funding import FeePayerFunder
from src.wallets.provider import OpsWalletProvider, WalletProvider

logger = structlog.get_logger()


@dataclass
class ArbitragePipeline:
    """Long-lived components shared by the API and the scheduler"""

    route_scanner: RouteScanner
    orchestrator: ArbitrageOrchestrator
    auto_executor: AutoExecutor
    pnl_monitor: PnlMonitor
    risk_gate: RiskGate
    connectors: ConnectorRegistry
    quote_providers: QuoteProviderRegistry
    fee_payer_funder: FeePayerFunder

    async def close(self) -> None:
        await self.quote_providers.close()
        await self.connectors.close()


def build_pipeline(
    settings: Settings,
    db_manager: DatabaseManager,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ArbitragePipeline:
    """
    Build the pipeline. Nothing here touches the network; connectors, quote
    adapters and wallets are created on first use.
    """
    connectors = ConnectorRegistry(settings)
    quote_providers = QuoteProviderRegistry(settings, http_client)

    fee_payers = None
    if settings.fee_payer_encryption_key is not None:
        fee_payers = FeePayerPool(
            db_manager, settings.fee_payer_encryption_key, settings.fee_payer_lease_seconds
        )
    wallets = WalletProvider(OpsWalletProvider(settings.evm_ops_private_key), fee_payers)

    risk_gate = RiskGate(settings, db_manager)
    pnl_monitor = PnlMonitor(settings.get_pnl_monitor_config(), db_manager)
    orchestrator = ArbitrageOrchestrator(
        settings, db_manager, connectors, quote_providers, wallets, risk_gate, pnl_monitor
    )

    logger.info(
        "arbitrage_pipeline_built",
        fee_payer_pool=fee_payers is not None,
        fee_payer_top_ups=settings.solana_ops_secret_key is not None,
        arb_env=settings.arb_env,
        execution_enabled=settings.arb_execution_enabled,
    )
    return ArbitragePipeline(
        route_scanner=RouteScanner(settings, db_manager, quote_providers),
        orchestrator=orchestrator,
        auto_executor=AutoExecutor(
            db_manager, orchestrator, max_run_age_seconds=settings.approved_run_max_age_seconds
        ),
        pnl_monitor=pnl_monitor,
        risk_gate=risk_gate,
        connectors=connectors,
        quote_providers=quote_providers,
        fee_payer_funder=FeePayerFunder(db_manager, connectors, settings.solana_ops_secret_key),
    )
