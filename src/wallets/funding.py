"""Fee payer balance refresh and top-ups from the Solana ops wallet"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import structlog
from pydantic import SecretStr

from src.chains.factory import ConnectorRegistry
from src.chains.networks import Network, resolve_network
from src.chains.solana_connector import BASE_FEE_LAMPORTS, SolanaConnector
from src.database.manager import DatabaseManager
from src.database.models import FeePayerKey, SystemSettings
from src.errors import ArbitrageError, ConfigurationError
from src.wallets.solana_signer import SolanaSigner, keypair_from_secret

logger = structlog.get_logger()


@dataclass
class FeePayerFundingReport:
    """Outcome of one refresh or top-up pass"""

    network: str
    refreshed: List[dict] = field(default_factory=list)
    topped_up: List[dict] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)
    skipped_reason: str = ""

    def to_dict(self) -> dict:
        return {
            "network": self.network,
            "refreshed": self.refreshed,
            "topped_up": self.topped_up,
            "failed": self.failed,
            "skipped_reason": self.skipped_reason or None,
        }


class FeePayerFunder:
    """
    Keeps fee payer balances current and funds payers that run low.

    Balances are read from the Solana cluster that matches the current
    mainnet mode. A top-up sends the configured amount from the ops wallet to
    every active payer below the minimum, and stops as soon as the ops wallet
    cannot cover the next transfer plus its fee.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        connectors: ConnectorRegistry,
        ops_secret_key: Optional[SecretStr] = None,
    ):
        self.db_manager = db_manager
        self.connectors = connectors
        self._ops_secret_key = ops_secret_key
        self._ops_signer: Optional[SolanaSigner] = None
        self._logger = logger.bind(component="fee_payer_funder")

    @property
    def can_top_up(self) -> bool:
        return self._ops_secret_key is not None

    def _get_ops_signer(self) -> SolanaSigner:
        if self._ops_secret_key is None:
            raise ConfigurationError("SOLANA_OPS_SECRET_KEY is required for fee payer top-ups")
        if self._ops_signer is None:
            keypair = keypair_from_secret(
                self._ops_secret_key.get_secret_value(), label="SOLANA_OPS_SECRET_KEY"
            )
            self._ops_signer = SolanaSigner(keypair)
            self._logger.info("solana_ops_wallet_loaded", address=self._ops_signer.address)
        return self._ops_signer

    async def _cluster(self) -> Tuple[SystemSettings, Network, SolanaConnector]:
        system_settings = await self.db_manager.get_system_settings()
        network = resolve_network(Network.SOLANA_MAINNET, system_settings.is_mainnet_mode)
        return system_settings, network, self.connectors.get(network)

    async def refresh_balances(self) -> FeePayerFundingReport:
        """Read every active payer's balance and store it"""
        _, network, connector = await self._cluster()
        payers = await self.db_manager.get_fee_payers(active_only=True)
        report = FeePayerFundingReport(network=network.value)

        for payer in payers:
            await self._refresh_one(connector, payer, report)

        self._logger.info(
            "fee_payer_balances_refreshed",
            network=network.value,
            refreshed=len(report.refreshed),
            failed=len(report.failed),
        )
        return report

    async def top_up(self) -> FeePayerFundingReport:
        """
        Transfer the top-up amount to each active payer below the minimum.

        Raises:
            ConfigurationError: If no ops key is configured or it is malformed
        """
        ops_signer = self._get_ops_signer()
        system_settings, network, connector = await self._cluster()
        minimum = system_settings.solana_min_fee_payer_balance_lamports
        amount = system_settings.solana_fee_payer_top_up_lamports
        report = FeePayerFundingReport(network=network.value)

        for payer in await self.db_manager.get_fee_payers(active_only=True):
            balance = await self._refresh_one(connector, payer, report)
            if balance is None or balance >= minimum:
                continue

            ops_balance = await connector.get_native_balance(ops_signer.address)
            required = amount + BASE_FEE_LAMPORTS
            if ops_balance < required:
                report.skipped_reason = (
                    f"Ops wallet holds {ops_balance} lamports; {required} needed for the next top-up"
                )
                self._logger.warning(
                    "fee_payer_top_up_underfunded",
                    network=network.value,
                    ops_balance=ops_balance,
                    required=required,
                )
                break

            try:
                submitted = await connector.transfer_native(ops_signer, payer.public_key, amount)
            except ArbitrageError as e:
                report.failed.append({"public_key": payer.public_key, "error": e.message})
                self._logger.error(
                    "fee_payer_top_up_failed",
                    network=network.value,
                    public_key=payer.public_key,
                    error=e.message,
                )
                continue

            await self.db_manager.record_fee_payer_top_up(payer.public_key, amount, submitted.tx_ref)
            new_balance = await self._refresh_one(connector, payer, report)
            report.topped_up.append(
                {
                    "public_key": payer.public_key,
                    "amount_lamports": amount,
                    "tx_signature": submitted.tx_ref,
                    "balance_lamports": new_balance,
                }
            )

        self._logger.info(
            "fee_payer_top_up_completed",
            network=network.value,
            topped_up=len(report.topped_up),
            failed=len(report.failed),
        )
        return report

    async def maintain(self) -> FeePayerFundingReport:
        """Scheduled pass: top up when an ops key is configured, otherwise only refresh"""
        if self.can_top_up:
            return await self.top_up()
        return await self.refresh_balances()

    async def _refresh_one(
        self, connector: SolanaConnector, payer: FeePayerKey, report: FeePayerFundingReport
    ) -> Optional[int]:
        try:
            balance = await connector.get_native_balance(payer.public_key)
        except Exception as e:
            report.failed.append({"public_key": payer.public_key, "error": str(e)})
            self._logger.warning(
                "fee_payer_balance_refresh_failed",
                public_key=payer.public_key,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        await self.db_manager.update_fee_payer_balance(payer.id, balance)
        report.refreshed.append({"public_key": payer.public_key, "balance_lamports": balance})
        return balance
