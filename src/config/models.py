"""Configuration models for networks, thresholds and service settings"""

from decimal import Decimal
from typing import Dict, List, Optional, Union

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.chains.networks import ChainType, Network, get_network_info, parse_network, rpc_urls_for
from src.detectors.profit_calculator import ProfitThresholds


class ChainConfig(BaseSettings):
    """Connection configuration for one network"""

    name: str
    network: Network
    chain_type: ChainType
    chain_id: Optional[int] = None
    rpc_urls: List[str]
    native_symbol: str
    native_decimals: int
    confirmation_timeout_seconds: float = 120.0

    model_config = SettingsConfigDict(frozen=True)


class PnlMonitorConfig:
    """Anomaly monitor thresholds"""

    def __init__(
        self,
        min_ratio: float = 0.70,
        max_gas_multiplier: float = 1.30,
        fail_max_consecutive: int = 2,
        fail_window_minutes: int = 30,
    ):
        self.min_ratio = min_ratio
        self.max_gas_multiplier = max_gas_multiplier
        self.fail_max_consecutive = fail_max_consecutive
        self.fail_window_minutes = fail_window_minutes


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: str = Field(alias="DATABASE_URL")

    # Redis (optional latest-scan cache)
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Execution environment
    arb_env: str = Field(default="testnet", alias="ARB_ENV")
    arb_execution_enabled: bool = Field(default=False, alias="ARB_EXECUTION_ENABLED")

    # Quote APIs
    zerox_api_key: Optional[SecretStr] = Field(default=None, alias="ZEROX_API_KEY")
    zerox_api_base_url: str = Field(default="https://api.0x.org", alias="ZEROX_API_BASE_URL")
    jupiter_api_base_url: str = Field(
        default="https://quote-api.jup.ag/v6", alias="JUPITER_API_BASE_URL"
    )
    quote_timeout_seconds: float = Field(default=15.0, alias="QUOTE_TIMEOUT_SECONDS")

    # Signing
    evm_ops_private_key: Optional[SecretStr] = Field(default=None, alias="EVM_OPS_PRIVATE_KEY")
    fee_payer_encryption_key: Optional[SecretStr] = Field(
        default=None, alias="FEE_PAYER_ENCRYPTION_KEY"
    )
    fee_payer_lease_seconds: int = Field(default=120, alias="FEE_PAYER_LEASE_SECONDS")
    # Funds fee payer top-ups; base58 64-byte keypair
    solana_ops_secret_key: Optional[SecretStr] = Field(default=None, alias="SOLANA_OPS_SECRET_KEY")

    # RPC overrides (public endpoints are used when unset)
    evm_polygon_rpc_url: Optional[str] = Field(default=None, alias="EVM_POLYGON_RPC_URL")
    evm_ethereum_rpc_url: Optional[str] = Field(default=None, alias="EVM_ETHEREUM_RPC_URL")
    evm_arbitrum_rpc_url: Optional[str] = Field(default=None, alias="EVM_ARBITRUM_RPC_URL")
    evm_bsc_rpc_url: Optional[str] = Field(default=None, alias="EVM_BSC_RPC_URL")
    evm_polygon_amoy_rpc_url: Optional[str] = Field(default=None, alias="EVM_POLYGON_AMOY_RPC_URL")
    evm_sepolia_rpc_url: Optional[str] = Field(default=None, alias="EVM_SEPOLIA_RPC_URL")
    evm_arbitrum_sepolia_rpc_url: Optional[str] = Field(
        default=None, alias="EVM_ARBITRUM_SEPOLIA_RPC_URL"
    )
    evm_bsc_testnet_rpc_url: Optional[str] = Field(default=None, alias="EVM_BSC_TESTNET_RPC_URL")
    solana_rpc_url: Optional[str] = Field(default=None, alias="SOLANA_RPC_URL")
    solana_devnet_rpc_url: Optional[str] = Field(default=None, alias="SOLANA_DEVNET_RPC_URL")
    confirmation_timeout_seconds: float = Field(default=120.0, alias="CONFIRMATION_TIMEOUT_SECONDS")

    # Flash loan receiver contracts, JSON map of network name to address
    flash_receiver_addresses: Dict[str, str] = Field(
        default_factory=dict, alias="FLASH_RECEIVER_ADDRESSES"
    )

    # Profit defaults for discovery scans (base units of the input token)
    min_net_profit: int = Field(default=100000, alias="MIN_NET_PROFIT")
    min_profit_bps: int = Field(default=5, alias="MIN_PROFIT_BPS")
    slippage_bps: int = Field(default=30, alias="SLIPPAGE_BPS")
    default_notional: Decimal = Field(default=Decimal("1000"), alias="DEFAULT_NOTIONAL")
    max_notional: Decimal = Field(default=Decimal("50000"), alias="MAX_NOTIONAL")
    gas_buffer_multiplier: Decimal = Field(default=Decimal("1.5"), alias="GAS_BUFFER_MULTIPLIER")

    # PnL anomaly monitor
    pnl_alert_min_ratio: float = Field(default=0.70, alias="PNL_ALERT_MIN_RATIO")
    pnl_alert_max_gas_multiplier: float = Field(default=1.30, alias="PNL_ALERT_MAX_GAS_MULTIPLIER")
    pnl_fail_max_consecutive: int = Field(default=2, alias="PNL_FAIL_MAX_CONSECUTIVE")
    pnl_fail_window_minutes: int = Field(default=30, alias="PNL_FAIL_WINDOW_MINUTES")

    # Scheduler
    auto_execute_interval_seconds: float = Field(default=60.0, alias="AUTO_EXECUTE_INTERVAL_SECONDS")
    strategy_scan_interval_seconds: float = Field(
        default=300.0, alias="STRATEGY_SCAN_INTERVAL_SECONDS"
    )
    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")
    fee_payer_maintenance_interval_seconds: float = Field(
        default=900.0, alias="FEE_PAYER_MAINTENANCE_INTERVAL_SECONDS"
    )
    # Approved scan runs older than this are not picked up by the auto-executor
    approved_run_max_age_seconds: int = Field(default=600, alias="APPROVED_RUN_MAX_AGE_SECONDS")

    # API
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # Monitoring
    prometheus_port: int = Field(default=9090, alias="PROMETHEUS_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_mainnet_env(self) -> bool:
        return self.arb_env.strip().lower() == "mainnet"

    def get_rpc_override(self, network: Union[str, Network]) -> Optional[str]:
        """Dedicated RPC endpoint for a network, if one is configured"""
        info = get_network_info(network)
        return getattr(self, info.rpc_env_var.lower(), None)

    def get_chain_config(self, network: Union[str, Network]) -> ChainConfig:
        """Get connection configuration for a network"""
        info = get_network_info(network)
        return ChainConfig(
            name=info.name,
            network=info.network,
            chain_type=info.chain_type,
            chain_id=info.chain_id,
            rpc_urls=rpc_urls_for(info.network, self.get_rpc_override(info.network)),
            native_symbol=info.native_symbol,
            native_decimals=info.native_decimals,
            confirmation_timeout_seconds=self.confirmation_timeout_seconds,
        )

    def get_flash_receiver(self, network: Union[str, Network]) -> Optional[str]:
        """Deployed flash loan receiver contract for a network"""
        name = parse_network(network).value
        for key, address in self.flash_receiver_addresses.items():
            if key.strip().upper() == name and address:
                return address
        return None

    def get_profit_thresholds(self) -> ProfitThresholds:
        """Default thresholds for discovery scans; strategies carry their own"""
        return ProfitThresholds(
            min_net_profit=self.min_net_profit,
            min_profit_bps=self.min_profit_bps,
        )

    def get_pnl_monitor_config(self) -> PnlMonitorConfig:
        """Get anomaly monitor configuration"""
        return PnlMonitorConfig(
            min_ratio=self.pnl_alert_min_ratio,
            max_gas_multiplier=self.pnl_alert_max_gas_multiplier,
            fail_max_consecutive=self.pnl_fail_max_consecutive,
            fail_window_minutes=self.pnl_fail_window_minutes,
        )
