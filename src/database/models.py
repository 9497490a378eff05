"""Data models for database entities

Token amounts are integer base units (stored as NUMERIC(78, 0)).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class RunStatus(Enum):
    SIMULATED = "SIMULATED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class RunType(Enum):
    SCAN = "SCAN"
    MANUAL = "MANUAL"
    AUTO = "AUTO"


class EventStatus(Enum):
    SIMULATED = "SIMULATED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    REJECTED = "REJECTED"


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Strategy:
    """Configured route between two liquidity sources"""

    name: str
    chain_type: str
    network: str
    dex_a: str
    dex_b: str
    token_in_mint: str
    token_out_mint: str
    id: Optional[int] = None
    token_in_decimals: Optional[int] = None
    is_enabled: bool = False
    is_auto_enabled: bool = False
    is_for_fee_payer_refill: bool = False
    is_for_ops_refill: bool = False
    # Thresholds stay None when unset; consumers fail closed
    min_expected_profit_native: Optional[int] = None
    min_profit_to_gas_ratio: Optional[Decimal] = None
    min_profit_lamports: Optional[int] = None
    min_profit_bps: Optional[int] = None
    max_trade_value_native: Optional[int] = None
    max_trades_per_day: Optional[int] = None
    max_daily_loss_native: Optional[int] = None
    use_flash_loan: bool = False
    flash_loan_provider: Optional[str] = None
    flash_loan_token: Optional[str] = None
    flash_loan_amount_native: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Run:
    """One simulated or executed attempt for a strategy"""

    strategy_id: int
    network: str
    status: RunStatus
    run_type: RunType
    id: Optional[int] = None
    purpose: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    notional_in: Optional[int] = None
    estimated_gross_profit: Optional[int] = None
    estimated_profit_lamports: Optional[int] = None
    estimated_gas_cost_native: Optional[int] = None
    estimated_gas_cost: Optional[int] = None
    slippage_buffer: Optional[int] = None
    profit_bps: Optional[int] = None
    actual_profit_lamports: Optional[int] = None
    actual_gas_spent_native: Optional[int] = None
    tx_signature: Optional[str] = None
    leg2_tx_signature: Optional[str] = None
    used_flash_loan: bool = False
    flash_loan_provider: Optional[str] = None
    flash_loan_amount: Optional[int] = None
    flash_loan_fee: Optional[int] = None
    approved_for_auto_execution: bool = False
    requires_manual_reconciliation: bool = False
    error_message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OpsEvent:
    """Fine-grained execution or scan record"""

    chain: str
    network: str
    status: EventStatus
    mode: str
    id: Optional[int] = None
    run_id: Optional[int] = None
    strategy_id: Optional[int] = None
    route: Optional[str] = None
    notional_in: Optional[int] = None
    expected_net_profit: Optional[int] = None
    realized_profit: Optional[int] = None
    leg1_gas_native: Optional[int] = None
    leg2_gas_native: Optional[int] = None
    gas_spent_native: Optional[int] = None
    tx_hashes: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass
class Alert:
    """Anomaly record; acknowledged, never deleted"""

    chain: str
    network: str
    alert_type: str
    severity: AlertSeverity
    id: Optional[int] = None
    run_id: Optional[int] = None
    expected_net_profit: Optional[int] = None
    realized_profit: Optional[int] = None
    gas_spent: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None


@dataclass
class SystemSettings:
    """Singleton gate state; version increments on every write"""

    version: int
    arb_execution_locked: bool = False
    arb_execution_locked_reason: Optional[str] = None
    arb_execution_locked_at: Optional[datetime] = None
    is_mainnet_mode: bool = False
    auto_arbitrage_enabled: bool = False
    auto_flash_loan_enabled: bool = False
    safe_mode_enabled: bool = False
    max_global_daily_trades: Optional[int] = None
    max_global_daily_loss_native: Optional[int] = None
    solana_min_fee_payer_balance_lamports: int = 50_000_000
    solana_fee_payer_top_up_lamports: int = 200_000_000
    updated_at: Optional[datetime] = None


@dataclass
class DailyRiskLimit:
    """Per-strategy daily aggregate"""

    strategy_id: int
    chain: str
    day: date
    trade_count: int = 0
    total_pnl: int = 0
    total_loss: int = 0


@dataclass
class FeePayerKey:
    """Solana fee payer row; the secret stays encrypted until signing"""

    id: int
    public_key: str
    encrypted_secret_key: str = field(repr=False)
    is_active: bool = True
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    leased_until: Optional[datetime] = None
    balance_lamports: Optional[int] = None
    balance_updated_at: Optional[datetime] = None


@dataclass
class RunFilters:
    """Filters for querying runs"""

    strategy_id: Optional[int] = None
    status: Optional[RunStatus] = None
    limit: int = 100
    offset: int = 0


@dataclass
class AlertFilters:
    """Filters for querying alerts"""

    include_acknowledged: bool = False
    run_id: Optional[int] = None
    limit: int = 100
    offset: int = 0
