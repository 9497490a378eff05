"""Route scanner: discovery scans over liquidity sources and scans of configured strategies"""

import asyncio
import random
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from itertools import product
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from src.chains.catalog import DEFAULT_SCAN_SOURCES, TOKEN_PAIRS, TRIANGULAR_PATHS
from src.chains.networks import ChainType, Network, parse_network, resolve_network
from src.chains.tokens import (
    Token,
    find_token,
    is_native_token,
    is_valid_evm_address,
    is_valid_solana_address,
    to_base_units,
)
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.database.models import EventStatus, OpsEvent, Run, RunStatus, RunType, Strategy
from src.detectors.profit_calculator import (
    DEFAULT_SCAN_GAS_PRICE_GWEI,
    LegEstimate,
    ProfitCalculator,
    ProfitThresholds,
    RouteClassification,
    calculate_scan_gas,
    scan_leg_estimates,
)
from src.errors import ArbitrageError, ConfigurationError
from src.monitoring import metrics
from src.quotes.models import QuoteResponse, SwapQuote
from src.quotes.registry import QuoteProviderRegistry

logger = structlog.get_logger()

DEFAULT_MAX_COMBINATIONS = 5
MAX_COMBINATIONS_CAP = 50
RATE_LIMIT_THRESHOLD = 2
RATE_LIMIT_BACKOFF_MS = 3000
TOP_RESULTS = 20
SUPERSEDED_REASON = "Superseded by a newer strategy scan"

# Discovery quotes are read-only, so they always price against mainnet liquidity
DISCOVERY_NETWORK = Network.POLYGON


class ScanMode(Enum):
    SOURCE_MATRIX = "SOURCE_MATRIX"
    TRIANGULAR = "TRIANGULAR"


@dataclass(frozen=True)
class ScanPacing:
    """Request pacing: delay between quotes, plus a longer pause every batch_size combinations"""

    delay_ms: int
    batch_pause_ms: int
    batch_size: int

    def __post_init__(self):
        if self.delay_ms < 0 or self.batch_pause_ms < 0:
            raise ValueError("Scan delays must be non-negative")
        if self.batch_size < 1:
            raise ValueError("Scan batch size must be at least 1")


class ScanSpeed(Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    FAST = "fast"
    AGGRESSIVE = "aggressive"


SCAN_SPEED_PRESETS: Dict[ScanSpeed, ScanPacing] = {
    ScanSpeed.CONSERVATIVE: ScanPacing(delay_ms=2500, batch_pause_ms=8000, batch_size=2),
    ScanSpeed.MODERATE: ScanPacing(delay_ms=1500, batch_pause_ms=5000, batch_size=2),
    ScanSpeed.FAST: ScanPacing(delay_ms=800, batch_pause_ms=3000, batch_size=3),
    ScanSpeed.AGGRESSIVE: ScanPacing(delay_ms=300, batch_pause_ms=1500, batch_size=5),
}


def resolve_pacing(speed: Union[ScanSpeed, ScanPacing, str, None]) -> ScanPacing:
    """Map a preset name, preset or explicit pacing onto a ScanPacing"""
    if speed is None:
        return SCAN_SPEED_PRESETS[ScanSpeed.MODERATE]
    if isinstance(speed, ScanPacing):
        return speed
    if isinstance(speed, str):
        try:
            speed = ScanSpeed(speed.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown scan speed: {speed}") from None
    return SCAN_SPEED_PRESETS[speed]


@dataclass
class ScanResult:
    """One quoted route combination"""

    mode: ScanMode
    sources: List[str]
    token_path: List[str]
    notional_in: int
    classification: RouteClassification
    gross_profit: int = 0
    net_profit: int = 0
    profit_bps: int = 0
    gas_estimate_native: int = 0
    slippage_buffer: int = 0
    reason: Optional[str] = None
    leg_outputs: List[int] = field(default_factory=list)
    leg_sources: List[List[str]] = field(default_factory=list)

    @property
    def route(self) -> str:
        return " -> ".join(self.sources)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        data["classification"] = self.classification.value
        # Base-unit amounts can exceed JSON number precision
        for key in ("notional_in", "gross_profit", "net_profit", "gas_estimate_native", "slippage_buffer"):
            data[key] = str(data[key])
        data["leg_outputs"] = [str(v) for v in self.leg_outputs]
        return data


@dataclass
class ScanReport:
    """Summary of one discovery scan"""

    mode: ScanMode
    network: str
    sources_used: List[str]
    notional_in: int
    total_scanned: int
    profitable: int
    not_profitable: int
    failed: int
    rate_limit_count: int
    aborted_due_to_rate_limit: bool
    duration_ms: int
    top_results: List[ScanResult]
    created_strategy_ids: List[int] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "network": self.network,
            "sources_used": self.sources_used,
            "notional_in": str(self.notional_in),
            "total_scanned": self.total_scanned,
            "profitable": self.profitable,
            "not_profitable": self.not_profitable,
            "failed": self.failed,
            "rate_limit_count": self.rate_limit_count,
            "aborted_due_to_rate_limit": self.aborted_due_to_rate_limit,
            "duration_ms": self.duration_ms,
            "top_results": [r.to_dict() for r in self.top_results],
            "created_strategy_ids": self.created_strategy_ids,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class StrategyScanResult:
    """Outcome of scanning one configured strategy"""

    strategy_id: int
    strategy_name: str
    network: str
    run_id: Optional[int]
    classification: RouteClassification
    notional_in: int = 0
    net_profit: int = 0
    profit_bps: int = 0
    approved_for_auto_execution: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["classification"] = self.classification.value
        data["notional_in"] = str(self.notional_in)
        data["net_profit"] = str(self.net_profit)
        return data


def strategy_purpose(strategy: Strategy) -> str:
    if strategy.is_for_fee_payer_refill:
        return "FEE_PAYER_REFILL"
    if strategy.is_for_ops_refill:
        return "OPS_REFILL"
    return "MANUAL"


@dataclass
class StrategyRoute:
    """Validated route parameters for one strategy on its resolved network"""

    network: Network
    calculator: ProfitCalculator
    input_decimals: int
    input_is_native: bool
    notional_in: int


def prepare_strategy_route(
    settings: Settings, strategy: Strategy, network: Network, notional_in: Optional[int] = None
) -> StrategyRoute:
    """
    Validate addresses and work out decimals and notional for a strategy.

    An explicit notional is still capped at MAX_NOTIONAL.

    Raises:
        ConfigurationError: On invalid addresses or unknown input decimals
    """
    network = parse_network(network)
    chain_type = ChainType(strategy.chain_type)
    validate = is_valid_evm_address if chain_type == ChainType.EVM else is_valid_solana_address
    for label, address in (("token_in_mint", strategy.token_in_mint), ("token_out_mint", strategy.token_out_mint)):
        if not validate(address):
            raise ConfigurationError(f"Invalid {label} address: {address}")

    token = find_token(network, strategy.token_in_mint)
    decimals = strategy.token_in_decimals
    if decimals is None and token is not None:
        decimals = token.decimals
    if decimals is None:
        raise ConfigurationError(
            f"Input token decimals unknown for strategy {strategy.id}; set token_in_decimals"
        )

    input_is_native = is_native_token(strategy.token_in_mint) or bool(token and token.native_equivalent)
    calculator = ProfitCalculator(network, decimals, input_is_native=input_is_native)

    max_notional = to_base_units(settings.max_notional, decimals)
    if notional_in is None:
        if strategy.max_trade_value_native and strategy.max_trade_value_native > 0:
            notional_in = strategy.max_trade_value_native
        else:
            notional_in = to_base_units(settings.default_notional, decimals)
    if notional_in <= 0:
        raise ConfigurationError(f"Notional must be positive: {notional_in}")

    return StrategyRoute(
        network=network,
        calculator=calculator,
        input_decimals=decimals,
        input_is_native=input_is_native,
        notional_in=min(notional_in, max_notional),
    )


class RouteScanner:
    """
    Quotes candidate routes sequentially with rate-limit-aware pacing.

    Quotes are never issued in parallel. A scan stops early once the total
    number of HTTP 429 responses reaches the threshold and reports partial
    results instead of failing.
    """

    def __init__(
        self,
        settings: Settings,
        db_manager: DatabaseManager,
        quote_providers: QuoteProviderRegistry,
        rate_limit_threshold: int = RATE_LIMIT_THRESHOLD,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.db_manager = db_manager
        self.quote_providers = quote_providers
        self.rate_limit_threshold = rate_limit_threshold
        self._sleep = sleep
        self._logger = logger.bind(component="route_scanner")

    async def _pause(self, milliseconds: int) -> None:
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000)

    def _build_combinations(
        self, mode: ScanMode, sources: Sequence[str]
    ) -> List[Tuple[str, ...]]:
        if mode == ScanMode.SOURCE_MATRIX:
            return [(a, b) for a, b in product(sources, repeat=2) if a != b]
        # Triangular legs may reuse a source
        return list(product(sources, repeat=3))

    async def run_discovery_scan(
        self,
        mode: Union[ScanMode, str] = ScanMode.SOURCE_MATRIX,
        token_pair: str = "USDC_WETH",
        triangular_path: str = "USDC_WETH_WMATIC",
        included_sources: Optional[List[str]] = None,
        notional: Optional[Any] = None,
        max_combinations: Optional[int] = None,
        speed: Union[ScanSpeed, ScanPacing, str, None] = None,
        shuffle: bool = False,
        auto_create_strategies: bool = False,
        thresholds: Optional[ProfitThresholds] = None,
    ) -> ScanReport:
        """
        Run a source-matrix or triangular scan.

        Args:
            mode: SOURCE_MATRIX quotes A->B round trips; TRIANGULAR quotes a fixed 3-token cycle
            token_pair: Pair key for source-matrix scans
            triangular_path: Path key for triangular scans
            included_sources: Liquidity sources to combine (defaults to the catalog defaults)
            notional: Human amount of the input token (defaults to DEFAULT_NOTIONAL)
            max_combinations: Combinations to quote, capped at 50
            speed: Pacing preset or explicit ScanPacing
            shuffle: Randomize combination order before truncating
            auto_create_strategies: Create disabled strategies for profitable source-matrix routes
            thresholds: Profit gates; defaults to the configured scan thresholds

        Returns:
            ScanReport with the top results by net profit
        """
        start_time = time.time()
        mode = ScanMode(mode.upper()) if isinstance(mode, str) else mode
        pacing = resolve_pacing(speed)
        thresholds = thresholds or self.settings.get_profit_thresholds()
        limit = min(max_combinations or DEFAULT_MAX_COMBINATIONS, MAX_COMBINATIONS_CAP)
        sources = list(included_sources) if included_sources else list(DEFAULT_SCAN_SOURCES)

        if mode == ScanMode.SOURCE_MATRIX:
            if token_pair not in TOKEN_PAIRS:
                raise ConfigurationError(f"Unknown token pair: {token_pair}")
            base, quote = TOKEN_PAIRS[token_pair]
            path: List[Token] = [base, quote, base]
        else:
            if triangular_path not in TRIANGULAR_PATHS:
                raise ConfigurationError(f"Unknown triangular path: {triangular_path}")
            path = list(TRIANGULAR_PATHS[triangular_path])

        input_token = path[0]
        notional_human = notional if notional is not None else self.settings.default_notional
        notional_in = to_base_units(notional_human, input_token.decimals)
        max_notional = to_base_units(self.settings.max_notional, input_token.decimals)
        if notional_in > max_notional:
            self._logger.info("scan_notional_capped", requested=notional_in, cap=max_notional)
            notional_in = max_notional

        combinations = self._build_combinations(mode, sources)
        if shuffle:
            random.shuffle(combinations)
        selected = combinations[:limit]

        self._logger.info(
            "discovery_scan_started",
            mode=mode.value,
            sources=len(sources),
            combinations=len(selected),
            notional_in=notional_in,
            delay_ms=pacing.delay_ms,
        )

        calculator = ProfitCalculator(
            DISCOVERY_NETWORK, input_token.decimals, input_is_native=input_token.native_equivalent
        )
        provider = self.quote_providers.get(DISCOVERY_NETWORK)

        results: List[ScanResult] = []
        rate_limit_count = 0
        aborted = False
        processed = 0

        for combination in selected:
            if rate_limit_count >= self.rate_limit_threshold:
                aborted = True
                metrics.scan_aborted_total.labels(mode=mode.value).inc()
                self._logger.warning(
                    "discovery_scan_aborted_rate_limit",
                    rate_limit_count=rate_limit_count,
                    processed=processed,
                )
                break

            if processed > 0 and processed % pacing.batch_size == 0:
                self._logger.debug("scan_batch_pause", pause_ms=pacing.batch_pause_ms, processed=processed)
                await self._pause(pacing.batch_pause_ms)

            result, rate_limits = await self._scan_combination(
                provider, calculator, thresholds, mode, combination, path, notional_in, pacing
            )
            rate_limit_count += rate_limits
            processed += 1
            results.append(result)
            metrics.scan_combinations_total.labels(
                mode=mode.value, status=result.classification.value
            ).inc()
            await self._record_scan_event(result)

        created_ids: List[int] = []
        if auto_create_strategies and mode == ScanMode.SOURCE_MATRIX:
            for result in results:
                if result.classification == RouteClassification.PROFITABLE:
                    strategy_id = await self._auto_create_strategy(result, path, thresholds)
                    if strategy_id is not None:
                        created_ids.append(strategy_id)

        ranked = sorted(results, key=lambda r: r.net_profit, reverse=True)
        duration = time.time() - start_time
        metrics.scan_duration.labels(mode=mode.value).observe(duration)

        report = ScanReport(
            mode=mode,
            network=DISCOVERY_NETWORK.value,
            sources_used=sources,
            notional_in=notional_in,
            total_scanned=len(results),
            profitable=sum(1 for r in results if r.classification == RouteClassification.PROFITABLE),
            not_profitable=sum(
                1 for r in results if r.classification == RouteClassification.NOT_PROFITABLE
            ),
            failed=sum(1 for r in results if r.classification == RouteClassification.FAILED),
            rate_limit_count=rate_limit_count,
            aborted_due_to_rate_limit=aborted,
            duration_ms=int(duration * 1000),
            top_results=ranked[:TOP_RESULTS],
            created_strategy_ids=created_ids,
        )

        self._logger.info(
            "discovery_scan_completed",
            mode=mode.value,
            total_scanned=report.total_scanned,
            profitable=report.profitable,
            failed=report.failed,
            rate_limit_count=rate_limit_count,
            aborted_due_to_rate_limit=aborted,
            duration_ms=report.duration_ms,
        )
        return report

    async def _scan_combination(
        self,
        provider,
        calculator: ProfitCalculator,
        thresholds: ProfitThresholds,
        mode: ScanMode,
        sources: Tuple[str, ...],
        path: List[Token],
        notional_in: int,
        pacing: ScanPacing,
    ) -> Tuple[ScanResult, int]:
        """Quote each leg in order; returns the result and the number of 429s seen"""
        token_path = [token.symbol for token in path]
        result = ScanResult(
            mode=mode,
            sources=list(sources),
            token_path=token_path,
            notional_in=notional_in,
            classification=RouteClassification.FAILED,
        )
        rate_limits = 0
        amount = notional_in

        for index, source in enumerate(sources):
            if index > 0:
                await self._pause(pacing.delay_ms)

            sell, buy = path[index], path[index + 1]
            try:
                response = await provider.fetch_price(
                    DISCOVERY_NETWORK, sell.address, buy.address, amount, included_sources=[source]
                )
            except ArbitrageError as e:
                response = QuoteResponse(error=e.message)

            if response.rate_limited:
                rate_limits += 1
                self._logger.warning("scan_quote_rate_limited", source=source, leg=index + 1)
                await self._pause(RATE_LIMIT_BACKOFF_MS)

            if not response.ok:
                detail = "rate limited" if response.rate_limited else (response.error or "no quote")
                result.reason = f"Leg{index + 1} quote failed for {source}: {detail}"
                await self._pause(pacing.delay_ms)
                return result, rate_limits

            quote: SwapQuote = response.quote
            result.leg_outputs.append(quote.buy_amount)
            result.leg_sources.append(quote.sources)
            amount = quote.buy_amount

        legs = scan_leg_estimates(result.leg_outputs, DEFAULT_SCAN_GAS_PRICE_GWEI)
        breakdown = calculator.calculate(notional_in, legs, self.settings.slippage_bps)
        result.classification = calculator.classify(breakdown, thresholds)
        result.gross_profit = breakdown.gross_profit
        result.net_profit = breakdown.net_profit
        result.profit_bps = breakdown.profit_bps
        result.gas_estimate_native = breakdown.gas_cost_native
        result.slippage_buffer = breakdown.slippage_buffer

        self._logger.debug(
            "scan_combination_quoted",
            route=result.route,
            net_profit=result.net_profit,
            profit_bps=result.profit_bps,
            classification=result.classification.value,
            gas_units=calculate_scan_gas(len(sources)),
        )
        await self._pause(pacing.delay_ms)
        return result, rate_limits

    async def _record_scan_event(self, result: ScanResult) -> None:
        status = {
            RouteClassification.PROFITABLE: EventStatus.SIMULATED,
            RouteClassification.NOT_PROFITABLE: EventStatus.ABORTED,
            RouteClassification.FAILED: EventStatus.FAILED,
        }[result.classification]

        await self.db_manager.record_event(
            OpsEvent(
                chain=ChainType.EVM.value,
                network=DISCOVERY_NETWORK.value,
                mode=result.mode.value,
                status=status,
                route=result.route,
                notional_in=result.notional_in,
                expected_net_profit=result.net_profit,
                error_message=result.reason,
                details={
                    "tokenPath": result.token_path,
                    "grossProfit": str(result.gross_profit),
                    "profitBps": result.profit_bps,
                    "legOutputs": [str(v) for v in result.leg_outputs],
                },
            )
        )

    async def _auto_create_strategy(
        self, result: ScanResult, path: List[Token], thresholds: ProfitThresholds
    ) -> Optional[int]:
        """Create a disabled strategy for operator review unless an identical one exists"""
        dex_a, dex_b = result.sources[0], result.sources[1]
        base, quote = path[0], path[1]
        existing = await self.db_manager.find_strategy(
            DISCOVERY_NETWORK.value, dex_a, dex_b, base.address, quote.address
        )
        if existing is not None:
            self._logger.debug("auto_strategy_exists", strategy_id=existing.id, route=result.route)
            return None

        strategy = Strategy(
            name=f"Discovered {base.symbol}/{quote.symbol} {dex_a} -> {dex_b}",
            chain_type=ChainType.EVM.value,
            network=DISCOVERY_NETWORK.value,
            dex_a=dex_a,
            dex_b=dex_b,
            token_in_mint=base.address,
            token_out_mint=quote.address,
            token_in_decimals=base.decimals,
            # Never enabled without an operator
            is_enabled=False,
            is_auto_enabled=False,
            min_profit_lamports=thresholds.min_net_profit,
            min_profit_bps=thresholds.min_profit_bps,
            max_trade_value_native=result.notional_in,
        )
        strategy_id = await self.db_manager.create_strategy(strategy)
        self._logger.info("auto_strategy_created", strategy_id=strategy_id, route=result.route)
        return strategy_id

    async def scan_strategies(self, chain_type: Optional[Union[ChainType, str]] = None) -> List[StrategyScanResult]:
        """
        Quote every enabled strategy and write one SIMULATED run per strategy.

        Runs approved for auto-execution stay open; every other run is
        finalized at once.
        """
        if isinstance(chain_type, str):
            chain_type = ChainType(chain_type.upper())

        system_settings = await self.db_manager.get_system_settings()
        strategies = await self.db_manager.get_enabled_strategies(
            chain_type.value if chain_type else None
        )
        self._logger.info(
            "strategy_scan_started",
            strategies=len(strategies),
            chain_type=chain_type.value if chain_type else "ALL",
            is_mainnet_mode=system_settings.is_mainnet_mode,
        )

        results: List[StrategyScanResult] = []
        for index, strategy in enumerate(strategies):
            if index > 0:
                await self._pause(SCAN_SPEED_PRESETS[ScanSpeed.MODERATE].delay_ms)
            results.append(await self._scan_strategy(strategy, system_settings.is_mainnet_mode))

        self._logger.info(
            "strategy_scan_completed",
            strategies=len(results),
            profitable=sum(1 for r in results if r.classification == RouteClassification.PROFITABLE),
            approved=sum(1 for r in results if r.approved_for_auto_execution),
        )
        return results

    async def _scan_strategy(self, strategy: Strategy, is_mainnet_mode: bool) -> StrategyScanResult:
        # Quotes from an earlier pass are stale once this one runs
        await self.db_manager.supersede_open_scan_runs(strategy.id, SUPERSEDED_REASON)

        network_name = strategy.network
        try:
            network = resolve_network(strategy.network, is_mainnet_mode)
            network_name = network.value
            route = prepare_strategy_route(self.settings, strategy, network)
            calculator, notional_in = route.calculator, route.notional_in
            thresholds = ProfitThresholds(strategy.min_profit_lamports, strategy.min_profit_bps)
            provider = self.quote_providers.get(network)
        except ConfigurationError as e:
            return await self._record_invalid_strategy(strategy, network_name, e.message)

        gas_price_fallback = (
            DEFAULT_SCAN_GAS_PRICE_GWEI * 10**9 if calculator.network_info.chain_type == ChainType.EVM else 1
        )

        legs: List[LegEstimate] = []
        error: Optional[str] = None
        amount = notional_in
        for label, sell, buy, dex in (
            ("A", strategy.token_in_mint, strategy.token_out_mint, strategy.dex_a),
            ("B", strategy.token_out_mint, strategy.token_in_mint, strategy.dex_b),
        ):
            try:
                response = await provider.fetch_price(network, sell, buy, amount, included_sources=[dex])
            except ArbitrageError as e:
                response = QuoteResponse(error=e.message)
            if not response.ok:
                detail = "rate limited" if response.rate_limited else (response.error or "no quote")
                error = f"No route for leg {label} via {dex}: {detail}"
                break
            quote = response.quote
            legs.append(LegEstimate(quote.buy_amount, quote.gas_estimate, quote.gas_price or gas_price_fallback))
            amount = quote.buy_amount

        run = Run(
            strategy_id=strategy.id,
            network=network.value,
            status=RunStatus.SIMULATED,
            run_type=RunType.SCAN,
            purpose=strategy_purpose(strategy),
            notional_in=notional_in,
        )
        classification = RouteClassification.FAILED

        if error is None:
            breakdown = calculator.calculate(notional_in, legs, self.settings.slippage_bps)
            classification = calculator.classify(breakdown, thresholds)
            run.estimated_gross_profit = breakdown.gross_profit
            run.estimated_profit_lamports = breakdown.net_profit
            run.estimated_gas_cost_native = breakdown.gas_cost_native
            run.estimated_gas_cost = breakdown.gas_cost_in_input_token
            run.slippage_buffer = breakdown.slippage_buffer
            run.profit_bps = breakdown.profit_bps
            run.approved_for_auto_execution = (
                classification == RouteClassification.PROFITABLE and strategy.is_auto_enabled
            )
        else:
            run.error_message = error

        # Open runs are the auto-execution queue; nothing else stays open
        if not run.approved_for_auto_execution:
            run.finished_at = datetime.now(timezone.utc)

        run_id = await self.db_manager.create_run(run)
        metrics.scan_combinations_total.labels(mode="STRATEGY", status=classification.value).inc()

        self._logger.info(
            "strategy_scanned",
            strategy_id=strategy.id,
            run_id=run_id,
            network=network.value,
            classification=classification.value,
            net_profit=run.estimated_profit_lamports,
            approved=run.approved_for_auto_execution,
            error=error,
        )
        return StrategyScanResult(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            network=network.value,
            run_id=run_id,
            classification=classification,
            notional_in=notional_in,
            net_profit=run.estimated_profit_lamports or 0,
            profit_bps=run.profit_bps or 0,
            approved_for_auto_execution=run.approved_for_auto_execution,
            error=error,
        )

    async def _record_invalid_strategy(
        self, strategy: Strategy, network_name: str, message: str
    ) -> StrategyScanResult:
        error = f"Validation failed: {message}"
        run_id = await self.db_manager.create_run(
            Run(
                strategy_id=strategy.id,
                network=network_name,
                status=RunStatus.SIMULATED,
                run_type=RunType.SCAN,
                purpose=strategy_purpose(strategy),
                finished_at=datetime.now(timezone.utc),
                error_message=error,
            )
        )
        self._logger.warning("strategy_scan_invalid", strategy_id=strategy.id, run_id=run_id, error=error)
        return StrategyScanResult(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            network=network_name,
            run_id=run_id,
            classification=RouteClassification.FAILED,
            error=error,
        )
