"""Error taxonomy for the arbitrage pipeline

Every error carries the HTTP status the admin API answers with. Messages are
safe to return to callers and must never include key material.
"""

from typing import Optional


class ArbitrageError(Exception):
    """Base class for pipeline errors"""

    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(ArbitrageError):
    """Missing or invalid credentials"""

    http_status = 401


class AuthorizationError(ArbitrageError):
    """Authenticated caller lacks the admin role"""

    http_status = 403


class ExecutionDisabledError(ArbitrageError):
    """Environment flags do not permit execution on the requested network"""

    http_status = 403


class ConfigurationError(ArbitrageError):
    """Operator-actionable misconfiguration (missing key, unsupported network, missing threshold)"""

    http_status = 500


class ExecutionLockedError(ArbitrageError):
    """Global execution lock is engaged"""

    http_status = 423

    def __init__(self, reason: Optional[str]):
        self.reason = reason or "Execution locked"
        super().__init__(f"Execution locked: {self.reason}")


class BelowThresholdError(ArbitrageError):
    """Route failed the minimum net profit or bps gate"""

    http_status = 400

    def __init__(self, message: str, net_profit: int = 0, profit_bps: int = 0):
        super().__init__(message)
        self.net_profit = net_profit
        self.profit_bps = profit_bps


class RiskLimitExceededError(ArbitrageError):
    """Per-strategy or global daily cap reached"""

    http_status = 400


class InsufficientFundsError(ArbitrageError):
    """Signing wallet cannot cover notional plus gas buffer"""

    http_status = 400

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class QuoteUnavailableError(ArbitrageError):
    """Quote provider returned no usable quote"""

    http_status = 502

    def __init__(self, message: str, rate_limited: bool = False):
        super().__init__(message)
        self.rate_limited = rate_limited


class TransactionFailedError(ArbitrageError):
    """Submitted transaction reverted or was rejected by the chain"""

    http_status = 500

    def __init__(
        self, message: str, tx_ref: Optional[str] = None, gas_spent_native: Optional[int] = None
    ):
        super().__init__(message)
        self.tx_ref = tx_ref
        self.gas_spent_native = gas_spent_native


class ConfirmationTimeoutError(TransactionFailedError):
    """Transaction was submitted but not confirmed in time"""


class PartialExecutionError(ArbitrageError):
    """Leg 1 confirmed, a later leg failed; wallet holds the intermediate asset"""

    http_status = 500

    def __init__(self, message: str, completed_tx_ref: str, run_id: Optional[int] = None):
        super().__init__(message)
        self.completed_tx_ref = completed_tx_ref
        self.run_id = run_id


class NoActiveSignerError(ArbitrageError):
    """No active fee payer can be leased"""

    http_status = 503


class StrategyNotFoundError(ArbitrageError):
    """Strategy does not exist or is disabled"""

    http_status = 404


class StaleSettingsError(ArbitrageError):
    """System settings changed since the caller read them"""

    http_status = 409
