"""Pre-execution risk checks"""

from src.risk.gate import SYSTEM_PRINCIPAL, GateResult, Principal, RiskGate

__all__ = ["GateResult", "Principal", "RiskGate", "SYSTEM_PRINCIPAL"]
