"""Run history endpoint"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
import structlog

from src.api.auth import get_db_manager, require_admin
from src.database.manager import DatabaseManager
from src.database.models import Run, RunFilters, RunStatus
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/runs", tags=["runs"])

_AMOUNT_FIELDS = (
    "notional_in",
    "estimated_gross_profit",
    "estimated_profit_lamports",
    "estimated_gas_cost_native",
    "estimated_gas_cost",
    "slippage_buffer",
    "actual_profit_lamports",
    "actual_gas_spent_native",
    "flash_loan_amount",
    "flash_loan_fee",
)


class RunResponse(BaseModel):
    """Run response model; amounts are base-unit strings"""

    id: int
    strategy_id: int
    network: str
    status: str
    run_type: str
    purpose: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    notional_in: Optional[str] = None
    estimated_gross_profit: Optional[str] = None
    estimated_profit_lamports: Optional[str] = None
    estimated_gas_cost_native: Optional[str] = None
    estimated_gas_cost: Optional[str] = None
    slippage_buffer: Optional[str] = None
    profit_bps: Optional[int] = None
    actual_profit_lamports: Optional[str] = None
    actual_gas_spent_native: Optional[str] = None
    tx_signature: Optional[str] = None
    leg2_tx_signature: Optional[str] = None
    used_flash_loan: bool = False
    flash_loan_provider: Optional[str] = None
    flash_loan_amount: Optional[str] = None
    flash_loan_fee: Optional[str] = None
    approved_for_auto_execution: bool = False
    requires_manual_reconciliation: bool = False
    error_message: Optional[str] = None
    details: Dict[str, Any] = {}


def run_response(run: Run) -> RunResponse:
    values = {
        "id": run.id,
        "strategy_id": run.strategy_id,
        "network": run.network,
        "status": run.status.value,
        "run_type": run.run_type.value,
        "purpose": run.purpose,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
        "profit_bps": run.profit_bps,
        "tx_signature": run.tx_signature,
        "leg2_tx_signature": run.leg2_tx_signature,
        "used_flash_loan": run.used_flash_loan,
        "flash_loan_provider": run.flash_loan_provider,
        "approved_for_auto_execution": run.approved_for_auto_execution,
        "requires_manual_reconciliation": run.requires_manual_reconciliation,
        "error_message": run.error_message,
        "details": run.details,
    }
    for name in _AMOUNT_FIELDS:
        value = getattr(run, name)
        values[name] = str(value) if value is not None else None
    return RunResponse(**values)


@router.get("", response_model=List[RunResponse])
async def get_runs(
    strategy_id: Optional[int] = Query(None, description="Filter by strategy"),
    status: Optional[str] = Query(None, description="SIMULATED, EXECUTED or FAILED"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db_manager: DatabaseManager = Depends(get_db_manager),
    principal: Principal = Depends(require_admin),
) -> List[RunResponse]:
    """Recent runs, newest first"""
    run_status = None
    if status is not None:
        try:
            run_status = RunStatus(status.upper())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown run status: {status}")

    runs = await db_manager.get_runs(
        RunFilters(strategy_id=strategy_id, status=run_status, limit=limit, offset=offset)
    )
    return [run_response(run) for run in runs]
