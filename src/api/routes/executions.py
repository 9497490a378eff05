"""Execution endpoints"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
import structlog

from src.api.auth import get_pipeline, require_admin
from src.execution.pipeline import ArbitragePipeline
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/executions", tags=["executions"])


class ExecutionRequest(BaseModel):
    strategy_id: int = Field(ge=1)
    notional: Optional[str] = Field(
        None,
        pattern=r"^[0-9]+$",
        description="Input amount in base units; defaults to the strategy's configuration",
    )
    simulate_only: bool = False


@router.post("")
async def execute_strategy(
    request: ExecutionRequest,
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """
    Gate, quote and execute one strategy.

    Rejections answer 400, 403 or 423 and are recorded as FAILED runs before
    the response is sent.
    """
    outcome = await pipeline.orchestrator.execute_strategy(
        principal,
        request.strategy_id,
        notional=int(request.notional) if request.notional is not None else None,
        simulate_only=request.simulate_only,
    )
    return outcome.to_dict()


@router.post("/auto")
async def run_auto_execution(
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Run one auto-execution pass over approved strategy-scan runs"""
    logger.info("auto_execution_requested", user_id=principal.user_id)
    report = await pipeline.auto_executor.run_once()
    return report.to_dict()
