"""Fee payer balance refresh and top-up endpoints"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
import structlog

from src.api.auth import get_pipeline, require_admin
from src.execution.pipeline import ArbitragePipeline
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/fee-payers", tags=["fee-payers"])


@router.post("/refresh-balances")
async def refresh_fee_payer_balances(
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Read and store the balance of every active fee payer"""
    logger.info("fee_payer_refresh_requested", user_id=principal.user_id)
    report = await pipeline.fee_payer_funder.refresh_balances()
    return report.to_dict()


@router.post("/top-up")
async def top_up_fee_payers(
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """
    Fund every active fee payer below the minimum balance from the ops wallet.

    Answers 500 with a ConfigurationError when SOLANA_OPS_SECRET_KEY is unset.
    """
    logger.info("fee_payer_top_up_requested", user_id=principal.user_id)
    report = await pipeline.fee_payer_funder.top_up()
    return report.to_dict()
