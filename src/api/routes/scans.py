"""Discovery and strategy scan endpoints"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
import structlog

from src.api.auth import get_cache_manager, get_pipeline, require_admin
from src.cache.manager import CacheManager
from src.chains.networks import parse_network
from src.detectors.route_scanner import DISCOVERY_NETWORK, ScanPacing
from src.execution.pipeline import ArbitragePipeline
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/scans", tags=["scans"])


class DiscoveryScanRequest(BaseModel):
    """Discovery scan parameters; custom pacing overrides the speed preset"""

    mode: str = Field("SOURCE_MATRIX", description="SOURCE_MATRIX or TRIANGULAR")
    token_pair: str = Field("USDC_WETH", description="Pair key for source-matrix scans")
    triangular_path: str = Field("USDC_WETH_WMATIC", description="Path key for triangular scans")
    included_sources: Optional[List[str]] = None
    notional: Optional[Decimal] = Field(None, gt=0, description="Human amount of the input token")
    max_combinations: Optional[int] = Field(None, ge=1)
    speed: Optional[str] = Field(None, description="conservative, moderate, fast or aggressive")
    delay_ms: Optional[int] = Field(None, ge=0)
    batch_pause_ms: Optional[int] = Field(None, ge=0)
    batch_size: Optional[int] = Field(None, ge=1)
    shuffle: bool = False
    auto_create_strategies: bool = False


class StrategyScanRequest(BaseModel):
    chain_type: Optional[str] = Field(None, description="EVM or SOLANA; all when omitted")


@router.post("/discovery")
async def run_discovery_scan(
    request: DiscoveryScanRequest,
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    cache_manager: Optional[CacheManager] = Depends(get_cache_manager),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Quote source combinations sequentially and return the top results by net profit"""
    speed = request.speed
    if request.delay_ms is not None and request.batch_pause_ms is not None and request.batch_size:
        speed = ScanPacing(request.delay_ms, request.batch_pause_ms, request.batch_size)

    try:
        report = await pipeline.route_scanner.run_discovery_scan(
            mode=request.mode,
            token_pair=request.token_pair,
            triangular_path=request.triangular_path,
            included_sources=request.included_sources,
            notional=request.notional,
            max_combinations=request.max_combinations,
            speed=speed,
            shuffle=request.shuffle,
            auto_create_strategies=request.auto_create_strategies,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    body = report.to_dict()
    if cache_manager is not None:
        await cache_manager.cache_scan_report(report.network, body)

    logger.info(
        "discovery_scan_requested",
        user_id=principal.user_id,
        total_scanned=report.total_scanned,
        aborted_due_to_rate_limit=report.aborted_due_to_rate_limit,
    )
    return body


@router.get("/latest")
async def get_latest_scan(
    network: str = Query(DISCOVERY_NETWORK.value, description="Network of the cached report"),
    cache_manager: Optional[CacheManager] = Depends(get_cache_manager),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Latest cached discovery report; 404 when nothing is cached"""
    network_name = parse_network(network).value
    report = None
    if cache_manager is not None:
        report = await cache_manager.get_latest_scan_report(network_name)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No cached scan report for {network_name}")
    return report


@router.post("/strategies")
async def run_strategy_scan(
    request: StrategyScanRequest,
    pipeline: ArbitragePipeline = Depends(get_pipeline),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Quote every enabled strategy and write one SIMULATED run each"""
    try:
        results = await pipeline.route_scanner.scan_strategies(request.chain_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "scanned": len(results),
        "approved": sum(1 for r in results if r.approved_for_auto_execution),
        "results": [r.to_dict() for r in results],
    }
