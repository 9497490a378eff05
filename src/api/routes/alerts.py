"""Alert endpoints"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel
import structlog

from src.api.auth import get_db_manager, require_admin
from src.database.manager import DatabaseManager
from src.database.models import Alert, AlertFilters
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class AlertResponse(BaseModel):
    """Alert response model; amounts are base-unit strings"""

    id: int
    chain: str
    network: str
    alert_type: str
    severity: str
    run_id: Optional[int] = None
    expected_net_profit: Optional[str] = None
    realized_profit: Optional[str] = None
    gas_spent: Optional[str] = None
    details: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None


def _amount(value: Optional[int]) -> Optional[str]:
    return str(value) if value is not None else None


def _alert_response(alert: Alert) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        chain=alert.chain,
        network=alert.network,
        alert_type=alert.alert_type,
        severity=alert.severity.value,
        run_id=alert.run_id,
        expected_net_profit=_amount(alert.expected_net_profit),
        realized_profit=_amount(alert.realized_profit),
        gas_spent=_amount(alert.gas_spent),
        details=alert.details,
        created_at=alert.created_at,
        acknowledged_at=alert.acknowledged_at,
        acknowledged_by=alert.acknowledged_by,
    )


@router.get("", response_model=List[AlertResponse])
async def get_alerts(
    include_acknowledged: bool = Query(False, description="Include acknowledged alerts"),
    run_id: Optional[int] = Query(None, description="Filter by run"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db_manager: DatabaseManager = Depends(get_db_manager),
    principal: Principal = Depends(require_admin),
) -> List[AlertResponse]:
    """Alerts, newest first; unacknowledged only unless asked otherwise"""
    filters = AlertFilters(
        include_acknowledged=include_acknowledged, run_id=run_id, limit=limit, offset=offset
    )
    alerts = await db_manager.get_alerts(filters)
    return [_alert_response(alert) for alert in alerts]


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: int = Path(ge=1),
    db_manager: DatabaseManager = Depends(get_db_manager),
    principal: Principal = Depends(require_admin),
) -> Dict[str, Any]:
    """Acknowledge once; a repeat returns acknowledged=false and changes nothing"""
    acknowledged = await db_manager.acknowledge_alert(alert_id, principal.user_id)
    return {"alert_id": alert_id, "acknowledged": acknowledged}
