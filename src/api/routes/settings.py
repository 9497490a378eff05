"""Execution lock endpoints"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
import structlog

from src.api.auth import get_db_manager, require_admin
from src.database.manager import DatabaseManager
from src.database.models import SystemSettings
from src.risk.gate import Principal

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


class ExecutionLockResponse(BaseModel):
    locked: bool
    reason: Optional[str] = None
    locked_at: Optional[datetime] = None
    version: int = Field(description="Pass back as expected_version when changing the lock")


class ExecutionLockRequest(BaseModel):
    locked: bool
    reason: Optional[str] = Field(None, max_length=500)
    expected_version: int = Field(ge=0)


def _lock_response(system_settings: SystemSettings) -> ExecutionLockResponse:
    return ExecutionLockResponse(
        locked=system_settings.arb_execution_locked,
        reason=system_settings.arb_execution_locked_reason,
        locked_at=system_settings.arb_execution_locked_at,
        version=system_settings.version,
    )


@router.get("/execution-lock", response_model=ExecutionLockResponse)
async def get_execution_lock(
    db_manager: DatabaseManager = Depends(get_db_manager),
    principal: Principal = Depends(require_admin),
) -> ExecutionLockResponse:
    return _lock_response(await db_manager.get_system_settings())


@router.post("/execution-lock", response_model=ExecutionLockResponse)
async def set_execution_lock(
    request: ExecutionLockRequest,
    db_manager: DatabaseManager = Depends(get_db_manager),
    principal: Principal = Depends(require_admin),
) -> ExecutionLockResponse:
    """
    Lock or unlock execution.

    A stale expected_version answers 409; reload the lock state and retry.
    """
    reason = (request.reason or "").strip()
    if request.locked and not reason:
        raise HTTPException(status_code=400, detail="A reason is required to lock execution")

    updated = await db_manager.set_execution_lock(
        request.locked,
        f"{reason} (by {principal.user_id})" if request.locked else None,
        request.expected_version,
    )
    logger.warning(
        "execution_lock_changed_by_admin",
        user_id=principal.user_id,
        locked=updated.arb_execution_locked,
        version=updated.version,
    )
    return _lock_response(updated)
