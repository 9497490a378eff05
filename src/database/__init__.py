"""Database module for the run, event and alert ledger"""

from src.database.manager import DatabaseManager
from src.database.models import (
    Alert,
    AlertFilters,
    AlertSeverity,
    DailyRiskLimit,
    EventStatus,
    FeePayerKey,
    OpsEvent,
    Run,
    RunFilters,
    RunStatus,
    RunType,
    Strategy,
    SystemSettings,
)
from src.database.schema import get_schema_sql

__all__ = [
    "DatabaseManager",
    "get_schema_sql",
    "Alert",
    "AlertFilters",
    "AlertSeverity",
    "DailyRiskLimit",
    "EventStatus",
    "FeePayerKey",
    "OpsEvent",
    "Run",
    "RunFilters",
    "RunStatus",
    "RunType",
    "Strategy",
    "SystemSettings",
]
