"""
Schemas Pydantic per il progetto Sales Tracker

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle risposte API.
"""

# es: from app.schemas import SaleRead, AnalyticsData, etc.

from app.schemas.sale import (
    Discrepancy,
    PaymentHistoryEntry,
    PaymentScheduleEntry,
    PaymentStatus,
    RefundRequest,
    SaleCreate,
    SaleFilters,
    SaleRead,
    SaleStatus,
    SaleUpdate,
    ScheduleRegenerationRead,
    SortField,
    SortOrder,
)
from app.schemas.analytics import (
    AnalyticsData,
    BranchRead,
    CompanyStats,
    MonthlyStats,
)

__all__ = [
    # Sale
    "Discrepancy",
    "PaymentHistoryEntry",
    "PaymentScheduleEntry",
    "PaymentStatus",
    "RefundRequest",
    "SaleCreate",
    "SaleFilters",
    "SaleRead",
    "SaleStatus",
    "SaleUpdate",
    "ScheduleRegenerationRead",
    "SortField",
    "SortOrder",
    # Analytics
    "AnalyticsData",
    "BranchRead",
    "CompanyStats",
    "MonthlyStats",
]
