"""
Router FastAPI per l'Analytics incassi
Progetto: Sales Tracker (Abbonamenti e Rate)

Definisce gli endpoint per le statistiche previsto/incassato e l'elenco filiali.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.schemas.analytics import AnalyticsData, BranchRead
from app.services.analytics_service import AnalyticsAggregator, AnalyticsService

router = APIRouter(tags=["Analytics"])


def get_analytics_service() -> AnalyticsService:
    """Service con la mappa filiali presa dalla configurazione."""
    return AnalyticsService(AnalyticsAggregator(settings.branch_names))


@router.get("/analytics", response_model=AnalyticsData)
async def get_analytics(
    month: Optional[int] = Query(None, ge=1, le=12, description="Mese (default: corrente)"),
    year: Optional[int] = Query(None, ge=1900, le=9999, description="Anno (default: corrente)"),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Previsto vs incassato del mese, per filiale e serie mensile completa."""
    return await service.get_analytics(db, month=month, year=year)


@router.get("/companies", response_model=list[BranchRead])
async def get_companies():
    """Elenco filiali note, per i selettori del frontend."""
    return [
        BranchRead(id=company_id, name=name)
        for company_id, name in sorted(settings.branch_names.items(), key=lambda item: item[1])
    ]
