"""
Schemas Pydantic per l'Analytics incassi
Progetto: Sales Tracker (Abbonamenti e Rate)
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CompanyStats(BaseModel):
    """Previsto vs incassato di una filiale nel mese richiesto."""

    company_id: Optional[int] = Field(None, serialization_alias="companyId")
    company_name: str = Field(..., serialization_alias="companyName")
    planned: float = Field(0.0, description="Totale rate previste")
    actual: float = Field(0.0, description="Totale rate incassate")
    planned_people: int = Field(0, serialization_alias="plannedPeople")
    actual_people: int = Field(0, serialization_alias="actualPeople")


class MonthlyStats(BaseModel):
    """Previsto vs incassato per un mese (chiave YYYY-MM)."""

    month: str = Field(..., description="Mese nel formato YYYY-MM")
    planned: float = 0.0
    actual: float = 0.0
    planned_people: int = Field(0, serialization_alias="plannedPeople")
    actual_people: int = Field(0, serialization_alias="actualPeople")


class AnalyticsData(BaseModel):
    """Risposta di GET /api/analytics."""

    month: int = Field(..., ge=1, le=12)
    year: int
    total_planned: float = Field(0.0, serialization_alias="totalPlanned")
    total_actual: float = Field(0.0, serialization_alias="totalActual")
    by_company: list[CompanyStats] = Field(default_factory=list, serialization_alias="byCompany")
    monthly_stats: list[MonthlyStats] = Field(default_factory=list, serialization_alias="monthlyStats")
    skipped_entries: int = Field(
        0,
        serialization_alias="skippedEntries",
        description="Rate escluse perché con data non interpretabile o voce non valida",
    )
    corrupted_schedules: int = Field(
        0,
        serialization_alias="corruptedSchedules",
        description="Vendite escluse perché il piano rate salvato è illeggibile",
    )

    model_config = ConfigDict(populate_by_name=True)


class BranchRead(BaseModel):
    """Filiale (ID esterno e nome) per i selettori del frontend."""

    id: int
    name: str
