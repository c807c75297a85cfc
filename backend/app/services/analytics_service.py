"""
Service per l'Analytics incassi
Progetto: Sales Tracker (Abbonamenti e Rate)

Aggrega i piani rate di tutte le vendite in totali previsti/incassati
per mese e per filiale.
"""

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dates import parse_date, today
from app.core.exceptions import StorageError
from app.models import Sale
from app.schemas.analytics import AnalyticsData, CompanyStats, MonthlyStats
from app.schemas.sale import PaymentScheduleEntry, PaymentStatus
from app.services.schedule_service import decode_schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleSchedule:
    """
    Quanto serve all'aggregatore di una vendita: ID interno, filiale e piano rate.

    rejected_entries conta le voci scartate in decodifica; corrupted indica
    un piano salvato del tutto illeggibile.
    """

    id: int
    company_id: Optional[int]
    schedule: Sequence[PaymentScheduleEntry] = ()
    rejected_entries: int = 0
    corrupted: bool = False


@dataclass
class _Bucket:
    planned: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    planned_people: set[int] = field(default_factory=set)
    actual_people: set[int] = field(default_factory=set)

    def add_planned(self, amount: Decimal, sale_id: int) -> None:
        self.planned += amount
        self.planned_people.add(sale_id)

    def add_actual(self, amount: Decimal, sale_id: int) -> None:
        self.actual += amount
        self.actual_people.add(sale_id)


def _month_key(value: datetime.date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def _to_decimal(value: Optional[float]) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


class AnalyticsAggregator:
    """
    Aggregatore previsto/incassato.

    La mappa ID filiale -> nome viene passata dal chiamante (di norma
    settings.branch_names) e usata in sola lettura.

    Regole per ogni rata di ogni vendita:
    - data prevista interpretabile: l'importo previsto va nel mese della
      data prevista; se il mese coincide con quello richiesto va anche nel
      totale e nella filiale della vendita
    - rata pagata con data effettiva interpretabile: stessa cosa lato
      incassato, usando mese della data effettiva e importo effettivo
    - le persone sono vendite distinte per bucket
    - una rata con data prevista non interpretabile, o già scartata in
      decodifica, viene contata in skipped_entries; i piani illeggibili per
      intero sono contati in corrupted_schedules
    """

    def __init__(self, branch_names: Mapping[int, str]) -> None:
        self._branch_names = branch_names

    def branch_name(self, company_id: Optional[int]) -> str:
        if company_id is None:
            return "Branch Unknown"
        return self._branch_names.get(company_id) or f"Branch {company_id}"

    def aggregate(
        self,
        sales: Iterable[SaleSchedule],
        month: int,
        year: int,
    ) -> AnalyticsData:
        """
        Calcola le statistiche per il mese/anno richiesto.

        Args:
            sales: Vendite con il relativo piano rate
            month: Mese richiesto (1-12)
            year: Anno richiesto

        Returns:
            AnalyticsData con totali del mese, dettaglio per filiale e
            serie mensile completa (tutti i mesi presenti nei piani)
        """
        monthly: dict[str, _Bucket] = {}
        companies: dict[Optional[int], _Bucket] = {}
        total = _Bucket()
        skipped = 0
        corrupted = 0

        for sale in sales:
            skipped += sale.rejected_entries
            if sale.corrupted:
                corrupted += 1
            for entry in sale.schedule:
                planned_on = parse_date(entry.planned_date)
                if planned_on is None:
                    skipped += 1
                    continue

                amount = _to_decimal(entry.planned_amount)
                monthly.setdefault(_month_key(planned_on), _Bucket()).add_planned(amount, sale.id)
                if (planned_on.year, planned_on.month) == (year, month):
                    total.add_planned(amount, sale.id)
                    companies.setdefault(sale.company_id, _Bucket()).add_planned(amount, sale.id)

                if entry.status != PaymentStatus.PAID:
                    continue
                paid_on = parse_date(entry.actual_date)
                if paid_on is None:
                    continue

                paid = _to_decimal(
                    entry.actual_amount if entry.actual_amount is not None else entry.planned_amount
                )
                monthly.setdefault(_month_key(paid_on), _Bucket()).add_actual(paid, sale.id)
                if (paid_on.year, paid_on.month) == (year, month):
                    total.add_actual(paid, sale.id)
                    companies.setdefault(sale.company_id, _Bucket()).add_actual(paid, sale.id)

        by_company = [
            CompanyStats(
                company_id=company_id,
                company_name=self.branch_name(company_id),
                planned=float(bucket.planned),
                actual=float(bucket.actual),
                planned_people=len(bucket.planned_people),
                actual_people=len(bucket.actual_people),
            )
            for company_id, bucket in companies.items()
        ]
        by_company.sort(key=lambda c: c.company_name)

        monthly_stats = [
            MonthlyStats(
                month=key,
                planned=float(bucket.planned),
                actual=float(bucket.actual),
                planned_people=len(bucket.planned_people),
                actual_people=len(bucket.actual_people),
            )
            for key, bucket in sorted(monthly.items())
        ]

        if skipped:
            logger.warning("Analytics: %s rate scartate (data o voce non valida)", skipped)
        if corrupted:
            logger.warning("Analytics: %s piani rate illeggibili esclusi", corrupted)

        return AnalyticsData(
            month=month,
            year=year,
            total_planned=float(total.planned),
            total_actual=float(total.actual),
            by_company=by_company,
            monthly_stats=monthly_stats,
            skipped_entries=skipped,
            corrupted_schedules=corrupted,
        )


class AnalyticsService:
    """Carica le vendite dal database e delega l'aggregazione."""

    def __init__(self, aggregator: AnalyticsAggregator) -> None:
        self.aggregator = aggregator

    async def get_analytics(
        self,
        db: AsyncSession,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> AnalyticsData:
        """Statistiche del mese richiesto (default: mese corrente)."""
        now = today()
        month = month or now.month
        year = year or now.year

        stmt = select(Sale.id, Sale.yclients_company_id, Sale.payment_schedule)
        try:
            result = await db.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy lettura vendite per analytics: %s", e)
            raise StorageError("Impossibile calcolare le statistiche")

        sales = []
        for sale_pk, company_id, raw_schedule in rows:
            schedule, warnings = decode_schedule(raw_schedule)
            sales.append(SaleSchedule(
                sale_pk,
                company_id,
                schedule or (),
                rejected_entries=len(warnings) if schedule is not None else 0,
                corrupted=schedule is None and bool(warnings),
            ))

        analytics = self.aggregator.aggregate(sales, month=month, year=year)
        logger.info(
            "Analytics %02d/%s: %s vendite, previsto %s, incassato %s",
            month, year, len(sales), analytics.total_planned, analytics.total_actual,
        )
        return analytics
