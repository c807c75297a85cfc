"""
Pytest configuration and fixtures per i test del Sales Tracker.

Il database non viene mai toccato: l'AsyncSession è un mock e le vendite
sono istanze del modello costruite in memoria.
"""

import datetime
import json
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Sale
from app.schemas.sale import PaymentScheduleEntry


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    return db


def result_with_rowcount(rowcount: int) -> MagicMock:
    """Risultato di un UPDATE/DELETE con il numero di righe indicato."""
    result = MagicMock()
    result.rowcount = rowcount
    return result


def result_with_sale(sale: Optional[Sale]) -> MagicMock:
    """Risultato di una SELECT che restituisce una sola vendita (o nessuna)."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = sale
    result.scalars.return_value.all.return_value = [sale] if sale is not None else []
    return result


# ============================================================
# Fixtures per Sale
# ============================================================


def make_sale(**overrides: Any) -> Sale:
    """Costruisce un Sale completo in memoria (nessun default lato DB)."""
    values: dict[str, Any] = dict(
        id=1,
        sale_id=5001,
        amocrm_lead_id=9001,
        yclients_client_id=None,
        yclients_company_id=583940,
        client_phone="+79001234567",
        client_name="Anna Ivanova",
        master_name="Olga",
        subscription_title="Abbonamento 12 lezioni",
        purchase_date=datetime.date(2024, 1, 15),
        total_cost=Decimal("2000.00"),
        is_installment=True,
        payment_schedule=None,
        payment_history=None,
        total_payments=2,
        payments_made_count=1,
        next_payment_date=None,
        next_payment_amount=None,
        overdue_days=0,
        is_fully_paid=False,
        status="active",
        is_underpaid=False,
        underpayment_amount=Decimal("0"),
        is_frozen=False,
        is_refund=False,
        summa_vozvrata=None,
        booked=False,
        date_booked=None,
        comments=None,
        pdf_url=None,
        last_checked_at=None,
        created_at=None,
        updated_at=None,
    )
    values.update(overrides)
    return Sale(**values)


@pytest.fixture
def two_installment_schedule() -> list[PaymentScheduleEntry]:
    """Acconto pagato a gennaio, seconda rata in attesa a febbraio 2024."""
    return [
        PaymentScheduleEntry(
            payment_number=1,
            planned_date="15.01.2024",
            planned_amount=1000,
            status="paid",
            actual_date="15.01.2024",
            actual_amount=1000,
        ),
        PaymentScheduleEntry(
            payment_number=2,
            planned_date="15.02.2024",
            planned_amount=1000,
            status="pending",
        ),
    ]


@pytest.fixture
def sale_with_schedule(two_installment_schedule):
    """Vendita con il piano a due rate salvato come JSON."""
    raw = json.dumps([e.model_dump(mode="json", exclude_none=True) for e in two_installment_schedule])
    return make_sale(payment_schedule=raw)


@pytest.fixture
def sale_factory():
    return make_sale
