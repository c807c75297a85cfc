"""
Modello SQLAlchemy per l'entità Sale
Progetto: Sales Tracker (Abbonamenti e Rate)

Rappresenta una vendita di abbonamento e il relativo tracciamento dei pagamenti.
"""


from __future__ import annotations
import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin


class Sale(Base, TimestampMixin):
    """
    Modello per le vendite di abbonamenti (tabella client_sales_tracker).

    Una riga per vendita. Il piano rate e lo storico pagamenti sono salvati
    come testo JSON e decodificati in lettura dal service layer: un JSON
    corrotto non deve impedire la lettura della vendita.

    Attributes:
        id: Chiave primaria interna, autoincrement
        sale_id: ID vendita nel sistema esterno
        amocrm_lead_id: ID della trattativa nel CRM
        yclients_client_id: ID cliente nel sistema di prenotazione
        yclients_company_id: ID filiale (chiave di raggruppamento analytics)
        purchase_date: Data di acquisto
        total_cost: Costo totale dell'abbonamento
        payment_schedule: Piano rate serializzato JSON
        payment_history: Storico pagamenti legacy serializzato JSON
        overdue_days: Giorni di ritardo, ricalcolati a ogni modifica del piano
        status: active | overdue | underpaid | paid_off | completed
        summa_vozvrata: Importo del rimborso
        pdf_url: Riferimento al contratto
    """

    __tablename__ = "client_sales_tracker"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="ID interno",
    )

    # ------------------------------------------------------------
    # Identificativi esterni
    # ------------------------------------------------------------
    sale_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,
        doc="ID vendita nel sistema esterno",
    )

    amocrm_lead_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="ID trattativa AmoCRM",
    )

    yclients_client_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        doc="ID cliente YClients",
    )

    yclients_company_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        doc="ID filiale YClients",
    )

    # ------------------------------------------------------------
    # Cliente
    # ------------------------------------------------------------
    client_phone: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        doc="Telefono del cliente",
    )

    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    master_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Nome del maestro/istruttore",
    )

    subscription_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ------------------------------------------------------------
    # Dati commerciali
    # ------------------------------------------------------------
    purchase_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Data di acquisto",
    )

    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Costo totale",
    )

    is_installment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    payment_schedule: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Piano rate (lista JSON di PaymentScheduleEntry)",
    )

    payment_history: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Storico pagamenti legacy (lista JSON)",
    )

    total_payments: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    payments_made_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    next_payment_date: Mapped[Optional[datetime.date]] = mapped_column(Date, nullable=True)

    next_payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    overdue_days: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="Giorni di ritardo della prima rata non pagata",
    )

    is_fully_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        default="active",
        nullable=False,
        doc="active, overdue, underpaid, paid_off, completed",
    )

    is_underpaid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    underpayment_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
    )

    # ------------------------------------------------------------
    # Flag ausiliari
    # ------------------------------------------------------------
    is_frozen: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_refund: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    summa_vozvrata: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Importo del rimborso",
    )

    booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    date_booked: Mapped[Optional[datetime.date]] = mapped_column(Date, nullable=True)

    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    pdf_url: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        doc="Riferimento al documento del contratto",
    )

    last_checked_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("total_cost >= 0", name="ck_sales_total_cost_non_negative"),
        CheckConstraint("overdue_days >= 0", name="ck_sales_overdue_days_non_negative"),
        CheckConstraint(
            "status IN ('active', 'overdue', 'underpaid', 'paid_off', 'completed')",
            name="ck_sales_status",
        ),
        Index("ix_sales_purchase_date", "purchase_date"),
        Index("ix_sales_company", "yclients_company_id"),
    )

    def __repr__(self) -> str:
        return f"<Sale(id={self.id}, sale_id={self.sale_id}, status={self.status})>"
