"""
Schemas Pydantic per le Vendite
Progetto: Sales Tracker (Abbonamenti e Rate)

Contiene:
- Enums: SaleStatus, PaymentStatus, Discrepancy, SortField, SortOrder
- Schemas per le voci del piano rate e dello storico pagamenti
- Schemas per Sale (create, update, read, filtri)
"""

import datetime
from collections import Counter
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from app.core.dates import parse_date


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class SaleStatus(str, Enum):
    """Stato commerciale della vendita."""
    ACTIVE = "active"
    OVERDUE = "overdue"
    UNDERPAID = "underpaid"
    PAID_OFF = "paid_off"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Stato di una singola rata."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class Discrepancy(str, Enum):
    """Scostamento tra importo pagato e importo previsto."""
    OVERPAID = "overpaid"
    UNDERPAID = "underpaid"
    EXACT = "exact"


class SortField(str, Enum):
    """Campi ammessi per l'ordinamento della lista vendite."""
    PURCHASE_DATE = "purchase_date"
    NEXT_PAYMENT_DATE = "next_payment_date"
    TOTAL_COST = "total_cost"
    CLIENT_NAME = "client_name"
    MASTER_NAME = "master_name"
    STATUS = "status"
    OVERDUE_DAYS = "overdue_days"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def classify_discrepancy(planned: float, actual: float) -> Discrepancy:
    """Classifica lo scostamento tra importo effettivo e previsto."""
    if actual > planned:
        return Discrepancy.OVERPAID
    if actual < planned:
        return Discrepancy.UNDERPAID
    return Discrepancy.EXACT


# -------------------------------------------------------------------
# Schemas per il piano rate
# -------------------------------------------------------------------

class PaymentScheduleEntry(BaseModel):
    """
    Una rata del piano pagamenti.

    I record più vecchi usano la forma legacy (date/amount/description):
    viene normalizzata qui, in ingresso, copiando date/amount nei campi
    planned_date/planned_amount. I campi legacy restano valorizzati per
    poter essere riscritti così come sono.
    """

    payment_number: int = Field(..., ge=1, description="Numero progressivo della rata (1 = acconto iniziale)")
    planned_date: str = Field(..., description="Data prevista (YYYY-MM-DD o DD.MM.YYYY)")
    planned_amount: float = Field(..., ge=0, description="Importo previsto")
    status: PaymentStatus = Field(PaymentStatus.PENDING, description="Stato della rata")
    actual_date: Optional[str] = Field(None, description="Data effettiva del pagamento")
    actual_amount: Optional[float] = Field(None, ge=0, description="Importo effettivamente pagato")
    difference: Optional[float] = Field(None, description="Valore assoluto di (effettivo - previsto)")
    discrepancy: Optional[Discrepancy] = Field(None, description="overpaid | underpaid | exact")

    # Forma legacy
    date: Optional[str] = Field(None, description="Data (forma legacy)")
    amount: Optional[float] = Field(None, ge=0, description="Importo (forma legacy)")
    description: Optional[str] = Field(None, description="Descrizione (forma legacy)")

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_shape(cls, data: Any) -> Any:
        """Porta una voce legacy (date/amount) nella forma corrente."""
        if not isinstance(data, dict):
            return data
        if data.get("planned_date") is None and data.get("date") is not None:
            data = {**data, "planned_date": data["date"]}
        if data.get("planned_amount") is None and data.get("amount") is not None:
            data = {**data, "planned_amount": data["amount"]}
        if data.get("status") is None:
            data = {**data, "status": PaymentStatus.PENDING}
        return data

    @model_validator(mode="after")
    def fill_discrepancy(self) -> "PaymentScheduleEntry":
        """Calcola differenza e scostamento per le rate pagate che ne sono prive."""
        if self.status == PaymentStatus.PAID and self.actual_amount is not None:
            if self.difference is None:
                self.difference = abs(self.actual_amount - self.planned_amount)
            if self.discrepancy is None:
                self.discrepancy = classify_discrepancy(self.planned_amount, self.actual_amount)
        return self

    @property
    def is_initial_payment(self) -> bool:
        """True per l'acconto iniziale (rata n. 1)."""
        return self.payment_number == 1


class PaymentHistoryEntry(BaseModel):
    """Voce dello storico pagamenti legacy, sostituito dallo stato delle rate."""

    payment_index: int = Field(..., ge=0, alias="paymentIndex")
    paid_date: str = Field(..., alias="paidDate")
    paid_amount: float = Field(..., ge=0, alias="paidAmount")
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


# -------------------------------------------------------------------
# Schemas per Sale
# -------------------------------------------------------------------

_OPTIONAL_NUMBERS = (
    "yclients_client_id",
    "yclients_company_id",
    "total_payments",
    "payments_made_count",
    "next_payment_amount",
    "summa_vozvrata",
)

_DATE_FIELDS = ("purchase_date", "next_payment_date", "date_booked")


class SaleBase(BaseModel):
    """Campi comuni a creazione e aggiornamento."""

    sale_id: int = Field(..., gt=0, description="ID vendita esterno")
    amocrm_lead_id: int = Field(..., gt=0, description="ID trattativa AmoCRM")
    yclients_client_id: Optional[int] = Field(None, description="ID cliente YClients")
    yclients_company_id: Optional[int] = Field(None, description="ID filiale YClients")
    client_phone: str = Field(..., min_length=1, max_length=32, description="Telefono del cliente")
    client_name: Optional[str] = Field(None, max_length=255)
    master_name: Optional[str] = Field(None, max_length=255)
    subscription_title: Optional[str] = Field(None, max_length=255)
    purchase_date: datetime.date = Field(..., description="Data di acquisto")
    total_cost: Decimal = Field(..., gt=0, description="Costo totale")
    is_installment: bool = False
    payment_schedule: Optional[list[PaymentScheduleEntry]] = None
    payment_history: Optional[list[PaymentHistoryEntry]] = None
    total_payments: Optional[int] = None
    payments_made_count: Optional[int] = None
    next_payment_date: Optional[datetime.date] = None
    next_payment_amount: Optional[Decimal] = None
    is_fully_paid: bool = False
    status: SaleStatus = SaleStatus.ACTIVE
    is_frozen: bool = False
    is_refund: bool = False
    summa_vozvrata: Optional[Decimal] = Field(None, ge=0, description="Importo rimborso")
    booked: bool = False
    date_booked: Optional[datetime.date] = None
    comments: Optional[str] = None
    pdf_url: Optional[str] = Field(None, max_length=512)

    @field_validator(*_OPTIONAL_NUMBERS, mode="before")
    @classmethod
    def empty_string_to_none(cls, v: Any) -> Any:
        """I form inviano '' per i numeri non compilati."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("payment_schedule")
    @classmethod
    def validate_payment_numbers(
        cls, v: Optional[list[PaymentScheduleEntry]]
    ) -> Optional[list[PaymentScheduleEntry]]:
        """Numeri rata univoci e al massimo un acconto iniziale."""
        if not v:
            return v
        if sum(1 for entry in v if entry.is_initial_payment) > 1:
            raise ValueError("Il piano rate può contenere un solo acconto iniziale (rata n. 1)")
        counts = Counter(entry.payment_number for entry in v)
        duplicates = sorted(number for number, count in counts.items() if count > 1)
        if duplicates:
            raise ValueError(f"Numeri rata duplicati nel piano: {duplicates}")
        return v

    @field_validator(*_DATE_FIELDS, mode="before")
    @classmethod
    def parse_any_date(cls, v: Any) -> Any:
        """Accetta sia YYYY-MM-DD sia DD.MM.YYYY."""
        if v is None or isinstance(v, datetime.date):
            return v
        if isinstance(v, str) and not v.strip():
            return None
        parsed = parse_date(v)
        if parsed is None:
            raise ValueError(f"Data non valida: {v}")
        return parsed


class SaleCreate(SaleBase):
    """Schema per la creazione di una vendita."""
    pass


class SaleUpdate(SaleBase):
    """
    Schema per l'aggiornamento parziale di una vendita.

    Tutti i campi sono opzionali; contano solo quelli effettivamente
    inviati (model_fields_set). I campi obbligatori in creazione non
    possono essere impostati a null.
    """

    sale_id: Optional[int] = Field(None, gt=0)
    amocrm_lead_id: Optional[int] = Field(None, gt=0)
    client_phone: Optional[str] = Field(None, min_length=1, max_length=32)
    purchase_date: Optional[datetime.date] = None
    total_cost: Optional[Decimal] = Field(None, gt=0)
    is_installment: Optional[bool] = None
    is_fully_paid: Optional[bool] = None
    status: Optional[SaleStatus] = None
    is_frozen: Optional[bool] = None
    is_refund: Optional[bool] = None
    booked: Optional[bool] = None

    @model_validator(mode="after")
    def reject_null_for_required(self) -> "SaleUpdate":
        not_nullable = (
            "sale_id", "amocrm_lead_id", "client_phone", "purchase_date", "total_cost",
            "is_installment", "is_fully_paid", "status", "is_frozen", "is_refund", "booked",
        )
        for name in not_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"Il campo '{name}' non può essere null")
        return self


class SaleRead(BaseModel):
    """Schema per la lettura di una vendita."""

    id: int
    sale_id: int
    amocrm_lead_id: int
    yclients_client_id: Optional[int] = None
    yclients_company_id: Optional[int] = None
    client_phone: str
    client_name: Optional[str] = None
    master_name: Optional[str] = None
    subscription_title: Optional[str] = None
    purchase_date: datetime.date
    total_cost: Decimal
    is_installment: bool
    payment_schedule: Optional[list[PaymentScheduleEntry]] = None
    payment_history: Optional[list[PaymentHistoryEntry]] = None
    total_payments: Optional[int] = None
    payments_made_count: Optional[int] = None
    next_payment_date: Optional[datetime.date] = None
    next_payment_amount: Optional[Decimal] = None
    overdue_days: int = 0
    is_fully_paid: bool
    status: SaleStatus
    is_underpaid: bool = False
    underpayment_amount: Decimal = Decimal("0")
    is_frozen: bool
    is_refund: bool
    summa_vozvrata: Optional[Decimal] = None
    booked: bool
    date_booked: Optional[datetime.date] = None
    comments: Optional[str] = None
    pdf_url: Optional[str] = None
    last_checked_at: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
    parse_warnings: list[str] = Field(
        default_factory=list,
        serialization_alias="parseWarnings",
        description="Campi JSON salvati che non è stato possibile decodificare",
    )

    model_config = ConfigDict(from_attributes=True)


class ScheduleRegenerationRead(BaseModel):
    """
    Esito della rigenerazione del piano rate.

    Un piano vuoto non è un errore: la vendita torna invariata con
    regenerated=False e il motivo in detail.
    """

    regenerated: bool
    detail: Optional[str] = None
    sale: SaleRead


class RefundRequest(BaseModel):
    """Registrazione di un rimborso."""

    amount: Decimal = Field(..., ge=0, description="Importo rimborsato")


class SaleFilters(BaseModel):
    """Filtri per la lista vendite (tutti opzionali)."""

    search: Optional[str] = None
    status: Optional[str] = None
    company_id: Optional[int] = None
    client_name: Optional[str] = None
    master_name: Optional[str] = None
    purchase_date_from: Optional[datetime.date] = None
    purchase_date_to: Optional[datetime.date] = None
    next_payment_date_from: Optional[datetime.date] = None
    next_payment_date_to: Optional[datetime.date] = None
    is_frozen: Optional[bool] = None
    is_refund: Optional[bool] = None
    is_booked: Optional[bool] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    @field_validator(
        "purchase_date_from", "purchase_date_to",
        "next_payment_date_from", "next_payment_date_to",
        mode="before",
    )
    @classmethod
    def parse_range_bound(cls, v: Any) -> Any:
        if v is None or isinstance(v, datetime.date):
            return v
        if isinstance(v, str) and not v.strip():
            return None
        parsed = parse_date(v)
        if parsed is None:
            raise ValueError(f"Data non valida: {v}")
        return parsed
