"""
Logica di business per il piano rate
Progetto: Sales Tracker (Abbonamenti e Rate)

Contiene:
- Decodifica/codifica del piano rate e dello storico salvati come testo JSON
- Calcolo dei giorni di ritardo (overdue_days)
- Rigenerazione delle date previste a partire dalla data di acquisto

Funzioni pure: nessun accesso al database.
"""

import datetime
import json
import logging
from typing import Optional, Sequence, TypeVar

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.dates import DateInput, format_date, parse_date
from app.core.dates import today as current_date
from app.core.exceptions import BusinessValidationError, EmptyScheduleError
from app.schemas.sale import PaymentHistoryEntry, PaymentScheduleEntry, PaymentStatus

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=BaseModel)


# -------------------------------------------------------------------
# Codifica JSON
# -------------------------------------------------------------------

def _decode_entries(
    raw: object,
    entry_type: type[EntryT],
    field_name: str,
) -> tuple[Optional[list[EntryT]], list[str]]:
    if raw is None or raw == "":
        return None, []

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("JSON non valido in %s: %s", field_name, e)
            return None, [f"{field_name}: JSON non valido"]

    if data is None:
        return None, []
    if not isinstance(data, list):
        logger.warning("%s non è una lista: %s", field_name, type(data).__name__)
        return None, [f"{field_name}: formato non riconosciuto"]

    entries: list[EntryT] = []
    warnings: list[str] = []
    for position, item in enumerate(data):
        try:
            entries.append(entry_type.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(
                "Voce %s non valida in %s scartata: %s errori",
                position, field_name, e.error_count(),
            )
            warnings.append(f"{field_name}[{position}]: voce non valida scartata")
    return entries, warnings


def decode_schedule(raw: object) -> tuple[Optional[list[PaymentScheduleEntry]], list[str]]:
    """
    Decodifica il piano rate salvato.

    Un valore corrotto non blocca la lettura della vendita. Se l'intero
    testo non è una lista JSON il piano è trattato come assente; altrimenti
    le voci vengono validate una per una e solo quelle non valide vengono
    scartate. Ogni problema produce un avviso che il chiamante espone al
    client.

    Returns:
        Tuple (voci o None, avvisi)
    """
    return _decode_entries(raw, PaymentScheduleEntry, "payment_schedule")


def decode_history(raw: object) -> tuple[Optional[list[PaymentHistoryEntry]], list[str]]:
    """Decodifica lo storico pagamenti legacy (stesse regole del piano rate)."""
    return _decode_entries(raw, PaymentHistoryEntry, "payment_history")


def encode_entries(entries: Optional[Sequence[BaseModel]]) -> Optional[str]:
    """Serializza una lista di voci nel testo JSON salvato in tabella."""
    if entries is None:
        return None
    return json.dumps(
        [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in entries],
        ensure_ascii=False,
    )


# -------------------------------------------------------------------
# Ritardi
# -------------------------------------------------------------------

def calculate_overdue_days(
    schedule: Optional[Sequence[PaymentScheduleEntry]],
    today: Optional[datetime.date] = None,
) -> int:
    """
    Calcola i giorni di ritardo di una vendita.

    Scorre le rate nell'ordine ricevuto (non riordina per data) e si ferma
    alla prima non pagata: se la sua data prevista è già passata restituisce
    i giorni trascorsi, altrimenti 0. Le rate successive non vengono
    considerate anche se più in ritardo. Una data non interpretabile conta
    come "non in ritardo".

    Args:
        schedule: Piano rate (None o vuoto = nessun piano)
        today: Data di riferimento (default: oggi nel fuso configurato)

    Returns:
        Giorni di ritardo (>= 0)
    """
    if not schedule:
        return 0

    reference = today or current_date()

    for entry in schedule:
        if entry.status == PaymentStatus.PAID:
            continue
        planned = parse_date(entry.planned_date)
        if planned is None:
            logger.warning(
                "Data prevista non interpretabile per la rata %s: %r",
                entry.payment_number, entry.planned_date,
            )
            return 0
        if planned < reference:
            return (reference - planned).days
        return 0

    return 0


# -------------------------------------------------------------------
# Rigenerazione piano
# -------------------------------------------------------------------

def planned_date_for(purchase_date: datetime.date, payment_number: int) -> datetime.date:
    """
    Data della rata n: acquisto + (n - 1) mesi di calendario.

    Se il mese di arrivo è più corto del giorno di acquisto i giorni in
    eccesso scorrono nel mese successivo (31.01 + 1 mese = 02.03 negli
    anni bisestili).
    """
    first_of_month = purchase_date.replace(day=1) + relativedelta(months=payment_number - 1)
    return first_of_month + datetime.timedelta(days=purchase_date.day - 1)


def regenerate_schedule(
    schedule: Optional[Sequence[PaymentScheduleEntry]],
    purchase_date: DateInput,
) -> list[PaymentScheduleEntry]:
    """
    Ricalcola la data prevista di ogni rata dalla data di acquisto.

    La rata n cade n - 1 mesi di calendario dopo l'acquisto (stesso giorno
    del mese; i giorni oltre la fine del mese scorrono nel successivo).
    Tutti gli altri campi della rata restano invariati. Restituisce un
    nuovo piano: l'input non viene modificato.

    Raises:
        EmptyScheduleError: Se il piano è vuoto
        BusinessValidationError: Se la data di acquisto non è valida
    """
    if not schedule:
        raise EmptyScheduleError()

    start = parse_date(purchase_date)
    if start is None:
        raise BusinessValidationError(f"Data di acquisto non valida: {purchase_date}")

    return [
        entry.model_copy(
            update={"planned_date": format_date(planned_date_for(start, entry.payment_number))}
        )
        for entry in schedule
    ]
