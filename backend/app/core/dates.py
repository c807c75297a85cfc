"""
Utility per le date
Progetto: Sales Tracker (Abbonamenti e Rate)

Nei record storici le date del piano rate compaiono sia in formato ISO
(YYYY-MM-DD) sia in formato localizzato (DD.MM.YYYY). Questo modulo è
l'unico punto in cui i due formati vengono riconosciuti: il resto del
codice lavora solo con datetime.date.
"""

import datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import settings

DateInput = Union[str, datetime.date, None]


def parse_date(value: DateInput) -> Optional[datetime.date]:
    """
    Converte una data in formato sconosciuto in datetime.date.

    - date/datetime: restituita così com'è (datetime troncato alla data)
    - stringa con '-': ISO YYYY-MM-DD (eventuale parte oraria ignorata)
    - stringa con '.': DD.MM.YYYY (giorno, mese, anno in quest'ordine)

    Qualsiasi altro formato, parte non numerica o data inesistente
    restituisce None. Non solleva mai eccezioni.

    Args:
        value: Stringa o data da normalizzare

    Returns:
        La data corrispondente oppure None
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None

    try:
        if "-" in raw:
            return datetime.date.fromisoformat(raw[:10])
        if "." in raw:
            parts = raw.split(".")
            if len(parts) != 3:
                return None
            day, month, year = (int(p) for p in parts)
            return datetime.date(year, month, day)
    except ValueError:
        return None

    return None


def format_date(value: datetime.date) -> str:
    """Formatta una data come DD.MM.YYYY con zero padding."""
    return f"{value.day:02d}.{value.month:02d}.{value.year:04d}"


def today() -> datetime.date:
    """Data odierna nel fuso orario configurato (ora del giorno scartata)."""
    return datetime.datetime.now(ZoneInfo(settings.app_timezone)).date()
