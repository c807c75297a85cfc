"""
Service Layer per l'entità Sale
Progetto: Sales Tracker (Abbonamenti e Rate)

Definisce la logica di business per la gestione delle vendite:
- Ricerca con filtri e ordinamento su lista di campi ammessi
- Creazione con ricalcolo dei giorni di ritardo
- Aggiornamento parziale tramite SalePatch (un solo UPDATE dichiarativo)
- Cancellazione fisica
- Rigenerazione del piano rate e registrazione rimborsi
"""

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BusinessValidationError,
    EmptyScheduleError,
    NotFoundError,
    StorageError,
)
from app.models import Sale
from app.schemas.sale import (
    SaleCreate,
    SaleFilters,
    SaleRead,
    SaleUpdate,
    SortField,
    SortOrder,
)
from app.services.schedule_service import (
    calculate_overdue_days,
    decode_history,
    decode_schedule,
    encode_entries,
    regenerate_schedule,
)

logger = logging.getLogger(__name__)


# Colonne su cui è ammesso l'ordinamento
SORT_COLUMNS = {
    SortField.PURCHASE_DATE.value: Sale.purchase_date,
    SortField.NEXT_PAYMENT_DATE.value: Sale.next_payment_date,
    SortField.TOTAL_COST.value: Sale.total_cost,
    SortField.CLIENT_NAME.value: Sale.client_name,
    SortField.MASTER_NAME.value: Sale.master_name,
    SortField.STATUS.value: Sale.status,
    SortField.OVERDUE_DAYS.value: Sale.overdue_days,
}


@dataclass(frozen=True)
class SalePatch:
    """
    Insieme di modifiche da applicare a una vendita.

    Contiene solo le colonne da impostare: un campo assente resta invariato.
    Viene costruito una volta dai campi presenti nella richiesta e applicato
    con un unico UPDATE. Se cambia il piano rate, overdue_days viene
    ricalcolato e incluso nella stessa modifica.
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_update(
        cls,
        data: SaleUpdate,
        today: Optional[datetime.date] = None,
    ) -> "SalePatch":
        values: dict[str, Any] = {}
        for name in data.model_fields_set:
            value = getattr(data, name)
            if name == "payment_schedule":
                values["payment_schedule"] = encode_entries(value)
                values["overdue_days"] = calculate_overdue_days(value, today=today)
            elif name == "payment_history":
                values["payment_history"] = encode_entries(value)
            elif name == "status":
                values["status"] = value.value
            else:
                values[name] = value
        return cls(values)

    @property
    def is_empty(self) -> bool:
        return not self.values

    @property
    def touches_schedule(self) -> bool:
        return "payment_schedule" in self.values


class SaleService:
    """
    Service per le operazioni CRUD sulle vendite.

    Metodi asincroni senza dipendenze da FastAPI; la sessione viene
    passata dal chiamante. Il commit resta al router, come per le
    altre operazioni di scrittura.
    """

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------

    async def get_all(
        self,
        db: AsyncSession,
        filters: Optional[SaleFilters] = None,
    ) -> list[Sale]:
        """
        Recupera le vendite filtrate e ordinate.

        La ricerca libera trova il telefono per sottostringa oppure
        l'ID vendita esatto se il termine è numerico. Un sortBy non
        ammesso ricade su purchase_date discendente.

        Args:
            db: Sessione database
            filters: Filtri opzionali

        Returns:
            Lista di Sale
        """
        filters = filters or SaleFilters()
        conditions = []

        if filters.search:
            term = filters.search.strip()
            search_conditions = [Sale.client_phone.ilike(f"%{term}%")]
            if term.isdigit():
                search_conditions.append(Sale.sale_id == int(term))
            conditions.append(or_(*search_conditions))

        if filters.status and filters.status != "all":
            conditions.append(Sale.status == filters.status)

        if filters.company_id is not None:
            conditions.append(Sale.yclients_company_id == filters.company_id)

        if filters.client_name:
            conditions.append(Sale.client_name.ilike(f"%{filters.client_name.strip()}%"))

        if filters.master_name:
            conditions.append(Sale.master_name.ilike(f"%{filters.master_name.strip()}%"))

        if filters.purchase_date_from:
            conditions.append(Sale.purchase_date >= filters.purchase_date_from)
        if filters.purchase_date_to:
            conditions.append(Sale.purchase_date <= filters.purchase_date_to)

        if filters.next_payment_date_from:
            conditions.append(Sale.next_payment_date >= filters.next_payment_date_from)
        if filters.next_payment_date_to:
            conditions.append(Sale.next_payment_date <= filters.next_payment_date_to)

        if filters.is_frozen is not None:
            conditions.append(Sale.is_frozen == filters.is_frozen)
        if filters.is_refund is not None:
            conditions.append(Sale.is_refund == filters.is_refund)
        if filters.is_booked is not None:
            conditions.append(Sale.booked == filters.is_booked)

        query = select(Sale).order_by(*self._ordering(filters.sort_by, filters.sort_order))
        if conditions:
            query = query.where(*conditions)

        try:
            result = await db.execute(query)
            sales = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy lettura vendite: %s - %s", e.__class__.__name__, e)
            raise StorageError("Impossibile recuperare l'elenco delle vendite")

        logger.info("Recuperate %s vendite (filtri: %s)", len(sales), filters.model_dump(exclude_none=True))
        return sales

    @staticmethod
    def _ordering(sort_by: Optional[str], sort_order: Optional[str]) -> list:
        column = SORT_COLUMNS.get(sort_by or "")
        if column is None:
            return [Sale.purchase_date.desc(), Sale.id.desc()]
        if sort_order == SortOrder.ASC.value:
            return [column.asc(), Sale.id.asc()]
        return [column.desc(), Sale.id.desc()]

    async def get_by_id(self, db: AsyncSession, sale_pk: int) -> Sale:
        """
        Recupera una vendita tramite ID interno.

        Raises:
            NotFoundError: Se la vendita non esiste
        """
        query = (
            select(Sale)
            .where(Sale.id == sale_pk)
            .execution_options(populate_existing=True)
        )
        try:
            result = await db.execute(query)
            sale = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy lettura vendita %s: %s", sale_pk, e)
            raise StorageError("Impossibile recuperare i dati della vendita")

        if sale is None:
            logger.warning("Vendita non trovata: %s", sale_pk)
            raise NotFoundError(f"Vendita con ID {sale_pk} non trovata")

        return sale

    # ------------------------------------------------------------
    # Scrittura
    # ------------------------------------------------------------

    async def create(
        self,
        db: AsyncSession,
        sale_data: SaleCreate,
        today: Optional[datetime.date] = None,
    ) -> Sale:
        """
        Crea una nuova vendita.

        Il piano rate e lo storico vengono serializzati in JSON; overdue_days
        è calcolato dal piano (0 se assente).

        Raises:
            StorageError: Se il database genera un errore
        """
        sale_dict = sale_data.model_dump(exclude={"payment_schedule", "payment_history"})
        sale_dict["status"] = sale_data.status.value
        sale = Sale(
            **sale_dict,
            payment_schedule=encode_entries(sale_data.payment_schedule),
            payment_history=encode_entries(sale_data.payment_history),
            overdue_days=calculate_overdue_days(sale_data.payment_schedule, today=today),
        )

        try:
            db.add(sale)
            await db.flush()
            await db.refresh(sale)
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy creazione vendita: %s - %s", e.__class__.__name__, e)
            await db.rollback()
            raise StorageError("Impossibile creare la vendita")

        logger.info(
            "Creata nuova vendita: %s (sale_id: %s, lead: %s, costo: %s)",
            sale.id, sale.sale_id, sale.amocrm_lead_id, sale.total_cost,
        )
        return sale

    async def update(
        self,
        db: AsyncSession,
        sale_pk: int,
        sale_data: SaleUpdate,
        today: Optional[datetime.date] = None,
    ) -> Sale:
        """
        Aggiorna parzialmente una vendita.

        Solo i campi inviati vengono scritti. Non c'è lettura preventiva né
        controllo di versione: due aggiornamenti concorrenti dello stesso
        campo si sovrascrivono (vince l'ultimo).

        Raises:
            NotFoundError: Se la vendita non esiste
            StorageError: Se il database genera un errore
        """
        patch = SalePatch.from_update(sale_data, today=today)
        return await self.apply_patch(db, sale_pk, patch)

    async def apply_patch(self, db: AsyncSession, sale_pk: int, patch: SalePatch) -> Sale:
        """Applica un SalePatch con un solo UPDATE e restituisce la vendita aggiornata."""
        if patch.is_empty:
            return await self.get_by_id(db, sale_pk)

        stmt = (
            update(Sale)
            .where(Sale.id == sale_pk)
            .values(**patch.values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy aggiornamento vendita %s: %s", sale_pk, e)
            await db.rollback()
            raise StorageError("Impossibile aggiornare la vendita")

        if result.rowcount == 0:
            logger.warning("Aggiornamento di vendita inesistente: %s", sale_pk)
            raise NotFoundError(f"Vendita con ID {sale_pk} non trovata")

        logger.info(
            "Aggiornata vendita %s: campi %s%s",
            sale_pk,
            sorted(patch.values),
            f" (overdue_days={patch.values['overdue_days']})" if patch.touches_schedule else "",
        )
        return await self.get_by_id(db, sale_pk)

    async def delete(self, db: AsyncSession, sale_pk: int) -> bool:
        """
        Elimina fisicamente una vendita.

        Returns:
            True se una riga è stata eliminata

        Raises:
            NotFoundError: Se la vendita non esiste
        """
        try:
            result = await db.execute(delete(Sale).where(Sale.id == sale_pk))
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy eliminazione vendita %s: %s", sale_pk, e)
            await db.rollback()
            raise StorageError("Impossibile eliminare la vendita")

        if result.rowcount == 0:
            logger.warning("Eliminazione di vendita inesistente: %s", sale_pk)
            raise NotFoundError(f"Vendita con ID {sale_pk} non trovata")

        logger.info("Eliminata vendita %s", sale_pk)
        return True

    async def regenerate_schedule(
        self,
        db: AsyncSession,
        sale_pk: int,
        today: Optional[datetime.date] = None,
    ) -> tuple[Sale, Optional[str]]:
        """
        Ricalcola le date previste del piano dalla data di acquisto e le salva.

        Un piano vuoto non viene considerato un errore: la vendita torna
        invariata insieme al messaggio "nulla da rigenerare". Un piano con
        voci illeggibili invece non viene riscritto, perché la riscrittura
        perderebbe le voci scartate.

        Returns:
            Tuple (vendita, avviso o None se il piano è stato rigenerato)

        Raises:
            NotFoundError: Se la vendita non esiste
            BusinessValidationError: Se il piano salvato contiene dati non validi
        """
        sale = await self.get_by_id(db, sale_pk)
        schedule, warnings = decode_schedule(sale.payment_schedule)
        if warnings:
            logger.warning("Rigenerazione rifiutata per la vendita %s: %s", sale_pk, warnings)
            raise BusinessValidationError(
                "Il piano rate salvato contiene dati non validi: correggerlo prima di rigenerarlo",
                extra={"warnings": warnings},
            )

        try:
            regenerated = regenerate_schedule(schedule, sale.purchase_date)
        except EmptyScheduleError as e:
            logger.info("Vendita %s: %s", sale_pk, e.detail)
            return sale, e.detail

        patch = SalePatch({
            "payment_schedule": encode_entries(regenerated),
            "overdue_days": calculate_overdue_days(regenerated, today=today),
        })
        logger.info("Rigenerato piano rate della vendita %s (%s rate)", sale_pk, len(regenerated))
        return await self.apply_patch(db, sale_pk, patch), None

    async def register_refund(self, db: AsyncSession, sale_pk: int, amount: Decimal) -> Sale:
        """Segna la vendita come rimborsata e salva l'importo."""
        patch = SalePatch({"is_refund": True, "summa_vozvrata": amount})
        return await self.apply_patch(db, sale_pk, patch)

    # ------------------------------------------------------------
    # Serializzazione
    # ------------------------------------------------------------

    @staticmethod
    def to_read(sale: Sale) -> SaleRead:
        """
        Converte il modello in SaleRead decodificando i campi JSON.

        Un piano o uno storico illeggibile diventa None, una singola voce non
        valida viene scartata; in entrambi i casi il motivo finisce in
        parse_warnings, così il client distingue "nessun piano" da "piano
        corrotto".
        """
        schedule, schedule_warnings = decode_schedule(sale.payment_schedule)
        history, history_warnings = decode_history(sale.payment_history)
        warnings = schedule_warnings + history_warnings
        if warnings:
            logger.warning("Vendita %s con dati JSON non validi: %s", sale.id, warnings)

        data = {
            column.key: getattr(sale, column.key)
            for column in Sale.__table__.columns
        }
        data.update(
            payment_schedule=schedule,
            payment_history=history,
            overdue_days=sale.overdue_days or 0,
            parse_warnings=warnings,
        )
        return SaleRead.model_validate(data)
