"""
Router FastAPI per l'entità Sale
Progetto: Sales Tracker (Abbonamenti e Rate)

Definisce gli endpoint API per la gestione delle vendite.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.sale import (
    RefundRequest,
    SaleCreate,
    SaleFilters,
    SaleRead,
    SaleUpdate,
    ScheduleRegenerationRead,
)
from app.services.sale_service import SaleService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sales",
    tags=["Vendite"],
)


# -------------------------------------------------------------------
# Dependency Injection
# -------------------------------------------------------------------

def get_sale_service() -> SaleService:
    """
    Dependency per ottenere un'istanza del SaleService.

    Permette di sostituire il service nei test tramite dependency_overrides.
    """
    return SaleService()


# -------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------

@router.get(
    "",
    name="vendite_lista",
    summary="Lista vendite",
    description="Recupera le vendite con filtri di ricerca e ordinamento.",
    response_model=list[SaleRead],
    status_code=status.HTTP_200_OK,
)
async def get_sales(
    search: Optional[str] = Query(None, description="Telefono (sottostringa) o ID vendita"),
    sale_status: Optional[str] = Query(None, alias="status", description="Stato o 'all'"),
    company_id: Optional[int] = Query(None, alias="companyId"),
    client_name: Optional[str] = Query(None, alias="clientName"),
    master_name: Optional[str] = Query(None, alias="masterName"),
    purchase_date_from: Optional[str] = Query(None, alias="purchaseDateFrom"),
    purchase_date_to: Optional[str] = Query(None, alias="purchaseDateTo"),
    next_payment_date_from: Optional[str] = Query(None, alias="nextPaymentDateFrom"),
    next_payment_date_to: Optional[str] = Query(None, alias="nextPaymentDateTo"),
    is_frozen: Optional[bool] = Query(None, alias="isFrozen"),
    is_refund: Optional[bool] = Query(None, alias="isRefund"),
    is_booked: Optional[bool] = Query(None, alias="isBooked"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> list[SaleRead]:
    """
    Recupera la lista delle vendite.

    Nessuna paginazione lato server: il frontend pagina in locale.
    """
    filters = SaleFilters(
        search=search,
        status=sale_status,
        company_id=company_id,
        client_name=client_name,
        master_name=master_name,
        purchase_date_from=purchase_date_from,
        purchase_date_to=purchase_date_to,
        next_payment_date_from=next_payment_date_from,
        next_payment_date_to=next_payment_date_to,
        is_frozen=is_frozen,
        is_refund=is_refund,
        is_booked=is_booked,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    sales = await service.get_all(db=db, filters=filters)
    return [service.to_read(s) for s in sales]


@router.get(
    "/{sale_pk}",
    name="vendita_dettaglio",
    summary="Dettaglio vendita",
    response_model=SaleRead,
    status_code=status.HTTP_200_OK,
)
async def get_sale(
    sale_pk: int,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> SaleRead:
    """
    Recupera i dettagli di una vendita.

    Raises:
        NotFoundError: Se la vendita non esiste
    """
    sale = await service.get_by_id(db=db, sale_pk=sale_pk)
    return service.to_read(sale)


@router.post(
    "",
    name="vendita_crea",
    summary="Crea vendita",
    response_model=SaleRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_sale(
    sale_data: SaleCreate,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> SaleRead:
    """Crea una nuova vendita. I dati non validi restituiscono 400."""
    sale = await service.create(db=db, sale_data=sale_data)
    await db.commit()
    return service.to_read(sale)


@router.patch(
    "/{sale_pk}",
    name="vendita_aggiorna",
    summary="Aggiorna vendita",
    description="Aggiorna solo i campi inviati. Se cambia il piano rate, ricalcola i giorni di ritardo.",
    response_model=SaleRead,
    status_code=status.HTTP_200_OK,
)
async def update_sale(
    sale_pk: int,
    sale_data: SaleUpdate,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> SaleRead:
    """
    Aggiorna parzialmente una vendita.

    Raises:
        NotFoundError: Se la vendita non esiste
    """
    sale = await service.update(db=db, sale_pk=sale_pk, sale_data=sale_data)
    await db.commit()
    return service.to_read(sale)


@router.delete(
    "/{sale_pk}",
    name="vendita_elimina",
    summary="Elimina vendita",
    description="Elimina fisicamente una vendita.",
    status_code=status.HTTP_200_OK,
)
async def delete_sale(
    sale_pk: int,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> dict[str, bool]:
    deleted = await service.delete(db=db, sale_pk=sale_pk)
    await db.commit()
    return {"success": deleted}


@router.post(
    "/{sale_pk}/regenerate-schedule",
    name="vendita_rigenera_piano",
    summary="Rigenera piano rate",
    description=(
        "Ricalcola le date previste di tutte le rate dalla data di acquisto. "
        "Con un piano vuoto la vendita resta invariata e detail spiega il motivo."
    ),
    response_model=ScheduleRegenerationRead,
    status_code=status.HTTP_200_OK,
)
async def regenerate_sale_schedule(
    sale_pk: int,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> ScheduleRegenerationRead:
    """
    Raises:
        NotFoundError: Se la vendita non esiste
        BusinessValidationError: Se il piano salvato contiene voci non valide (422)
    """
    sale, notice = await service.regenerate_schedule(db=db, sale_pk=sale_pk)
    if notice is None:
        await db.commit()
    return ScheduleRegenerationRead(
        regenerated=notice is None,
        detail=notice,
        sale=service.to_read(sale),
    )


@router.post(
    "/{sale_pk}/refund",
    name="vendita_rimborso",
    summary="Registra rimborso",
    response_model=SaleRead,
    status_code=status.HTTP_200_OK,
)
async def refund_sale(
    sale_pk: int,
    refund: RefundRequest,
    db: AsyncSession = Depends(get_db),
    service: SaleService = Depends(get_sale_service),
) -> SaleRead:
    """Segna la vendita come rimborsata con l'importo indicato."""
    sale = await service.register_refund(db=db, sale_pk=sale_pk, amount=refund.amount)
    await db.commit()
    return service.to_read(sale)
