"""Rutas del catálogo de recursos de un evento"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging

from shared.database.session import get_db
from shared.utils.exceptions import DomainError, to_http_exception
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.event_catalog.models.catalog import CatalogResponse, AvailabilityResponse
from services.event_catalog.services.catalog_service import CatalogService
from services.purchase.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{event_id}/resources", response_model=CatalogResponse)
@limiter.limit(RATE_LIMITS["public"])
async def list_event_resources(
    request: Request,
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """
    Catálogo del evento: tickets, booths (y sub-tipos), sponsors, hoteles
    (y tipos de habitación) con unidades restantes.

    Cache: Redis por CATALOG_CACHE_TTL_SECONDS, invalidado tras cada checkout.
    """
    try:
        data = await CatalogService.get_catalog(db, event_id)
    except DomainError as e:
        raise to_http_exception(e)
    return CatalogResponse(**data)


@router.get(
    "/{event_id}/resources/{resource_id}/availability",
    response_model=AvailabilityResponse,
)
@limiter.limit(RATE_LIMITS["public"])
async def get_resource_availability(
    request: Request,
    event_id: UUID,
    resource_id: UUID,
    sub_selection_id: Optional[UUID] = Query(None, description="Tipo de habitación o sub-tipo de booth"),
    quantity: int = Query(1, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Disponibilidad actual (sin cache) para una línea del carrito"""
    availability = await InventoryService.check_availability(
        db, event_id, resource_id, sub_selection_id, quantity
    )
    return AvailabilityResponse(
        resource_id=str(resource_id),
        sub_selection_id=str(sub_selection_id) if sub_selection_id else None,
        requested=quantity,
        ok=availability.ok,
        remaining=availability.remaining,
        reason=availability.reason,
    )
