"""Rutas de ofertas promocionales y vista previa de descuentos"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
from typing import Dict, List
from uuid import UUID
import logging

from shared.database.session import get_db
from shared.auth.dependencies import get_current_admin
from shared.utils.exceptions import DomainError, to_http_exception
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.promotions.models.promotions import (
    DiscountPreviewRequest,
    DiscountPreviewResponse,
    LineDiscountResponse,
    OfferCreate,
    OfferResponse,
    OfferUpdate,
)
from services.promotions.services.promotions_service import PromotionsService, serialize_offer
from services.purchase.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


@router.get("/offers/active", response_model=List[OfferResponse])
@limiter.limit(RATE_LIMITS["public"])
async def list_active_offers(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Ofertas activas y vigentes en este momento"""
    offers = await PromotionsService.active_offers(db, now=datetime.now(timezone.utc))
    return [OfferResponse(**serialize_offer(o)) for o in offers]


@router.post("/events/{event_id}/discount-preview", response_model=DiscountPreviewResponse)
@limiter.limit(RATE_LIMITS["public"])
async def preview_discount(
    request: Request,
    event_id: UUID,
    payload: DiscountPreviewRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Descuento que aplicaría el checkout al carrito, con precios del catálogo.

    Si viene cupón tiene precedencia sobre cualquier oferta (discount_source).
    """
    lines = [item.to_line() for item in payload.cart_items]
    try:
        resolved = await CheckoutService.preview(db, event_id, lines, payload.coupon_code)
    except DomainError as e:
        raise to_http_exception(e)

    return DiscountPreviewResponse(
        subtotal=float(resolved.subtotal),
        discount_amount=float(resolved.amount),
        total=float(resolved.total),
        discount_source=resolved.source,
        coupon_code=resolved.coupon.code if resolved.coupon else None,
        offer_id=resolved.offer.id if resolved.offer else None,
        offer_name=resolved.offer.name if resolved.offer else None,
        line_discounts=[
            LineDiscountResponse(
                resource_id=resource_id,
                sub_selection_id=sub_selection_id,
                discount_amount=float(amount),
            )
            for (resource_id, sub_selection_id), amount in resolved.line_discounts.items()
        ],
    )


@admin_router.get("/offers", response_model=List[OfferResponse])
async def list_offers(
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    offers = await PromotionsService.list_offers(db)
    return [OfferResponse(**serialize_offer(o)) for o in offers]


@admin_router.post("/offers", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["admin"])
async def create_offer(
    request: Request,
    payload: OfferCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """Crear oferta; porcentaje fuera de (0, 100] -> 400"""
    try:
        offer = await PromotionsService.create_offer(db, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return OfferResponse(**serialize_offer(offer))


@admin_router.put("/offers/{offer_id}", response_model=OfferResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def update_offer(
    request: Request,
    offer_id: UUID,
    payload: OfferUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    try:
        offer = await PromotionsService.update_offer(db, offer_id, payload.model_dump())
    except DomainError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return OfferResponse(**serialize_offer(offer))


@admin_router.delete("/offers/{offer_id}")
@limiter.limit(RATE_LIMITS["admin"])
async def delete_offer(
    request: Request,
    offer_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    try:
        result = await PromotionsService.delete_offer(db, offer_id)
    except DomainError as e:
        raise to_http_exception(e)
    return {"id": str(offer_id), "result": result}
