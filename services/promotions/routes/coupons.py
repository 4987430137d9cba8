"""Rutas de cupones: validación pública y administración"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List
from uuid import UUID
import logging

from shared.database.session import get_db
from shared.auth.dependencies import get_current_admin
from shared.utils.exceptions import DomainError, to_http_exception
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.event_catalog.services.catalog_service import CatalogService
from services.promotions.models.promotions import (
    ApplyCouponRequest,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
)
from services.promotions.services.promotions_service import PromotionsService, serialize_coupon

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


@router.post("/events/{event_id}/apply-coupon", response_model=CouponResponse)
@limiter.limit(RATE_LIMITS["coupon"])
async def apply_coupon(
    request: Request,
    event_id: UUID,
    payload: ApplyCouponRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Validar un código de cupón (sin distinguir mayúsculas).

    404 si no existe o está inactivo. El monto se calcula en el checkout.
    """
    try:
        await CatalogService.get_event(db, event_id)
        coupon = await PromotionsService.find_coupon(db, payload.code)
    except DomainError as e:
        raise to_http_exception(e)
    return CouponResponse(**serialize_coupon(coupon))


@admin_router.get("/coupons", response_model=List[CouponResponse])
async def list_coupons(
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    coupons = await PromotionsService.list_coupons(db)
    return [CouponResponse(**serialize_coupon(c)) for c in coupons]


@admin_router.post("/coupons", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["admin"])
async def create_coupon(
    request: Request,
    payload: CouponCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    try:
        coupon = await PromotionsService.create_coupon(db, payload.model_dump())
    except DomainError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CouponResponse(**serialize_coupon(coupon))


@admin_router.put("/coupons/{coupon_id}", response_model=CouponResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def update_coupon(
    request: Request,
    coupon_id: UUID,
    payload: CouponUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    try:
        coupon = await PromotionsService.update_coupon(db, coupon_id, payload.model_dump())
    except DomainError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CouponResponse(**serialize_coupon(coupon))


@admin_router.delete("/coupons/{coupon_id}")
@limiter.limit(RATE_LIMITS["admin"])
async def delete_coupon(
    request: Request,
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """Eliminar cupón; si ya fue usado en órdenes se desactiva"""
    try:
        result = await PromotionsService.delete_coupon(db, coupon_id)
    except DomainError as e:
        raise to_http_exception(e)
    return {"id": str(coupon_id), "result": result}
