"""Rutas de órdenes de compra"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Literal, Optional
from uuid import UUID
import logging

from shared.database.session import get_db
from shared.auth.dependencies import ensure_company_access, get_current_user, get_current_admin
from shared.utils.exceptions import DomainError, to_http_exception
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.orders.models.order import (
    OrderResponse,
    OrderStatusUpdate,
    InventoryAuditResponse,
    ReconcileResponse,
)
from services.orders.services.order_service import OrderService, serialize_order
from services.purchase.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user),
):
    """Detalle de una orden (empresa dueña o admin)"""
    try:
        order = await OrderService.get_order(db, order_id)
    except DomainError as e:
        raise to_http_exception(e)
    ensure_company_access(current_user, order.company_id, detail="No tienes acceso a las órdenes de esta empresa")
    return OrderResponse(**serialize_order(order))


@router.get("/companies/{company_id}/orders", response_model=List[OrderResponse])
async def list_company_orders(
    company_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user),
):
    """Órdenes de una empresa, más recientes primero"""
    ensure_company_access(current_user, company_id, detail="No tienes acceso a las órdenes de esta empresa")
    orders = await OrderService.list_company_orders(db, company_id, limit=limit, offset=offset)
    return [OrderResponse(**serialize_order(o)) for o in orders]


@admin_router.get("/events/{event_id}/orders", response_model=List[OrderResponse])
@limiter.limit(RATE_LIMITS["admin"])
async def list_event_orders(
    request: Request,
    event_id: UUID,
    status_filter: Optional[Literal["PENDING", "COMPLETED", "FAILED", "REFUNDED"]] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """Órdenes de un evento para reportes (admin)"""
    orders = await OrderService.list_event_orders(
        db, event_id, status=status_filter, limit=limit, offset=offset
    )
    return [OrderResponse(**serialize_order(o)) for o in orders]


@admin_router.patch("/orders/{order_id}/status", response_model=OrderResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def update_order_status(
    request: Request,
    order_id: UUID,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """
    Cambiar estado de una orden (confirmación de pago, rechazo o reembolso).

    Salir de INVENTORY_COUNTED_STATUSES libera el inventario de la orden;
    entrar compromete stock y responde 409 si ya no alcanza.
    """
    try:
        order = await OrderService.transition_status(
            db, order_id, payload.status, payment_reference=payload.payment_reference
        )
    except DomainError as e:
        raise to_http_exception(e)
    logger.info(f"Admin {current_user.get('user_id')} set order {order_id} to {payload.status}")
    return OrderResponse(**serialize_order(order))


@admin_router.post("/events/{event_id}/inventory/reconcile", response_model=ReconcileResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def reconcile_event_inventory(
    request: Request,
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """Recalcular los contadores de inventario del evento desde sus órdenes"""
    corrected = await InventoryService.reconcile(db, event_id)
    return ReconcileResponse(event_id=str(event_id), corrected=corrected)


@admin_router.get("/events/{event_id}/inventory/{resource_id}", response_model=InventoryAuditResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def audit_resource_inventory(
    request: Request,
    event_id: UUID,
    resource_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin),
):
    """Comparar el contador de un recurso con lo que suman sus órdenes contadas, sin corregir"""
    try:
        audit = await InventoryService.audit(db, event_id, resource_id)
    except DomainError as e:
        raise to_http_exception(e)
    return InventoryAuditResponse(**audit)
