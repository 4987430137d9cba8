"""Servicio de órdenes: consulta, transiciones de estado y expiración de reservas"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

from app.core.config import settings
from shared.database.enums import OrderStatus
from shared.database.models import PurchaseOrder
from shared.utils.exceptions import (
    InsufficientInventoryError,
    InvalidStatusTransitionError,
    LineFailure,
    OrderNotFoundError,
)
from shared.utils.ids import to_uuid, try_uuid
from services.event_catalog.services.catalog_service import CatalogService
from services.purchase.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.COMPLETED.value, OrderStatus.FAILED.value},
    OrderStatus.COMPLETED.value: {OrderStatus.REFUNDED.value},
}


def serialize_order(order: PurchaseOrder) -> Dict:
    return {
        "id": str(order.id),
        "company_id": str(order.company_id),
        "event_id": str(order.event_id),
        "status": order.status,
        "subtotal": float(order.subtotal),
        "discount_total": float(order.discount_total),
        "total_amount": float(order.total_amount),
        "currency": order.currency,
        "payment_method": order.payment_method,
        "offline_payment": order.offline_payment,
        "discount_source": order.discount_source,
        "coupon_id": str(order.coupon_id) if order.coupon_id else None,
        "offer_id": str(order.offer_id) if order.offer_id else None,
        "billing": {
            "name": order.billing_name,
            "email": order.billing_email,
            "phone": order.billing_phone,
            "address1": order.billing_address_line1,
            "address2": order.billing_address_line2,
            "city": order.billing_city,
            "state": order.billing_state,
            "zip": order.billing_zip,
            "country": order.billing_country,
        },
        "payment_reference": order.payment_reference,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "paid_at": order.paid_at,
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id),
                "product_type": item.product_type,
                "sub_selection_id": str(item.sub_selection_id) if item.sub_selection_id else None,
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
                "line_total": float(item.line_total),
                "discount_amount": float(item.discount_amount or 0),
            }
            for item in order.items
        ],
    }


class OrderService:
    """Órdenes de compra producidas por el checkout"""

    @staticmethod
    async def get_order(db: AsyncSession, order_id) -> PurchaseOrder:
        order_uuid = try_uuid(order_id)
        if order_uuid is None:
            raise OrderNotFoundError(str(order_id))
        result = await db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_uuid)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    @staticmethod
    async def list_company_orders(
        db: AsyncSession,
        company_id,
        limit: int = 50,
        offset: int = 0,
    ) -> List[PurchaseOrder]:
        stmt = (
            select(PurchaseOrder)
            .where(PurchaseOrder.company_id == to_uuid(company_id))
            .order_by(PurchaseOrder.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_event_orders(
        db: AsyncSession,
        event_id,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PurchaseOrder]:
        stmt = select(PurchaseOrder).where(PurchaseOrder.event_id == to_uuid(event_id))
        if status:
            stmt = stmt.where(PurchaseOrder.status == status)
        stmt = stmt.order_by(PurchaseOrder.created_at.desc()).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def transition_status(
        db: AsyncSession,
        order_id,
        new_status: str,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PurchaseOrder:
        """
        Cambiar el estado de una orden.

        Permitido: PENDING -> COMPLETED | FAILED, COMPLETED -> REFUNDED.
        El UPDATE es condicional al estado leído, de modo que dos transiciones
        concurrentes no pueden aplicarse ambas. Salir del conjunto de estados
        contados (INVENTORY_COUNTED_STATUSES) libera el inventario de cada ítem;
        entrar en él lo compromete con compare-and-swap y, si no alcanza,
        la transición se deshace completa.

        Raises:
            OrderNotFoundError, InvalidStatusTransitionError, InsufficientInventoryError
        """
        now = now or datetime.now(timezone.utc)
        order = await OrderService.get_order(db, order_id)
        order_uuid, event_uuid, current = order.id, order.event_id, order.status
        items = [(i.product_id, i.sub_selection_id, i.name, i.quantity) for i in order.items]

        if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidStatusTransitionError(current, new_status)

        values = {"status": new_status, "updated_at": now}
        if payment_reference:
            values["payment_reference"] = payment_reference
        if new_status == OrderStatus.COMPLETED.value:
            values["paid_at"] = now

        result = await db.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == order_uuid, PurchaseOrder.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            order = await OrderService.get_order(db, order_uuid)
            raise InvalidStatusTransitionError(order.status, new_status)

        was_counted = InventoryService.is_counted(current)
        is_counted = InventoryService.is_counted(new_status)
        releases_stock = was_counted and not is_counted
        takes_stock = is_counted and not was_counted

        if releases_stock:
            for product_id, sub_selection_id, _name, quantity in items:
                await InventoryService.release(db, event_uuid, product_id, sub_selection_id, quantity)

        if takes_stock:
            failures = []
            for product_id, sub_selection_id, name, quantity in items:
                committed = await InventoryService.commit(db, event_uuid, product_id, sub_selection_id, quantity)
                if not committed:
                    failures.append((product_id, sub_selection_id, name, quantity))
            if failures:
                await db.rollback()
                lines = []
                for product_id, sub_selection_id, name, quantity in failures:
                    availability = await InventoryService.check_availability(
                        db, event_uuid, product_id, sub_selection_id, quantity
                    )
                    lines.append(LineFailure(
                        resource_id=str(product_id),
                        sub_selection_id=str(sub_selection_id) if sub_selection_id else None,
                        name=name,
                        requested=quantity,
                        remaining=availability.remaining,
                        reason="insufficient",
                    ))
                logger.info(f"Order {order_uuid}: {current} -> {new_status} rejected, {len(lines)} line(s) without stock")
                raise InsufficientInventoryError(lines)

        await db.commit()
        logger.info(f"Order {order_uuid}: {current} -> {new_status}")

        if releases_stock or takes_stock:
            await CatalogService.invalidate(event_uuid)
        return await OrderService.get_order(db, order_uuid)

    @staticmethod
    async def expire_stale_pending_orders(
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Marcar como FAILED las reservas PENDING vencidas y liberar su stock.

        TTL: PENDING_ORDER_TTL_MINUTES para pagos online,
        OFFLINE_PENDING_ORDER_TTL_HOURS para transferencia bancaria.

        Returns:
            ids de las órdenes expiradas
        """
        now = now or datetime.now(timezone.utc)
        online_cutoff = now - timedelta(minutes=settings.PENDING_ORDER_TTL_MINUTES)
        offline_cutoff = now - timedelta(hours=settings.OFFLINE_PENDING_ORDER_TTL_HOURS)

        stmt = select(PurchaseOrder.id).where(
            PurchaseOrder.status == OrderStatus.PENDING.value,
            or_(
                and_(PurchaseOrder.offline_payment.is_(False), PurchaseOrder.created_at < online_cutoff),
                and_(PurchaseOrder.offline_payment.is_(True), PurchaseOrder.created_at < offline_cutoff),
            ),
        )
        order_ids = [row for row in (await db.execute(stmt)).scalars().all()]

        expired: List[str] = []
        for order_id in order_ids:
            try:
                await OrderService.transition_status(db, order_id, OrderStatus.FAILED.value, now=now)
                expired.append(str(order_id))
            except InvalidStatusTransitionError as e:
                # Pagada o cancelada entre la consulta y el UPDATE
                logger.info(f"Order {order_id} not expired: {e.message}")

        if expired:
            logger.info(f"Expired {len(expired)} stale pending order(s)")
        return expired
