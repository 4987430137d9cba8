"""Servicio de inventario: contadores de unidades comprometidas por recurso"""
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_, case
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from app.core.config import settings
from shared.database.models import EventResource, OrderItem, PurchaseOrder
from shared.utils.exceptions import ResourceNotFoundError
from shared.utils.ids import to_uuid, try_uuid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Availability:
    ok: bool
    remaining: Optional[int]  # None = ilimitado
    reason: Optional[str] = None  # not_found, invalid_sub_selection, insufficient


class InventoryService:
    """
    Inventario por (evento, recurso, sub-selección).

    Las claves de inventario de una línea son su resource_id y, si viene,
    su sub_selection_id (que debe pertenecer al recurso). Cada clave tiene
    su propio contador quantity_committed; quantity_total NULL = ilimitado.
    """

    @staticmethod
    async def _load_keys(
        db: AsyncSession,
        event_id,
        resource_id,
        sub_selection_id=None,
    ) -> Tuple[List[EventResource], Optional[str]]:
        """Filas de inventario de la línea, o ([], reason) si no son válidas"""
        event_uuid = try_uuid(event_id)
        resource_uuid = try_uuid(resource_id)
        sub_uuid = try_uuid(sub_selection_id) if sub_selection_id is not None else None
        if event_uuid is None or resource_uuid is None:
            return [], "not_found"
        if sub_selection_id is not None and sub_uuid is None:
            return [], "invalid_sub_selection"

        ids = [resource_uuid] + ([sub_uuid] if sub_uuid else [])
        stmt = (
            select(EventResource)
            .where(EventResource.event_id == event_uuid, EventResource.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        rows = {row.id: row for row in result.scalars().all()}

        resource = rows.get(resource_uuid)
        if resource is None:
            return [], "not_found"
        if sub_uuid is None:
            return [resource], None

        sub = rows.get(sub_uuid)
        if sub is None or sub.parent_id != resource.id:
            return [], "invalid_sub_selection"
        return [resource, sub], None

    @staticmethod
    def is_counted(status: str) -> bool:
        """Las órdenes en este estado retienen unidades en los contadores"""
        return status in settings.INVENTORY_COUNTED_STATUSES

    @staticmethod
    def _remaining(rows: Iterable[EventResource]) -> Optional[int]:
        """Mínimo remaining entre claves limitadas; None si todas son ilimitadas"""
        limited = [row.remaining for row in rows if row.quantity_total is not None]
        return min(limited) if limited else None

    @staticmethod
    async def check_availability(
        db: AsyncSession,
        event_id,
        resource_id,
        sub_selection_id=None,
        requested_qty: int = 1,
    ) -> Availability:
        """
        Verificar si hay disponibilidad para la cantidad solicitada

        Returns:
            Availability(ok, remaining, reason)
        """
        rows, reason = await InventoryService._load_keys(db, event_id, resource_id, sub_selection_id)
        if reason:
            return Availability(ok=False, remaining=None, reason=reason)

        remaining = InventoryService._remaining(rows)
        if remaining is None or requested_qty <= remaining:
            return Availability(ok=True, remaining=remaining)
        return Availability(ok=False, remaining=remaining, reason="insufficient")

    @staticmethod
    async def commit(
        db: AsyncSession,
        event_id,
        resource_id,
        sub_selection_id,
        quantity: int,
    ) -> bool:
        """
        Comprometer unidades con compare-and-swap por clave.

        Se ejecuta dentro de la transacción del llamador: si retorna False
        alguna clave pudo haberse incrementado y el llamador debe hacer rollback.
        """
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        event_uuid = to_uuid(event_id)
        keys = [to_uuid(resource_id)]
        if sub_selection_id is not None:
            keys.append(to_uuid(sub_selection_id))

        for key in keys:
            stmt = (
                update(EventResource)
                .where(
                    EventResource.id == key,
                    EventResource.event_id == event_uuid,
                    or_(
                        EventResource.quantity_total.is_(None),
                        EventResource.quantity_committed + quantity <= EventResource.quantity_total,
                    ),
                )
                .values(quantity_committed=EventResource.quantity_committed + quantity)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount != 1:
                logger.info(f"Inventory CAS rejected: resource={key} qty={quantity}")
                return False
        return True

    @staticmethod
    async def release(
        db: AsyncSession,
        event_id,
        resource_id,
        sub_selection_id,
        quantity: int,
    ) -> None:
        """Liberar unidades comprometidas (nunca baja de 0)"""
        event_uuid = to_uuid(event_id)
        keys = [to_uuid(resource_id)]
        if sub_selection_id is not None:
            keys.append(to_uuid(sub_selection_id))

        for key in keys:
            stmt = (
                update(EventResource)
                .where(EventResource.id == key, EventResource.event_id == event_uuid)
                .values(
                    quantity_committed=case(
                        (EventResource.quantity_committed >= quantity,
                         EventResource.quantity_committed - quantity),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            await db.execute(stmt)

    @staticmethod
    async def committed_quantity(
        db: AsyncSession,
        event_id,
        resource_id,
        statuses: Optional[Iterable[str]] = None,
    ) -> int:
        """Suma de cantidades en órdenes con estado contado que referencian el recurso"""
        statuses = list(statuses or settings.INVENTORY_COUNTED_STATUSES)
        resource_uuid = to_uuid(resource_id)
        stmt = (
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(PurchaseOrder, OrderItem.order_id == PurchaseOrder.id)
            .where(
                PurchaseOrder.event_id == to_uuid(event_id),
                PurchaseOrder.status.in_(statuses),
                or_(OrderItem.product_id == resource_uuid, OrderItem.sub_selection_id == resource_uuid),
            )
        )
        result = await db.execute(stmt)
        return int(result.scalar() or 0)

    @staticmethod
    async def audit(db: AsyncSession, event_id, resource_id) -> Dict:
        """Contador de un recurso frente a la suma derivada de sus órdenes; no corrige nada"""
        event_uuid = to_uuid(event_id)
        resource_uuid = to_uuid(resource_id)
        result = await db.execute(
            select(EventResource)
            .where(EventResource.id == resource_uuid, EventResource.event_id == event_uuid)
            .execution_options(populate_existing=True)
        )
        resource = result.scalar_one_or_none()
        if resource is None:
            raise ResourceNotFoundError(str(resource_id))

        derived = await InventoryService.committed_quantity(db, event_uuid, resource_uuid)
        return {
            "event_id": str(event_uuid),
            "resource_id": str(resource_uuid),
            "quantity_total": resource.quantity_total,
            "quantity_committed": resource.quantity_committed,
            "derived_committed": derived,
            "drift": resource.quantity_committed - derived,
        }

    @staticmethod
    async def reconcile(db: AsyncSession, event_id) -> Dict[str, Dict[str, int]]:
        """
        Recalcular todos los contadores del evento a partir de las órdenes
        en estados contados. Reparación administrativa.

        Returns:
            {resource_id: {"before": n, "after": m}} sólo para los contadores corregidos
        """
        event_uuid = to_uuid(event_id)
        statuses = list(settings.INVENTORY_COUNTED_STATUSES)

        totals: Dict = {}
        for column in (OrderItem.product_id, OrderItem.sub_selection_id):
            stmt = (
                select(column, func.sum(OrderItem.quantity))
                .join(PurchaseOrder, OrderItem.order_id == PurchaseOrder.id)
                .where(
                    PurchaseOrder.event_id == event_uuid,
                    PurchaseOrder.status.in_(statuses),
                    column.is_not(None),
                )
                .group_by(column)
            )
            for resource_uuid, quantity in (await db.execute(stmt)).all():
                totals[resource_uuid] = totals.get(resource_uuid, 0) + int(quantity or 0)

        result = await db.execute(
            select(EventResource)
            .where(EventResource.event_id == event_uuid)
            .execution_options(populate_existing=True)
        )
        changes: Dict[str, Dict[str, int]] = {}
        for resource in result.scalars().all():
            expected = totals.get(resource.id, 0)
            if resource.quantity_committed != expected:
                changes[str(resource.id)] = {"before": resource.quantity_committed, "after": expected}
                resource.quantity_committed = expected

        await db.commit()
        if changes:
            logger.warning(f"Inventory reconciled for event {event_id}: {len(changes)} counters corrected")
        else:
            logger.info(f"Inventory reconciled for event {event_id}: no drift")
        return changes
