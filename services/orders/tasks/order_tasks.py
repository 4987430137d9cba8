"""Tareas Celery de mantenimiento de órdenes e inventario"""
from typing import Dict, List
import logging
import asyncio
from shared.cache.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper para ejecutar coroutines en contexto síncrono de Celery"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _expire_pending_orders() -> List[str]:
    from shared.database.connection import close_db
    from shared.database.session import session_scope
    from services.orders.services.order_service import OrderService

    # Engine por ejecución: cada tarea corre en un event loop nuevo
    try:
        async with session_scope() as db:
            return await OrderService.expire_stale_pending_orders(db)
    finally:
        await close_db()


async def _reconcile_event_inventory(event_id: str) -> Dict[str, Dict[str, int]]:
    from shared.database.connection import close_db
    from shared.database.session import session_scope
    from services.purchase.services.inventory_service import InventoryService

    try:
        async with session_scope() as db:
            return await InventoryService.reconcile(db, event_id)
    finally:
        await close_db()


@celery_app.task(
    name="expire_pending_orders",
    bind=True,
    autoretry_for=(ConnectionError, OSError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def expire_pending_orders_task(self):
    """
    Expirar reservas PENDING vencidas (beat cada ORDER_EXPIRY_INTERVAL_SECONDS)
    y liberar su inventario.
    """
    logger.info("[CELERY] Buscando órdenes PENDING vencidas")
    try:
        expired = run_async(_expire_pending_orders())
    except Exception as e:
        logger.error(f"[CELERY] Error en expire_pending_orders: {e}", exc_info=True)
        raise
    logger.info(f"[CELERY] Órdenes expiradas: {len(expired)}")
    return {"status": "ok", "expired": expired}


@celery_app.task(name="reconcile_event_inventory", bind=True)
def reconcile_event_inventory_task(self, event_id: str):
    """Recalcular contadores de inventario de un evento desde sus órdenes"""
    logger.info(f"[CELERY] Reconciliando inventario del evento {event_id}")
    try:
        corrected = run_async(_reconcile_event_inventory(event_id))
    except Exception as e:
        logger.error(f"[CELERY] Error reconciliando evento {event_id}: {e}", exc_info=True)
        raise
    return {"status": "ok", "event_id": event_id, "corrected": corrected}
