"""Servicio del catálogo de recursos por evento"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Dict, Iterable, List
from uuid import UUID
import logging

from app.core.config import settings
from shared.database.models import Event, EventResource
from shared.cache.redis_client import cache_get, cache_set, cache_delete
from shared.utils.exceptions import EventNotFoundError
from shared.utils.ids import to_uuid, try_uuid

logger = logging.getLogger(__name__)


def catalog_cache_key(event_id) -> str:
    return f"catalog:event:{event_id}"


def serialize_resource(resource: EventResource) -> Dict:
    return {
        "id": str(resource.id),
        "event_id": str(resource.event_id),
        "resource_type": resource.resource_type,
        "parent_id": str(resource.parent_id) if resource.parent_id else None,
        "name": resource.name,
        "description": resource.description,
        "unit_price": float(resource.unit_price),
        "quantity_total": resource.quantity_total,
        "quantity_committed": resource.quantity_committed or 0,
        "remaining": resource.remaining,
        "image_url": resource.image_url,
        "sort_order": resource.sort_order or 0,
    }


class CatalogService:
    """Lectura del catálogo (tickets, booths, sponsors, hoteles) de un evento"""

    @staticmethod
    async def get_event(db: AsyncSession, event_id) -> Event:
        event = await db.get(Event, to_uuid(event_id))
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    @staticmethod
    async def list_resources(db: AsyncSession, event_id) -> List[EventResource]:
        """
        Recursos del evento ordenados por tipo, sort_order y nombre.

        Raises:
            EventNotFoundError: si el evento no existe
        """
        event = await CatalogService.get_event(db, event_id)
        stmt = (
            select(EventResource)
            .where(EventResource.event_id == event.id)
            .order_by(EventResource.resource_type, EventResource.sort_order, EventResource.name)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_resources(
        db: AsyncSession,
        event_id,
        ids: Iterable,
    ) -> Dict[UUID, EventResource]:
        """Recursos del evento indexados por id; ids inválidos o ajenos al evento se omiten"""
        wanted = {uuid_ for uuid_ in (try_uuid(i) for i in ids) if uuid_ is not None}
        if not wanted:
            return {}
        stmt = (
            select(EventResource)
            .where(EventResource.event_id == to_uuid(event_id), EventResource.id.in_(wanted))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return {resource.id: resource for resource in result.scalars().all()}

    @staticmethod
    async def get_catalog(db: AsyncSession, event_id) -> Dict:
        """Catálogo serializado con remaining; cacheado en Redis"""
        cache_key = catalog_cache_key(event_id)
        cached = await cache_get(cache_key)
        if cached:
            return cached

        event = await CatalogService.get_event(db, event_id)
        resources = await CatalogService.list_resources(db, event.id)
        data = {
            "event_id": str(event.id),
            "event_name": event.name,
            "currency": settings.CURRENCY,
            "resources": [serialize_resource(r) for r in resources],
        }
        await cache_set(cache_key, data, expire=settings.CATALOG_CACHE_TTL_SECONDS)
        return data

    @staticmethod
    async def invalidate(event_id) -> None:
        await cache_delete(catalog_cache_key(event_id))
        logger.debug(f"Catalog cache invalidated for event {event_id}")
