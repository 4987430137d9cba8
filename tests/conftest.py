"""Fixtures: SQLite temporal por test, catálogo de ejemplo y cache deshabilitado."""
import asyncio
import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

# Configuración antes de importar la app (Settings se instancia al importar)
_DEFAULT_DB = os.path.join(tempfile.gettempdir(), "event_commerce_test_default.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DEFAULT_DB}"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["APP_ENV"] = "test"

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from shared.database.connection import Base
from shared.database.models import (
    Company,
    Coupon,
    Event,
    EventResource,
    PromotionalOffer,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def no_cache():
    """Redis fuera de las pruebas: get siempre miss, set/delete no-op"""
    base = "services.event_catalog.services.catalog_service"
    with patch(f"{base}.cache_get", new=AsyncMock(return_value=None)) as get_mock, \
         patch(f"{base}.cache_set", new=AsyncMock()) as set_mock, \
         patch(f"{base}.cache_delete", new=AsyncMock()) as delete_mock:
        yield SimpleNamespace(get=get_mock, set=set_mock, delete=delete_mock)


def _resource(event, resource_type, name, price, total=None, parent=None, sort_order=0):
    return EventResource(
        event=event,
        resource_type=resource_type,
        parent=parent,
        name=name,
        unit_price=Decimal(price),
        quantity_total=total,
        quantity_committed=0,
        sort_order=sort_order,
    )


@pytest.fixture
def catalog(session_factory):
    """
    Evento con: ticket (100 u. a 50), hotel contenedor ilimitado con tipo de
    habitación (10 u. a 100), booth (5 u. a 200) con sub-tipo (2 u. a 250),
    sponsors Gold (1 u. a 1000) y Silver (3 u. a 500), y una empresa compradora.
    """
    async def seed():
        async with session_factory() as db:
            event = Event(
                name="Expo Industrial 2026",
                location_text="Centro de Convenciones",
                starts_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
                ends_at=datetime(2026, 6, 3, tzinfo=timezone.utc),
            )
            ticket = _resource(event, "TICKET", "Pase General", "50.00", total=100)
            hotel = _resource(event, "HOTEL", "Hotel Plaza", "0.00")
            room = _resource(event, "HOTEL_ROOM_TYPE", "Doble", "100.00", total=10, parent=hotel)
            booth = _resource(event, "BOOTH", "Stand Estándar", "200.00", total=5)
            booth_corner = _resource(event, "BOOTH_SUB_TYPE", "Esquina", "250.00", total=2, parent=booth)
            gold = _resource(event, "SPONSOR", "Gold", "1000.00", total=1, sort_order=1)
            silver = _resource(event, "SPONSOR", "Silver", "500.00", total=3, sort_order=2)
            company = Company(
                name="Acme Ltda",
                email="compras@acme.test",
                phone="+56 2 2222 2222",
                address_line1="Av. Siempre Viva 742",
                city="Santiago",
                country="CL",
            )
            other_event = Event(name="Otro Evento")
            db.add_all([event, ticket, hotel, room, booth, booth_corner, gold, silver, company, other_event])
            await db.commit()
            return SimpleNamespace(
                event_id=str(event.id),
                other_event_id=str(other_event.id),
                ticket_id=str(ticket.id),
                hotel_id=str(hotel.id),
                room_id=str(room.id),
                booth_id=str(booth.id),
                booth_corner_id=str(booth_corner.id),
                gold_id=str(gold.id),
                silver_id=str(silver.id),
                company_id=str(company.id),
            )

    return asyncio.run(seed())


@pytest.fixture
def add_coupon(session_factory):
    def _add(code, discount_type, value, is_active=True):
        async def create():
            async with session_factory() as db:
                coupon = Coupon(
                    code=code, discount_type=discount_type,
                    discount_value=Decimal(str(value)), is_active=is_active,
                )
                db.add(coupon)
                await db.commit()
                return str(coupon.id)
        return asyncio.run(create())
    return _add


@pytest.fixture
def add_offer(session_factory):
    def _add(name, percentage, scope="ALL", **kwargs):
        async def create():
            async with session_factory() as db:
                offer = PromotionalOffer(name=name, percentage=Decimal(str(percentage)), scope=scope, **kwargs)
                db.add(offer)
                await db.commit()
                return str(offer.id)
        return asyncio.run(create())
    return _add


@pytest.fixture
def run_db(session_factory):
    """Ejecuta `fn(db)` en una sesión nueva y retorna su resultado"""
    def _run(fn):
        async def wrapper():
            async with session_factory() as db:
                return await fn(db)
        return asyncio.run(wrapper())
    return _run
