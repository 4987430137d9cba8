"""Sesiones de base de datos"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import connection
from shared.database.connection import get_db, init_db


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Sesión fuera del ciclo request/response (tareas Celery, scripts)"""
    if connection.async_session_maker is None:
        await init_db()
    async with connection.async_session_maker() as session:
        yield session


__all__ = ["get_db", "session_scope"]
