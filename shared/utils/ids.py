"""Conversión de identificadores recibidos como texto"""
from typing import Any, Optional
from uuid import UUID


def to_uuid(value: Any) -> UUID:
    """UUID a partir de str/UUID; ValueError si el formato es inválido"""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


def try_uuid(value: Any) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return to_uuid(value)
    except (ValueError, TypeError, AttributeError):
        return None
