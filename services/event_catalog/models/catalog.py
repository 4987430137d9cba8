"""Modelos Pydantic del catálogo de recursos"""
from pydantic import BaseModel
from typing import Optional, List


class ResourceResponse(BaseModel):
    id: str
    event_id: str
    resource_type: str
    parent_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    unit_price: float
    quantity_total: Optional[int] = None  # None = ilimitado
    quantity_committed: int = 0
    remaining: Optional[int] = None
    image_url: Optional[str] = None
    sort_order: int = 0

    class Config:
        from_attributes = True


class CatalogResponse(BaseModel):
    event_id: str
    event_name: str
    currency: str
    resources: List[ResourceResponse] = []


class AvailabilityResponse(BaseModel):
    resource_id: str
    sub_selection_id: Optional[str] = None
    requested: int
    ok: bool
    remaining: Optional[int] = None
    reason: Optional[str] = None
