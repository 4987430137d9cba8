"""Modelos Pydantic de cupones y ofertas promocionales"""
from pydantic import BaseModel, Field
from typing import Literal, Optional, List
from datetime import datetime

from services.purchase.models.checkout import CartItemPayload


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CouponResponse(BaseModel):
    id: str
    code: str
    discount_type: str
    discount_value: float
    is_active: bool = True


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    discount_type: Literal["FIXED", "PERCENTAGE"]
    discount_value: float
    is_active: bool = True


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    discount_type: Optional[Literal["FIXED", "PERCENTAGE"]] = None
    discount_value: Optional[float] = None
    is_active: Optional[bool] = None


class OfferBase(BaseModel):
    name: str
    code: Optional[str] = None  # etiqueta visible
    description: Optional[str] = None
    percentage: float  # (0, 100], validado en el servicio
    scope: Literal["ALL", "HOTELS", "TICKETS", "SPONSORS", "BOOTHS", "CUSTOM"] = "ALL"
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True
    hotel_ids: List[str] = []
    ticket_ids: List[str] = []
    sponsor_type_ids: List[str] = []
    booth_ids: List[str] = []


class OfferCreate(OfferBase):
    pass


class OfferUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    percentage: Optional[float] = None
    scope: Optional[Literal["ALL", "HOTELS", "TICKETS", "SPONSORS", "BOOTHS", "CUSTOM"]] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    hotel_ids: Optional[List[str]] = None
    ticket_ids: Optional[List[str]] = None
    sponsor_type_ids: Optional[List[str]] = None
    booth_ids: Optional[List[str]] = None


class OfferResponse(OfferBase):
    id: str


class DiscountPreviewRequest(BaseModel):
    cart_items: List[CartItemPayload] = []
    coupon_code: Optional[str] = None


class LineDiscountResponse(BaseModel):
    resource_id: str
    sub_selection_id: Optional[str] = None
    discount_amount: float


class DiscountPreviewResponse(BaseModel):
    subtotal: float
    discount_amount: float
    total: float
    discount_source: Optional[str] = None  # coupon, offer
    coupon_code: Optional[str] = None
    offer_id: Optional[str] = None
    offer_name: Optional[str] = None
    line_discounts: List[LineDiscountResponse] = []
