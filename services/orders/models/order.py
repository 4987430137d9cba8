"""Modelos Pydantic para órdenes"""
from pydantic import BaseModel
from typing import Dict, List, Literal, Optional
from datetime import datetime


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_type: str
    sub_selection_id: Optional[str] = None
    name: str
    quantity: int
    unit_price: float
    line_total: float
    discount_amount: float = 0


class BillingResponse(BaseModel):
    name: str
    email: str
    phone: str
    address1: str
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class OrderResponse(BaseModel):
    id: str
    company_id: str
    event_id: str
    status: str  # PENDING, COMPLETED, FAILED, REFUNDED
    subtotal: float
    discount_total: float
    total_amount: float
    currency: str
    payment_method: str
    offline_payment: bool
    discount_source: Optional[str] = None  # coupon, offer
    coupon_id: Optional[str] = None
    offer_id: Optional[str] = None
    billing: BillingResponse
    payment_reference: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class OrderStatusUpdate(BaseModel):
    status: Literal["COMPLETED", "FAILED", "REFUNDED"]
    payment_reference: Optional[str] = None


class ReconcileResponse(BaseModel):
    event_id: str
    corrected: Dict[str, Dict[str, int]] = {}


class InventoryAuditResponse(BaseModel):
    event_id: str
    resource_id: str
    quantity_total: Optional[int] = None
    quantity_committed: int
    derived_committed: int
    drift: int
