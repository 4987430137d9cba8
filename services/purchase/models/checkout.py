"""Modelos Pydantic del checkout"""
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional, List

from services.purchase.models.cart import CartLineItem


class CartItemPayload(BaseModel):
    resource_id: str
    resource_type: Literal["TICKET", "BOOTH", "HOTEL", "SPONSOR"]
    unit_price: float = Field(0, ge=0)  # precio visto por el cliente; se recalcula con el catálogo
    quantity: int = Field(1, ge=1)
    sub_selection_id: Optional[str] = None  # tipo de habitación o sub-tipo de booth
    name: Optional[str] = None
    image: Optional[str] = None

    def to_line(self) -> CartLineItem:
        return CartLineItem(
            resource_id=self.resource_id,
            resource_type=self.resource_type,
            unit_price=self.unit_price,
            quantity=self.quantity,
            sub_selection_id=self.sub_selection_id,
            name=self.name,
            image=self.image,
        )


class AccountDetailsPayload(BaseModel):
    # Campos vacíos se completan con el perfil de la empresa
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class CouponPayload(BaseModel):
    code: str


class CheckoutRequest(BaseModel):
    company_id: str
    account: AccountDetailsPayload = AccountDetailsPayload()
    payment_method: Optional[str] = None  # razorpay | paypal | bank_transfer
    accept_terms: bool = False
    accept_policies: bool = False
    coupon: Optional[CouponPayload] = None
    cart_items: List[CartItemPayload] = []
    idempotency_key: Optional[str] = Field(None, max_length=128)


class AccountPrefillResponse(BaseModel):
    company_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
