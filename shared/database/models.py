"""Modelos SQLAlchemy del núcleo de comercio de eventos"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Text, JSON, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from shared.database.connection import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    location_text = Column(String, nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    # Relaciones
    resources = relationship("EventResource", back_populates="event", cascade="all, delete-orphan")
    orders = relationship("PurchaseOrder", back_populates="event")


class Company(Base):
    """Perfil de empresa (sólo lectura en este servicio, fuente del pre-llenado de checkout)"""
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address_line1 = Column(String, nullable=True)
    address_line2 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    orders = relationship("PurchaseOrder", back_populates="company")


class EventResource(Base):
    """
    Recurso comprable de un evento: TICKET, BOOTH, BOOTH_SUB_TYPE, SPONSOR,
    HOTEL o HOTEL_ROOM_TYPE.

    quantity_total NULL = ilimitado. quantity_committed es el contador de
    unidades retenidas por órdenes en los estados contados.
    """
    __tablename__ = "event_resources"
    __table_args__ = (
        CheckConstraint("quantity_committed >= 0", name="ck_event_resources_committed_non_negative"),
        Index("ix_event_resources_event_type", "event_id", "resource_type"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    resource_type = Column(String, nullable=False)  # TICKET, BOOTH, BOOTH_SUB_TYPE, SPONSOR, HOTEL, HOTEL_ROOM_TYPE
    parent_id = Column(Uuid, ForeignKey("event_resources.id"), nullable=True)  # booth o hotel dueño
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False, server_default="0")
    quantity_total = Column(Integer, nullable=True)
    quantity_committed = Column(Integer, nullable=False, default=0, server_default="0")
    image_url = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="resources")
    parent = relationship("EventResource", remote_side=[id])

    @property
    def remaining(self):
        if self.quantity_total is None:
            return None
        return max(self.quantity_total - (self.quantity_committed or 0), 0)


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String, unique=True, nullable=False, index=True)  # normalizado a mayúsculas
    discount_type = Column(String, nullable=False)  # FIXED, PERCENTAGE
    discount_value = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)


class PromotionalOffer(Base):
    __tablename__ = "promotional_offers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)  # etiqueta visible, no se canjea
    description = Column(Text, nullable=True)
    percentage = Column(Numeric(5, 2), nullable=False)
    scope = Column(String, nullable=False, server_default="ALL")  # ALL, HOTELS, TICKETS, SPONSORS, BOOTHS, CUSTOM
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    # Sólo para scope CUSTOM
    hotel_ids = Column(JSON, nullable=False, default=list)
    ticket_ids = Column(JSON, nullable=False, default=list)
    sponsor_type_ids = Column(JSON, nullable=False, default=list)
    booth_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        Index("ix_purchase_orders_status_created", "status", "created_at"),
        # Reintentos del mismo cliente; otra empresa o evento puede reutilizar la clave
        UniqueConstraint("company_id", "event_id", "idempotency_key", name="uq_purchase_orders_idempotency"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    status = Column(String, nullable=False, server_default="PENDING")  # PENDING, COMPLETED, FAILED, REFUNDED
    subtotal = Column(Numeric(12, 2), nullable=False, server_default="0")
    discount_total = Column(Numeric(12, 2), nullable=False, server_default="0")
    total_amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    currency = Column(String, nullable=False, server_default="USD")
    payment_method = Column(String, nullable=False)  # razorpay, paypal, bank_transfer
    offline_payment = Column(Boolean, nullable=False, default=False, server_default="false")
    discount_source = Column(String, nullable=True)  # coupon, offer
    coupon_id = Column(Uuid, ForeignKey("coupons.id"), nullable=True)
    offer_id = Column(Uuid, ForeignKey("promotional_offers.id"), nullable=True)
    # Snapshot de facturación
    billing_name = Column(String, nullable=False)
    billing_email = Column(String, nullable=False)
    billing_phone = Column(String, nullable=False)
    billing_address_line1 = Column(String, nullable=False)
    billing_address_line2 = Column(String, nullable=True)
    billing_city = Column(String, nullable=True)
    billing_state = Column(String, nullable=True)
    billing_zip = Column(String, nullable=True)
    billing_country = Column(String, nullable=True)
    idempotency_key = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Relaciones
    company = relationship("Company", back_populates="orders")
    event = relationship("Event", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")


class OrderItem(Base):
    """Línea de orden; inmutable una vez creada"""
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("event_resources.id"), nullable=False, index=True)
    product_type = Column(String, nullable=False)
    sub_selection_id = Column(Uuid, ForeignKey("event_resources.id"), nullable=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    order = relationship("PurchaseOrder", back_populates="items")
