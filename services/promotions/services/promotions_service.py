"""Servicio de cupones y ofertas promocionales"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
import logging

from shared.database.enums import DiscountType, OfferScope
from shared.database.models import Coupon, PromotionalOffer, PurchaseOrder
from shared.utils.exceptions import (
    DuplicateCouponError,
    InvalidCouponError,
    PromotionNotFoundError,
)
from shared.utils.ids import to_uuid, try_uuid
from services.purchase.models.cart import CartLineItem
from services.promotions.services.discount_service import (
    CouponRule,
    OfferRule,
    ResolvedDiscount,
    discount_resolver,
)

logger = logging.getLogger(__name__)

CUSTOM_ID_FIELDS = ("hotel_ids", "ticket_ids", "sponsor_type_ids", "booth_ids")


def normalize_code(code: str) -> str:
    """Códigos de cupón: sin espacios en los extremos y en mayúsculas"""
    return (code or "").strip().upper()


def serialize_coupon(coupon: Coupon) -> Dict:
    return {
        "id": str(coupon.id),
        "code": coupon.code,
        "discount_type": coupon.discount_type,
        "discount_value": float(coupon.discount_value),
        "is_active": coupon.is_active,
    }


def serialize_offer(offer: PromotionalOffer) -> Dict:
    return {
        "id": str(offer.id),
        "name": offer.name,
        "code": offer.code,
        "description": offer.description,
        "percentage": float(offer.percentage),
        "scope": offer.scope,
        "starts_at": offer.starts_at,
        "ends_at": offer.ends_at,
        "is_active": offer.is_active,
        "hotel_ids": list(offer.hotel_ids or []),
        "ticket_ids": list(offer.ticket_ids or []),
        "sponsor_type_ids": list(offer.sponsor_type_ids or []),
        "booth_ids": list(offer.booth_ids or []),
    }


def _validate_coupon_value(discount_type: str, value: float) -> None:
    if value is None or value < 0:
        raise ValueError("El valor del descuento debe ser mayor o igual a 0")
    if discount_type == DiscountType.PERCENTAGE.value and value > 100:
        raise ValueError("El porcentaje del cupón no puede superar 100")


def _validate_offer(data: Dict) -> Dict:
    percentage = data.get("percentage")
    if percentage is None or not (0 < percentage <= 100):
        raise ValueError("El porcentaje de la oferta debe estar entre 0 (excluido) y 100")
    starts_at, ends_at = data.get("starts_at"), data.get("ends_at")
    if starts_at and ends_at and ends_at < starts_at:
        raise ValueError("La fecha de término debe ser posterior a la de inicio")
    for field_name in CUSTOM_ID_FIELDS:
        ids = data.get(field_name) or []
        invalid = [i for i in ids if try_uuid(i) is None]
        if invalid:
            raise ValueError(f"IDs inválidos en {field_name}: {', '.join(invalid)}")
        data[field_name] = [str(try_uuid(i)) for i in ids]
    if data.get("scope") == OfferScope.CUSTOM.value and not any(data.get(f) for f in CUSTOM_ID_FIELDS):
        raise ValueError("Una oferta CUSTOM debe indicar al menos un recurso")
    return data


class PromotionsService:
    """Cupones, ofertas y resolución del descuento de un carrito"""

    # ---------- Cupones ----------

    @staticmethod
    async def find_coupon(db: AsyncSession, code: str) -> Coupon:
        """
        Buscar cupón activo sin distinguir mayúsculas

        Raises:
            InvalidCouponError: si no existe o está inactivo
        """
        normalized = normalize_code(code)
        if not normalized:
            raise InvalidCouponError(code)
        stmt = select(Coupon).where(
            func.upper(Coupon.code) == normalized,
            Coupon.is_active.is_(True),
        )
        result = await db.execute(stmt)
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise InvalidCouponError(code)
        return coupon

    @staticmethod
    async def list_coupons(db: AsyncSession) -> List[Coupon]:
        result = await db.execute(select(Coupon).order_by(Coupon.code))
        return list(result.scalars().all())

    @staticmethod
    async def get_coupon(db: AsyncSession, coupon_id) -> Coupon:
        coupon = await db.get(Coupon, to_uuid(coupon_id))
        if coupon is None:
            raise PromotionNotFoundError(str(coupon_id))
        return coupon

    @staticmethod
    async def create_coupon(db: AsyncSession, data: Dict) -> Coupon:
        code = normalize_code(data["code"])
        if not code:
            raise ValueError("El código del cupón es obligatorio")
        _validate_coupon_value(data["discount_type"], data["discount_value"])

        existing = await db.execute(select(Coupon.id).where(func.upper(Coupon.code) == code))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateCouponError(code)

        coupon = Coupon(
            code=code,
            discount_type=data["discount_type"],
            discount_value=data["discount_value"],
            is_active=data.get("is_active", True),
        )
        db.add(coupon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateCouponError(code)
        await db.refresh(coupon)
        logger.info(f"Coupon created: {code}")
        return coupon

    @staticmethod
    async def update_coupon(db: AsyncSession, coupon_id, data: Dict) -> Coupon:
        coupon = await PromotionsService.get_coupon(db, coupon_id)

        if data.get("code") is not None:
            code = normalize_code(data["code"])
            if code != coupon.code:
                existing = await db.execute(
                    select(Coupon.id).where(func.upper(Coupon.code) == code, Coupon.id != coupon.id)
                )
                if existing.scalar_one_or_none() is not None:
                    raise DuplicateCouponError(code)
                coupon.code = code

        discount_type = data.get("discount_type") or coupon.discount_type
        discount_value = data["discount_value"] if data.get("discount_value") is not None else float(coupon.discount_value)
        _validate_coupon_value(discount_type, discount_value)
        coupon.discount_type = discount_type
        coupon.discount_value = discount_value
        if data.get("is_active") is not None:
            coupon.is_active = data["is_active"]

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateCouponError(coupon.code)
        await db.refresh(coupon)
        return coupon

    @staticmethod
    async def delete_coupon(db: AsyncSession, coupon_id) -> str:
        """
        Eliminar cupón. Si alguna orden lo referencia se desactiva en su lugar.

        Returns:
            "deleted" o "deactivated"
        """
        coupon = await PromotionsService.get_coupon(db, coupon_id)
        used = await db.execute(
            select(func.count(PurchaseOrder.id)).where(PurchaseOrder.coupon_id == coupon.id)
        )
        if (used.scalar() or 0) > 0:
            coupon.is_active = False
            await db.commit()
            logger.info(f"Coupon {coupon.code} in use; deactivated instead of deleted")
            return "deactivated"
        await db.delete(coupon)
        await db.commit()
        return "deleted"

    # ---------- Ofertas ----------

    @staticmethod
    async def list_offers(db: AsyncSession) -> List[PromotionalOffer]:
        result = await db.execute(select(PromotionalOffer).order_by(PromotionalOffer.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def active_offers(db: AsyncSession, now: Optional[datetime] = None) -> List[PromotionalOffer]:
        """Ofertas activas; con `now` también filtra por ventana de vigencia"""
        stmt = select(PromotionalOffer).where(PromotionalOffer.is_active.is_(True))
        if now is not None:
            stmt = stmt.where(
                or_(PromotionalOffer.starts_at.is_(None), PromotionalOffer.starts_at <= now),
                or_(PromotionalOffer.ends_at.is_(None), PromotionalOffer.ends_at >= now),
            )
        result = await db.execute(stmt.order_by(PromotionalOffer.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_offer(db: AsyncSession, offer_id) -> PromotionalOffer:
        offer = await db.get(PromotionalOffer, to_uuid(offer_id))
        if offer is None:
            raise PromotionNotFoundError(str(offer_id))
        return offer

    @staticmethod
    async def create_offer(db: AsyncSession, data: Dict) -> PromotionalOffer:
        data = _validate_offer(dict(data))
        offer = PromotionalOffer(**data)
        db.add(offer)
        await db.commit()
        await db.refresh(offer)
        logger.info(f"Offer created: {offer.name} ({offer.scope} {offer.percentage}%)")
        return offer

    @staticmethod
    async def update_offer(db: AsyncSession, offer_id, data: Dict) -> PromotionalOffer:
        offer = await PromotionsService.get_offer(db, offer_id)
        merged = serialize_offer(offer)
        merged.pop("id")
        merged.update({k: v for k, v in data.items() if v is not None})
        merged = _validate_offer(merged)
        for key, value in merged.items():
            setattr(offer, key, value)
        await db.commit()
        await db.refresh(offer)
        return offer

    @staticmethod
    async def delete_offer(db: AsyncSession, offer_id) -> str:
        offer = await PromotionsService.get_offer(db, offer_id)
        used = await db.execute(
            select(func.count(PurchaseOrder.id)).where(PurchaseOrder.offer_id == offer.id)
        )
        if (used.scalar() or 0) > 0:
            offer.is_active = False
            await db.commit()
            return "deactivated"
        await db.delete(offer)
        await db.commit()
        return "deleted"

    # ---------- Resolución ----------

    @staticmethod
    async def resolve_for_cart(
        db: AsyncSession,
        lines: Sequence[CartLineItem],
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedDiscount:
        """
        Descuento del carrito: cupón (si viene) o la mejor oferta elegible.

        Raises:
            InvalidCouponError: código desconocido o inactivo
        """
        now = now or datetime.now(timezone.utc)
        coupon = None
        offers: List[OfferRule] = []
        if coupon_code:
            coupon = CouponRule.from_model(await PromotionsService.find_coupon(db, coupon_code))
        else:
            offers = [OfferRule.from_model(o) for o in await PromotionsService.active_offers(db)]

        resolved = discount_resolver.resolve(lines, coupon, offers, now)
        logger.debug(
            f"Discount resolved: source={resolved.source} amount={resolved.amount} "
            f"excluded={len(resolved.excluded_offers)}"
        )
        return resolved
