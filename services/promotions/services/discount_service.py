"""
Resolución de descuentos: cupón o una oferta promocional con alcance.

El cupón siempre tiene precedencia; si no hay cupón se elige la mejor
oferta elegible (mayor monto, luego mayor porcentaje, luego menor id).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union
import logging

from shared.database.enums import DiscountType, OfferScope, ResourceType
from shared.utils.exceptions import IneligibleOfferError
from shared.utils.ids import try_uuid
from shared.utils.money import CENT, ZERO, round_money, to_decimal
from services.purchase.models.cart import CartKey, CartLineItem

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FixedDiscount:
    amount: Decimal


@dataclass(frozen=True)
class PercentageDiscount:
    percentage: Decimal


Discount = Union[FixedDiscount, PercentageDiscount]


def discount_from(discount_type: str, value) -> Discount:
    """Decidir la forma del descuento una sola vez, al leer el registro"""
    value = to_decimal(value)
    if discount_type == DiscountType.FIXED.value:
        return FixedDiscount(amount=value)
    if discount_type == DiscountType.PERCENTAGE.value:
        return PercentageDiscount(percentage=value)
    raise ValueError(f"Unknown discount type: {discount_type}")


def _norm_id(value) -> str:
    parsed = try_uuid(value)
    return str(parsed) if parsed is not None else str(value)


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class CouponRule:
    id: str
    code: str
    discount: Discount

    @classmethod
    def from_model(cls, coupon) -> "CouponRule":
        return cls(
            id=str(coupon.id),
            code=coupon.code,
            discount=discount_from(coupon.discount_type, coupon.discount_value),
        )


# Tipo de línea que cubre cada alcance
SCOPE_RESOURCE_TYPES = {
    OfferScope.TICKETS.value: ResourceType.TICKET.value,
    OfferScope.HOTELS.value: ResourceType.HOTEL.value,
    OfferScope.SPONSORS.value: ResourceType.SPONSOR.value,
    OfferScope.BOOTHS.value: ResourceType.BOOTH.value,
}


@dataclass(frozen=True)
class OfferRule:
    id: str
    name: str
    percentage: Decimal
    scope: str
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True
    code: Optional[str] = None
    hotel_ids: FrozenSet[str] = frozenset()
    ticket_ids: FrozenSet[str] = frozenset()
    sponsor_type_ids: FrozenSet[str] = frozenset()
    booth_ids: FrozenSet[str] = frozenset()

    @classmethod
    def from_model(cls, offer) -> "OfferRule":
        return cls(
            id=str(offer.id),
            name=offer.name,
            percentage=to_decimal(offer.percentage),
            scope=offer.scope,
            starts_at=offer.starts_at,
            ends_at=offer.ends_at,
            is_active=bool(offer.is_active),
            code=offer.code,
            hotel_ids=frozenset(_norm_id(i) for i in offer.hotel_ids or ()),
            ticket_ids=frozenset(_norm_id(i) for i in offer.ticket_ids or ()),
            sponsor_type_ids=frozenset(_norm_id(i) for i in offer.sponsor_type_ids or ()),
            booth_ids=frozenset(_norm_id(i) for i in offer.booth_ids or ()),
        )

    def custom_ids_for(self, resource_type: str) -> FrozenSet[str]:
        return {
            ResourceType.HOTEL.value: self.hotel_ids,
            ResourceType.TICKET.value: self.ticket_ids,
            ResourceType.SPONSOR.value: self.sponsor_type_ids,
            ResourceType.BOOTH.value: self.booth_ids,
        }.get(resource_type, frozenset())

    def matches(self, line: CartLineItem) -> bool:
        if self.scope == OfferScope.ALL.value:
            return True
        if self.scope == OfferScope.CUSTOM.value:
            # Para hoteles el resource_id de la línea es el hotel dueño
            return _norm_id(line.resource_id) in self.custom_ids_for(line.resource_type)
        return SCOPE_RESOURCE_TYPES.get(self.scope) == line.resource_type


@dataclass(frozen=True)
class ResolvedDiscount:
    subtotal: Decimal
    amount: Decimal
    source: Optional[str] = None  # coupon, offer
    coupon: Optional[CouponRule] = None
    offer: Optional[OfferRule] = None
    line_discounts: Dict[CartKey, Decimal] = field(default_factory=dict)
    excluded_offers: Tuple[Tuple[str, str], ...] = ()  # (offer_id, reason)

    @property
    def total(self) -> Decimal:
        return round_money(self.subtotal - self.amount)


@dataclass(frozen=True)
class _OfferCandidate:
    offer: OfferRule
    amount: Decimal
    line_discounts: Dict[CartKey, Decimal]

    @property
    def rank(self):
        return (-self.amount, -self.offer.percentage, self.offer.id)


class DiscountResolver:
    """Resolución pura (sin I/O) del descuento de un carrito"""

    def resolve(
        self,
        lines: Sequence[CartLineItem],
        coupon: Optional[CouponRule],
        offers: Iterable[OfferRule],
        now: datetime,
    ) -> ResolvedDiscount:
        subtotal = round_money(sum((line.line_total for line in lines), ZERO))

        if coupon is not None:
            amount = self.coupon_amount(coupon.discount, subtotal)
            return ResolvedDiscount(
                subtotal=subtotal, amount=amount, source="coupon", coupon=coupon
            )

        now = _as_utc(now)
        candidates: List[_OfferCandidate] = []
        excluded: List[Tuple[str, str]] = []
        for offer in offers:
            try:
                candidates.append(self._evaluate_offer(offer, lines, now))
            except IneligibleOfferError as e:
                logger.debug(f"Offer {e.offer_id} skipped: {e.reason}")
                excluded.append((e.offer_id, e.reason))

        if not candidates:
            return ResolvedDiscount(subtotal=subtotal, amount=ZERO, excluded_offers=tuple(excluded))

        best = min(candidates, key=lambda c: c.rank)
        return ResolvedDiscount(
            subtotal=subtotal,
            amount=best.amount,
            source="offer",
            offer=best.offer,
            line_discounts=best.line_discounts,
            excluded_offers=tuple(excluded),
        )

    @staticmethod
    def coupon_amount(discount: Discount, subtotal: Decimal) -> Decimal:
        if isinstance(discount, FixedDiscount):
            return round_money(min(max(discount.amount, ZERO), subtotal))
        amount = round_money(subtotal * discount.percentage / HUNDRED)
        return min(max(amount, ZERO), subtotal)

    def _evaluate_offer(
        self,
        offer: OfferRule,
        lines: Sequence[CartLineItem],
        now: datetime,
    ) -> _OfferCandidate:
        """Monto de la oferta sobre las líneas que cubre; IneligibleOfferError si no aplica"""
        if not offer.is_active:
            raise IneligibleOfferError(offer.id, "inactive")
        starts_at = _as_utc(offer.starts_at)
        ends_at = _as_utc(offer.ends_at)
        if starts_at is not None and now < starts_at:
            raise IneligibleOfferError(offer.id, "not_started")
        if ends_at is not None and now > ends_at:
            raise IneligibleOfferError(offer.id, "expired")
        if not (ZERO < offer.percentage <= HUNDRED):
            raise IneligibleOfferError(offer.id, "invalid_percentage")

        matching = [line for line in lines if offer.matches(line)]
        if not matching:
            raise IneligibleOfferError(offer.id, "no_matching_lines")

        base = sum((line.line_total for line in matching), ZERO)
        amount = round_money(base * offer.percentage / HUNDRED)

        # Reparto por línea truncado; el último absorbe el resto del redondeo
        shares: Dict[CartKey, Decimal] = {}
        allocated = ZERO
        for line in matching[:-1]:
            share = (line.line_total * offer.percentage / HUNDRED).quantize(CENT, rounding=ROUND_DOWN)
            shares[line.key] = share
            allocated += share
        shares[matching[-1].key] = amount - allocated

        return _OfferCandidate(offer=offer, amount=amount, line_discounts=shares)


discount_resolver = DiscountResolver()
