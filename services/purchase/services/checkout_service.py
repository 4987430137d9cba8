"""
Checkout: convierte un carrito en una orden persistida.

Flujo: CART_REVIEW -> ACCOUNT_DETAILS -> PAYMENT_SELECTION -> SUBMITTED
-> COMPLETED | FAILED. El compromiso de inventario, la orden y sus ítems
se escriben en una sola transacción; cualquier línea sin stock aborta todo.
"""
from dataclasses import dataclass, replace, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from shared.database.enums import (
    CART_RESOURCE_TYPES,
    OFFLINE_PAYMENT_METHODS,
    SUB_SELECTION_TYPES,
    OrderStatus,
    PaymentMethod,
)
from shared.database.models import Company, EventResource, OrderItem, PurchaseOrder
from shared.utils.exceptions import (
    CheckoutFailedError,
    CheckoutValidationError,
    EmptyCartError,
    InsufficientInventoryError,
    LineFailure,
)
from shared.utils.ids import to_uuid, try_uuid
from shared.utils.money import ZERO, round_money
from shared.utils.retry import retry_with_backoff
from services.event_catalog.services.catalog_service import CatalogService
from services.promotions.services.discount_service import ResolvedDiscount
from services.promotions.services.promotions_service import PromotionsService
from services.purchase.models.cart import CartLineItem
from services.purchase.services.cart_store import CartStore
from services.purchase.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutStep(str, Enum):
    CART_REVIEW = "CART_REVIEW"
    ACCOUNT_DETAILS = "ACCOUNT_DETAILS"
    PAYMENT_SELECTION = "PAYMENT_SELECTION"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class AccountDetails:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None

    REQUIRED = ("name", "email", "phone", "address1")

    @classmethod
    def from_company(cls, company: Company) -> "AccountDetails":
        """Pre-llenado desde el perfil de la empresa"""
        return cls(
            name=company.name,
            email=company.email,
            phone=company.phone,
            address1=company.address_line1,
            address2=company.address_line2,
            city=company.city,
            state=company.state,
            zip=company.zip_code,
            country=company.country,
        )

    def merged_with(self, overrides: Dict) -> "AccountDetails":
        """Los valores editados por el comprador reemplazan al pre-llenado"""
        changes = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in overrides.items()
            if value is not None and key in self.__dataclass_fields__
        }
        return replace(self, **changes)

    def missing_fields(self) -> List[str]:
        return [f for f in self.REQUIRED if not (getattr(self, f) or "").strip()]

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class PricedLine:
    """Línea con precio y nombre tomados del catálogo al momento del checkout"""

    line: CartLineItem
    resource: EventResource
    sub_selection: Optional[EventResource] = None


class CheckoutFlow:
    """
    Máquina de estados de un checkout. Cada paso valida que se llame en orden.

    El reloj es inyectable para pruebas (`now`).
    """

    def __init__(
        self,
        cart: CartStore,
        now: Callable[[], datetime] = utcnow,
    ):
        self.cart = cart
        self.now = now
        self.state = CheckoutStep.CART_REVIEW
        self.coupon_code: Optional[str] = None
        self.priced_lines: List[PricedLine] = []
        self.discount: Optional[ResolvedDiscount] = None
        self.account: Optional[AccountDetails] = None
        self.payment_method: Optional[str] = None
        self.order: Optional[PurchaseOrder] = None

    def _require(self, expected: CheckoutStep) -> None:
        if self.state != expected:
            raise CheckoutValidationError(
                f"Paso de checkout fuera de orden: se esperaba {expected.value}, estado actual {self.state.value}",
                fields=["checkout_state"],
            )

    # ---------- Pasos ----------

    async def review_cart(self, db: AsyncSession, coupon_code: Optional[str] = None) -> ResolvedDiscount:
        """
        CART_REVIEW: carrito no vacío, precios desde el catálogo y descuento resuelto.

        Raises:
            EmptyCartError, InsufficientInventoryError (recurso desconocido),
            InvalidCouponError
        """
        self._require(CheckoutStep.CART_REVIEW)
        if self.cart.is_empty():
            raise EmptyCartError()

        self.coupon_code = coupon_code
        self.priced_lines, self.discount = await self._price_and_resolve(db)
        self.state = CheckoutStep.ACCOUNT_DETAILS
        return self.discount

    def set_account(self, details: AccountDetails) -> AccountDetails:
        """ACCOUNT_DETAILS: name, email, phone y address1 obligatorios"""
        self._require(CheckoutStep.ACCOUNT_DETAILS)
        missing = details.missing_fields()
        if missing:
            raise CheckoutValidationError("Faltan datos de facturación obligatorios", fields=missing)
        self.account = details
        self.state = CheckoutStep.PAYMENT_SELECTION
        return details

    def select_payment(self, method: Optional[str], accept_terms: bool, accept_policies: bool) -> str:
        """PAYMENT_SELECTION: método explícito y aceptación de términos y políticas"""
        self._require(CheckoutStep.PAYMENT_SELECTION)
        errors = []
        valid_methods = {m.value for m in PaymentMethod}
        if method not in valid_methods:
            errors.append("payment_method")
        if not accept_terms:
            errors.append("accept_terms")
        if not accept_policies:
            errors.append("accept_policies")
        if errors:
            raise CheckoutValidationError(
                "Selecciona un método de pago y acepta los términos y políticas",
                fields=errors,
            )
        self.payment_method = method
        self.state = CheckoutStep.SUBMITTED
        return method

    async def submit(
        self,
        db: AsyncSession,
        company_id,
        idempotency_key: Optional[str] = None,
    ) -> PurchaseOrder:
        """
        SUBMITTED: revalidar líneas, comprometer inventario y crear la orden
        en una sola transacción. Reintenta conflictos de persistencia.

        Raises:
            InsufficientInventoryError: con todas las líneas que fallaron
            CheckoutFailedError: conflicto de persistencia tras los reintentos
        """
        self._require(CheckoutStep.SUBMITTED)

        async def attempt() -> PurchaseOrder:
            return await self._commit_order(db, company_id, idempotency_key)

        async def rollback(_error: Exception) -> None:
            await db.rollback()

        try:
            order = await retry_with_backoff(
                attempt,
                max_retries=settings.CHECKOUT_MAX_RETRIES,
                initial_delay=0.05,
                max_delay=0.5,
                exceptions=(OperationalError,),
                on_retry=rollback,
            )
        except OperationalError as e:
            await db.rollback()
            self.state = CheckoutStep.FAILED
            logger.error(f"Checkout persistence failure for event {self.cart.event_id}: {e}", exc_info=True)
            raise CheckoutFailedError()
        except Exception:
            await db.rollback()
            self.state = CheckoutStep.FAILED
            raise

        self.order = order
        self.state = CheckoutStep.COMPLETED
        if InventoryService.is_counted(self._initial_status()):
            await CatalogService.invalidate(self.cart.event_id)
        return order

    # ---------- Internos ----------

    async def _price_and_resolve(self, db: AsyncSession) -> Tuple[List[PricedLine], ResolvedDiscount]:
        priced, failures = await self._price_lines(db)
        if failures:
            raise InsufficientInventoryError(failures)
        repriced = [
            replace(p.line, unit_price=self._unit_price(p), name=self._line_name(p))
            for p in priced
        ]
        priced = [replace(p, line=line) for p, line in zip(priced, repriced)]
        discount = await PromotionsService.resolve_for_cart(db, repriced, self.coupon_code, self.now())
        return priced, discount

    async def _price_lines(self, db: AsyncSession) -> Tuple[List[PricedLine], List[LineFailure]]:
        lines = self.cart.lines
        ids = [line.resource_id for line in lines] + [
            line.sub_selection_id for line in lines if line.sub_selection_id
        ]
        resources = await CatalogService.get_resources(db, self.cart.event_id, ids)

        priced: List[PricedLine] = []
        failures: List[LineFailure] = []
        for line in lines:
            resource_uuid = try_uuid(line.resource_id)
            resource = resources.get(resource_uuid) if resource_uuid else None
            if (
                resource is None
                or resource.resource_type != line.resource_type
                or resource.resource_type not in CART_RESOURCE_TYPES
            ):
                failures.append(self._failure(line, None, "not_found"))
                continue

            sub = None
            if line.sub_selection_id:
                sub_uuid = try_uuid(line.sub_selection_id)
                sub = resources.get(sub_uuid) if sub_uuid else None
                expected_type = SUB_SELECTION_TYPES.get(resource.resource_type)
                if sub is None or sub.parent_id != resource.id or sub.resource_type != expected_type:
                    failures.append(self._failure(line, None, "invalid_sub_selection"))
                    continue
            priced.append(PricedLine(line=line, resource=resource, sub_selection=sub))
        return priced, failures

    @staticmethod
    def _unit_price(priced: PricedLine):
        # Hoteles y booths con sub-selección se cobran al precio del tipo elegido
        if priced.sub_selection is not None:
            return priced.sub_selection.unit_price
        return priced.resource.unit_price

    @staticmethod
    def _line_name(priced: PricedLine) -> str:
        if priced.sub_selection is not None:
            return f"{priced.resource.name} - {priced.sub_selection.name}"
        return priced.resource.name

    @staticmethod
    def _failure(line: CartLineItem, remaining: Optional[int], reason: str) -> LineFailure:
        return LineFailure(
            resource_id=line.resource_id,
            sub_selection_id=line.sub_selection_id,
            name=line.name,
            requested=line.quantity,
            remaining=remaining,
            reason=reason,
        )

    async def _commit_order(
        self,
        db: AsyncSession,
        company_id,
        idempotency_key: Optional[str],
    ) -> PurchaseOrder:
        """Un intento completo de la transacción de checkout"""
        event_id = self.cart.event_id
        logger.info(f"Checkout start: event={event_id} company={company_id} lines={len(self.cart.lines)}")

        # Estado actual: precios, descuento y disponibilidad
        self.priced_lines, self.discount = await self._price_and_resolve(db)

        failures: List[LineFailure] = []
        for priced in self.priced_lines:
            line = priced.line
            availability = await InventoryService.check_availability(
                db, event_id, line.resource_id, line.sub_selection_id, line.quantity
            )
            logger.debug(
                f"Availability {line.resource_id}/{line.sub_selection_id}: "
                f"requested={line.quantity} remaining={availability.remaining} ok={availability.ok}"
            )
            if not availability.ok:
                failures.append(self._failure(line, availability.remaining, availability.reason))
        if failures:
            await db.rollback()
            logger.info(f"Checkout rejected: {len(failures)} line(s) without stock for event {event_id}")
            raise InsufficientInventoryError(failures)

        # Sólo un estado inicial contado retiene stock; si no, se compromete al pasar a uno contado
        status = self._initial_status()
        if InventoryService.is_counted(status):
            # Compare-and-swap por línea; todas se evalúan para reportar cada falla
            for priced in self.priced_lines:
                line = priced.line
                committed = await InventoryService.commit(
                    db, event_id, line.resource_id, line.sub_selection_id, line.quantity
                )
                if not committed:
                    availability = await InventoryService.check_availability(
                        db, event_id, line.resource_id, line.sub_selection_id, line.quantity
                    )
                    failures.append(self._failure(line, availability.remaining, "insufficient"))
            if failures:
                await db.rollback()
                logger.info(f"Checkout lost inventory race: {len(failures)} line(s) for event {event_id}")
                raise InsufficientInventoryError(failures)

        order = self._build_order(company_id, idempotency_key, status)
        db.add(order)
        await db.commit()
        logger.info(
            f"Checkout committed: order={order.id} total={order.total_amount} "
            f"status={order.status} discount_source={order.discount_source}"
        )
        return order

    def _is_offline(self) -> bool:
        return self.payment_method in {m.value for m in OFFLINE_PAYMENT_METHODS}

    def _initial_status(self) -> str:
        """COMPLETED sólo con auto-complete y pago online; la transferencia espera confirmación"""
        if settings.CHECKOUT_AUTO_COMPLETE and not self._is_offline():
            return OrderStatus.COMPLETED.value
        return OrderStatus.PENDING.value

    def _build_order(self, company_id, idempotency_key: Optional[str], status: str) -> PurchaseOrder:
        now = self.now()
        discount = self.discount
        account = self.account
        paid = status == OrderStatus.COMPLETED.value

        items = []
        for priced in self.priced_lines:
            line = priced.line
            items.append(OrderItem(
                product_id=to_uuid(line.resource_id),
                product_type=line.resource_type,
                sub_selection_id=to_uuid(line.sub_selection_id) if line.sub_selection_id else None,
                name=line.name,
                quantity=line.quantity,
                unit_price=round_money(line.unit_price),
                line_total=round_money(line.line_total),
                discount_amount=discount.line_discounts.get(line.key, ZERO),
                created_at=now,
            ))

        return PurchaseOrder(
            company_id=to_uuid(company_id),
            event_id=to_uuid(self.cart.event_id),
            status=status,
            subtotal=discount.subtotal,
            discount_total=discount.amount,
            total_amount=discount.total,
            currency=settings.CURRENCY,
            payment_method=self.payment_method,
            offline_payment=self._is_offline(),
            discount_source=discount.source,
            coupon_id=to_uuid(discount.coupon.id) if discount.coupon else None,
            offer_id=to_uuid(discount.offer.id) if discount.offer else None,
            billing_name=account.name,
            billing_email=account.email,
            billing_phone=account.phone,
            billing_address_line1=account.address1,
            billing_address_line2=account.address2,
            billing_city=account.city,
            billing_state=account.state,
            billing_zip=account.zip,
            billing_country=account.country,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
            paid_at=now if paid else None,
            items=items,
        )


class CheckoutService:
    """Orquestación del checkout completo a partir de un request HTTP"""

    @staticmethod
    async def get_company(db: AsyncSession, company_id) -> Company:
        company_uuid = try_uuid(company_id)
        company = await db.get(Company, company_uuid) if company_uuid else None
        if company is None:
            raise CheckoutValidationError("Empresa no encontrada", fields=["company_id"])
        return company

    @staticmethod
    async def get_account_prefill(db: AsyncSession, company_id) -> AccountDetails:
        company = await CheckoutService.get_company(db, company_id)
        return AccountDetails.from_company(company)

    @staticmethod
    async def find_by_idempotency_key(
        db: AsyncSession,
        company_id,
        event_id,
        idempotency_key: str,
    ) -> Optional[PurchaseOrder]:
        """Orden previa de la misma empresa y evento con esa clave"""
        result = await db.execute(
            select(PurchaseOrder).where(
                PurchaseOrder.company_id == to_uuid(company_id),
                PurchaseOrder.event_id == to_uuid(event_id),
                PurchaseOrder.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def preview(
        db: AsyncSession,
        event_id,
        lines: List[CartLineItem],
        coupon_code: Optional[str] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> ResolvedDiscount:
        """Descuento que aplicaría el checkout, sin comprometer nada"""
        await CatalogService.get_event(db, event_id)
        flow = CheckoutFlow(CartStore(str(event_id), lines), now=now)
        return await flow.review_cart(db, coupon_code)

    @staticmethod
    async def checkout(
        db: AsyncSession,
        event_id,
        request,
        now: Callable[[], datetime] = utcnow,
    ) -> Tuple[PurchaseOrder, bool]:
        """
        Ejecutar el checkout completo.

        Returns:
            (orden, creada). creada=False cuando la misma empresa ya tenía una
            orden para este evento con ese idempotency_key.
        """
        event = await CatalogService.get_event(db, event_id)
        company = await CheckoutService.get_company(db, request.company_id)

        if request.idempotency_key:
            existing = await CheckoutService.find_by_idempotency_key(
                db, company.id, event.id, request.idempotency_key
            )
            if existing is not None:
                logger.info(f"Idempotent checkout replay: order={existing.id}")
                return existing, False

        cart = CartStore(str(event_id), (item.to_line() for item in request.cart_items))
        flow = CheckoutFlow(cart, now=now)

        coupon_code = request.coupon.code if request.coupon else None
        await flow.review_cart(db, coupon_code)
        flow.set_account(AccountDetails.from_company(company).merged_with(request.account.model_dump()))
        flow.select_payment(request.payment_method, request.accept_terms, request.accept_policies)

        company_uuid, event_uuid = company.id, event.id
        try:
            order = await flow.submit(db, company_uuid, request.idempotency_key)
        except IntegrityError:
            # Otro request con la misma clave ganó la carrera
            if request.idempotency_key:
                existing = await CheckoutService.find_by_idempotency_key(
                    db, company_uuid, event_uuid, request.idempotency_key
                )
                if existing is not None:
                    return existing, False
            raise
        return order, True
