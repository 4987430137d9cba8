"""Errores de dominio con código estable y mensaje apto para el cliente"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException


class ErrorCode(str, Enum):
    EMPTY_CART = "empty_cart"
    INVALID_COUPON = "invalid_coupon"
    INELIGIBLE_OFFER = "ineligible_offer"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    VALIDATION_ERROR = "validation_error"
    EVENT_NOT_FOUND = "event_not_found"
    RESOURCE_NOT_FOUND = "resource_not_found"
    ORDER_NOT_FOUND = "order_not_found"
    PROMOTION_NOT_FOUND = "promotion_not_found"
    DUPLICATE_COUPON = "duplicate_coupon"
    INVALID_STATUS_TRANSITION = "invalid_status_transition"
    CHECKOUT_FAILED = "checkout_failed"


class DomainError(Exception):
    """Base de los errores de dominio"""

    status_code = 400

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code.value, "message": self.message}


@dataclass(frozen=True)
class LineFailure:
    """Línea del carrito que no pasó la validación de inventario"""

    resource_id: str
    sub_selection_id: Optional[str]
    name: Optional[str]
    requested: int
    remaining: Optional[int]
    reason: str  # insufficient, not_found, invalid_sub_selection

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EmptyCartError(DomainError):
    def __init__(self) -> None:
        super().__init__(ErrorCode.EMPTY_CART, "El carrito está vacío")


class InvalidCouponError(DomainError):
    status_code = 404

    def __init__(self, code: str) -> None:
        super().__init__(ErrorCode.INVALID_COUPON, "Cupón inválido o inactivo")
        self.coupon_code = code


class IneligibleOfferError(DomainError):
    """Oferta descartada durante la resolución; nunca llega al cliente"""

    def __init__(self, offer_id: str, reason: str) -> None:
        super().__init__(ErrorCode.INELIGIBLE_OFFER, f"Oferta {offer_id} no elegible: {reason}")
        self.offer_id = offer_id
        self.reason = reason


class InsufficientInventoryError(DomainError):
    status_code = 409

    def __init__(self, lines: List[LineFailure]) -> None:
        super().__init__(
            ErrorCode.INSUFFICIENT_INVENTORY,
            "No hay disponibilidad suficiente para uno o más ítems del carrito",
        )
        self.lines = lines

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["lines"] = [line.to_dict() for line in self.lines]
        return data


class CheckoutValidationError(DomainError):
    status_code = 422

    def __init__(self, message: str, fields: Optional[List[str]] = None) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message)
        self.fields = fields or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.fields:
            data["fields"] = self.fields
        return data


class EventNotFoundError(DomainError):
    status_code = 404

    def __init__(self, event_id: str) -> None:
        super().__init__(ErrorCode.EVENT_NOT_FOUND, "Evento no encontrado")
        self.event_id = event_id


class ResourceNotFoundError(DomainError):
    status_code = 404

    def __init__(self, resource_id: str) -> None:
        super().__init__(ErrorCode.RESOURCE_NOT_FOUND, "Recurso no encontrado")
        self.resource_id = resource_id


class OrderNotFoundError(DomainError):
    status_code = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(ErrorCode.ORDER_NOT_FOUND, "Orden no encontrada")
        self.order_id = order_id


class PromotionNotFoundError(DomainError):
    status_code = 404

    def __init__(self, promotion_id: str) -> None:
        super().__init__(ErrorCode.PROMOTION_NOT_FOUND, "Promoción no encontrada")
        self.promotion_id = promotion_id


class DuplicateCouponError(DomainError):
    status_code = 409

    def __init__(self, code: str) -> None:
        super().__init__(ErrorCode.DUPLICATE_COUPON, f"Ya existe un cupón con el código {code}")
        self.coupon_code = code


class InvalidStatusTransitionError(DomainError):
    status_code = 409

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"No se puede pasar una orden de {current} a {requested}",
        )
        self.current = current
        self.requested = requested


class CheckoutFailedError(DomainError):
    status_code = 503

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.CHECKOUT_FAILED,
            "No se pudo procesar la compra. Intenta nuevamente en unos momentos.",
        )


def to_http_exception(error: DomainError, status_code: Optional[int] = None) -> HTTPException:
    """HTTPException con el cuerpo {error, message, ...} del error de dominio"""
    return HTTPException(status_code=status_code or error.status_code, detail=error.to_dict())
