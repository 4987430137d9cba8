"""Valores permitidos para las columnas de estado y tipo"""
import enum


class ResourceType(str, enum.Enum):
    TICKET = "TICKET"
    BOOTH = "BOOTH"
    BOOTH_SUB_TYPE = "BOOTH_SUB_TYPE"
    SPONSOR = "SPONSOR"
    HOTEL = "HOTEL"
    HOTEL_ROOM_TYPE = "HOTEL_ROOM_TYPE"


# Tipos que pueden ir como línea de carrito; los demás sólo como sub-selección
CART_RESOURCE_TYPES = (
    ResourceType.TICKET,
    ResourceType.BOOTH,
    ResourceType.SPONSOR,
    ResourceType.HOTEL,
)

# Tipo de sub-selección válido para cada tipo de línea
SUB_SELECTION_TYPES = {
    ResourceType.BOOTH: ResourceType.BOOTH_SUB_TYPE,
    ResourceType.HOTEL: ResourceType.HOTEL_ROOM_TYPE,
}


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class DiscountType(str, enum.Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class OfferScope(str, enum.Enum):
    ALL = "ALL"
    HOTELS = "HOTELS"
    TICKETS = "TICKETS"
    SPONSORS = "SPONSORS"
    BOOTHS = "BOOTHS"
    CUSTOM = "CUSTOM"


class PaymentMethod(str, enum.Enum):
    RAZORPAY = "razorpay"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


OFFLINE_PAYMENT_METHODS = (PaymentMethod.BANK_TRANSFER,)
