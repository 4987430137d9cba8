"""Línea de carrito"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from shared.utils.money import to_decimal

CartKey = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class CartLineItem:
    """
    Selección de un recurso en el carrito.

    unit_price es el precio visto al agregar; el checkout lo vuelve a leer
    del catálogo antes de persistir la orden.
    """

    resource_id: str
    resource_type: str  # TICKET, BOOTH, HOTEL, SPONSOR
    unit_price: Decimal
    quantity: int = 1
    sub_selection_id: Optional[str] = None  # tipo de habitación o sub-tipo de booth
    name: Optional[str] = None
    image: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "resource_id", str(self.resource_id))
        if self.sub_selection_id is not None:
            object.__setattr__(self, "sub_selection_id", str(self.sub_selection_id))
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if self.quantity < 1:
            raise ValueError("quantity must be >= 1")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")

    @property
    def key(self) -> CartKey:
        return (self.resource_id, self.sub_selection_id)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "resource_type": self.resource_type,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "sub_selection_id": self.sub_selection_id,
            "name": self.name,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLineItem":
        return cls(
            resource_id=data["resource_id"],
            resource_type=data["resource_type"],
            unit_price=data.get("unit_price", 0),
            quantity=int(data.get("quantity", 1)),
            sub_selection_id=data.get("sub_selection_id"),
            name=data.get("name"),
            image=data.get("image"),
        )
