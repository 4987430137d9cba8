"""Carrito en memoria para un evento"""
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Any

from services.purchase.models.cart import CartLineItem, CartKey
from shared.utils.money import round_money


class CartStore:
    """
    Selección en curso de UN evento.

    Las líneas se identifican por (resource_id, sub_selection_id); agregar
    una clave existente suma cantidades. No valida inventario.
    """

    def __init__(self, event_id: str, lines: Optional[Iterable[CartLineItem]] = None):
        self._event_id = str(event_id)
        self._lines: Dict[CartKey, CartLineItem] = {}
        for line in lines or ():
            self.add(line)

    @property
    def event_id(self) -> str:
        return self._event_id

    @property
    def lines(self) -> Tuple[CartLineItem, ...]:
        return tuple(self._lines.values())

    def add(self, item: CartLineItem, quantity: Optional[int] = None) -> CartLineItem:
        quantity = item.quantity if quantity is None else quantity
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        existing = self._lines.get(item.key)
        if existing is not None:
            line = replace(existing, quantity=existing.quantity + quantity)
        else:
            line = replace(item, quantity=quantity)
        self._lines[item.key] = line
        return line

    def remove(self, resource_id: str, sub_selection_id: Optional[str] = None) -> None:
        self._lines.pop(self._key(resource_id, sub_selection_id), None)

    def set_quantity(
        self,
        resource_id: str,
        new_quantity: int,
        sub_selection_id: Optional[str] = None,
    ) -> None:
        key = self._key(resource_id, sub_selection_id)
        existing = self._lines.get(key)
        if existing is None:
            return
        new_quantity = max(new_quantity, 0)
        if new_quantity == 0:
            del self._lines[key]
        else:
            self._lines[key] = replace(existing, quantity=new_quantity)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> Decimal:
        return round_money(sum((line.line_total for line in self._lines.values()), Decimal("0")))

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def to_payload(self) -> List[Dict[str, Any]]:
        """Líneas serializables (sesión del cliente / body del checkout)"""
        return [line.to_dict() for line in self._lines.values()]

    @classmethod
    def from_payload(cls, event_id: str, items: Iterable[Dict[str, Any]]) -> "CartStore":
        """Reconstruir el carrito; claves duplicadas se fusionan"""
        return cls(event_id, (CartLineItem.from_dict(item) for item in items))

    @staticmethod
    def _key(resource_id, sub_selection_id) -> CartKey:
        return (str(resource_id), str(sub_selection_id) if sub_selection_id is not None else None)
