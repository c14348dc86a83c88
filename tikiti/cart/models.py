"""
Valeurs du panier (immuables). Le panier est une valeur: chaque mutation produit un nouveau Cart
(voir cart.service), la persistance est faite par l'application hôte (session).
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from tikiti.utils.currency import format_currency, to_decimal, to_storage


@dataclass(frozen=True)
class CartLine:
    cart_item_id: str
    event_id: str
    ticket_type_id: str
    unit_price: Decimal
    currency: str
    quantity: int
    is_virtual: bool = False
    # Instantané d'affichage / de matérialisation
    event_title: str = ""
    ticket_type_name: str = ""
    organizer_id: str = ""

    @property
    def merge_key(self) -> Tuple[str, str, bool]:
        return (self.event_id, self.ticket_type_id, self.is_virtual)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cart_item_id": self.cart_item_id,
            "event_id": self.event_id,
            "ticket_type_id": self.ticket_type_id,
            "unit_price": to_storage(self.unit_price, self.currency),
            "currency": self.currency,
            "quantity": self.quantity,
            "is_virtual": self.is_virtual,
            "event_title": self.event_title,
            "ticket_type_name": self.ticket_type_name,
            "organizer_id": self.organizer_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            cart_item_id=str(data["cart_item_id"]),
            event_id=str(data["event_id"]),
            ticket_type_id=str(data["ticket_type_id"]),
            unit_price=to_decimal(data["unit_price"]),
            currency=str(data.get("currency") or "KES").upper(),
            quantity=max(int(data.get("quantity") or 1), 1),
            is_virtual=bool(data.get("is_virtual")),
            event_title=str(data.get("event_title") or ""),
            ticket_type_name=str(data.get("ticket_type_name") or ""),
            organizer_id=str(data.get("organizer_id") or ""),
        )


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    platform_fee: Decimal
    grand_total: Decimal
    currency: Optional[str]
    item_count: int

    def to_dict(self) -> Dict[str, Any]:
        currency = self.currency or "KES"
        return {
            "subtotal": to_storage(self.subtotal, currency),
            "platform_fee": to_storage(self.platform_fee, currency),
            "grand_total": to_storage(self.grand_total, currency),
            "currency": self.currency,
            "item_count": self.item_count,
            "display_total": format_currency(self.grand_total, currency),
        }


@dataclass(frozen=True)
class Cart:
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def currency(self) -> Optional[str]:
        return self.lines[0].currency if self.lines else None

    def line(self, cart_item_id: str) -> Optional[CartLine]:
        return next((l for l in self.lines if l.cart_item_id == cart_item_id), None)

    def to_list(self) -> List[Dict[str, Any]]:
        return [l.to_dict() for l in self.lines]

    @classmethod
    def from_list(cls, items: Optional[List[Dict[str, Any]]]) -> "Cart":
        return cls(lines=tuple(CartLine.from_dict(i) for i in (items or [])))
