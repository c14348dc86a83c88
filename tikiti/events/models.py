"""
Vue lecture seule des événements nécessaire au panier et à la matérialisation.
Les types de billets sont stockés dans la colonne JSON events.ticket_types:
[{id, name, price, quantity, sold}, ...]
venue_capacity: jauge physique du lieu; current_capacity: entrées enregistrées au scan.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from tikiti.utils.currency import to_decimal


@dataclass(frozen=True)
class TicketType:
    id: str
    name: str
    price: Decimal
    quantity: int
    sold: int = 0

    @property
    def remaining(self) -> int:
        return max(self.quantity - self.sold, 0)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TicketType":
        return cls(
            id=str(row.get("id") or ""),
            name=str(row.get("name") or ""),
            price=to_decimal(row.get("price") or 0),
            quantity=int(row.get("quantity") or 0),
            sold=int(row.get("sold") or 0),
        )


@dataclass(frozen=True)
class Event:
    id: str
    title: str
    organizer_id: str
    currency: str = "KES"
    has_virtual_tickets: bool = False
    ticket_types: Tuple[TicketType, ...] = field(default_factory=tuple)
    image_url: Optional[str] = None
    venue_capacity: int = 0
    current_capacity: int = 0

    def ticket_type(self, ticket_type_id: str) -> Optional[TicketType]:
        return next((t for t in self.ticket_types if t.id == ticket_type_id), None)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Event":
        return cls(
            id=str(row.get("id") or ""),
            title=str(row.get("title") or ""),
            organizer_id=str(row.get("organizer_id") or ""),
            currency=str(row.get("currency") or "KES").upper(),
            has_virtual_tickets=bool(row.get("has_virtual_tickets")),
            ticket_types=tuple(TicketType.from_row(t) for t in (row.get("ticket_types") or [])),
            image_url=row.get("image_url"),
            venue_capacity=int(row.get("venue_capacity") or 0),
            current_capacity=int(row.get("current_capacity") or 0),
        )
