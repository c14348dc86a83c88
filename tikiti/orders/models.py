"""
Modèle commande / billet et statuts.

- Order: résumé d'une commande (instantané des lignes, montants, rail de paiement, référence fournisseur)
- Ticket: un billet par unité achetée, avec sa part de commission et le reversement organisateur
- Les montants sont des Decimal; to_row() sérialise pour Supabase (colonnes numeric en chaîne)
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tikiti.utils.currency import to_decimal, to_storage


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class TicketStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    USED = "used"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, Enum):
    MPESA = "mpesa"
    AIRTEL = "airtel"
    CARD = "card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    FREE = "free"

    @property
    def requires_phone(self) -> bool:
        return self in (PaymentMethod.MPESA, PaymentMethod.AIRTEL)


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    currency: str
    payment_method: PaymentMethod
    subtotal: Decimal
    platform_fee: Decimal
    grand_total: Decimal
    line_items: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)
    ticket_ids: Tuple[str, ...] = field(default_factory=tuple)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    phone_number: Optional[str] = None
    provider: Optional[str] = None
    provider_reference: Optional[str] = None
    confirmation_id: Optional[str] = None
    failure_reason: Optional[str] = None
    payout_status: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def ticket_count(self) -> int:
        return len(self.ticket_ids)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "line_items": list(self.line_items),
            "subtotal": to_storage(self.subtotal, self.currency),
            "platform_fee": to_storage(self.platform_fee, self.currency),
            "grand_total": to_storage(self.grand_total, self.currency),
            "currency": self.currency,
            "payment_method": self.payment_method.value,
            "phone_number": self.phone_number,
            "payment_status": self.payment_status.value,
            "ticket_ids": list(self.ticket_ids),
            "ticket_count": self.ticket_count,
            "provider": self.provider,
            "provider_reference": self.provider_reference,
            "confirmation_id": self.confirmation_id,
            "failure_reason": self.failure_reason,
            "payout_status": self.payout_status,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            currency=str(row.get("currency") or "KES").upper(),
            payment_method=PaymentMethod(row.get("payment_method") or "free"),
            subtotal=to_decimal(row.get("subtotal") or 0),
            platform_fee=to_decimal(row.get("platform_fee") or 0),
            grand_total=to_decimal(row.get("grand_total") or 0),
            line_items=tuple(row.get("line_items") or ()),
            ticket_ids=tuple(str(t) for t in (row.get("ticket_ids") or ())),
            payment_status=PaymentStatus(row.get("payment_status") or "pending"),
            phone_number=_opt_str(row.get("phone_number")),
            provider=_opt_str(row.get("provider")),
            provider_reference=_opt_str(row.get("provider_reference")),
            confirmation_id=_opt_str(row.get("confirmation_id")),
            failure_reason=_opt_str(row.get("failure_reason")),
            payout_status=_opt_str(row.get("payout_status")),
            created_at=_opt_str(row.get("created_at")),
            completed_at=_opt_str(row.get("completed_at")),
        )

    def to_public(self) -> Dict[str, Any]:
        """Vue renvoyée à l'acheteur (sans téléphone ni détails internes de reversement)."""
        row = self.to_row()
        for key in ("phone_number", "payout_status"):
            row.pop(key, None)
        return row


@dataclass(frozen=True)
class Ticket:
    id: str
    order_id: str
    user_id: str
    event_id: str
    organizer_id: str
    ticket_type_id: str
    ticket_type: str
    unit_price: Decimal
    platform_fee_share: Decimal
    organizer_payout: Decimal
    currency: str
    qr_payload: str
    is_virtual: bool = False
    event_title: str = ""
    stream_token: Optional[str] = None
    payment_status: TicketStatus = TicketStatus.PENDING
    checked_in: bool = False
    checked_in_at: Optional[str] = None
    purchased_at: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "event_title": self.event_title,
            "organizer_id": self.organizer_id,
            "ticket_type_id": self.ticket_type_id,
            "ticket_type": self.ticket_type,
            "unit_price": to_storage(self.unit_price, self.currency),
            "platform_fee_share": to_storage(self.platform_fee_share, self.currency),
            "organizer_payout": to_storage(self.organizer_payout, self.currency),
            "currency": self.currency,
            "is_virtual": self.is_virtual,
            "stream_token": self.stream_token,
            "qr_payload": self.qr_payload,
            "payment_status": self.payment_status.value,
            "checked_in": self.checked_in,
            "checked_in_at": self.checked_in_at,
            "purchased_at": self.purchased_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Ticket":
        return cls(
            id=str(row["id"]),
            order_id=str(row.get("order_id") or ""),
            user_id=str(row.get("user_id") or ""),
            event_id=str(row.get("event_id") or ""),
            organizer_id=str(row.get("organizer_id") or ""),
            ticket_type_id=str(row.get("ticket_type_id") or ""),
            ticket_type=str(row.get("ticket_type") or ""),
            unit_price=to_decimal(row.get("unit_price") or 0),
            platform_fee_share=to_decimal(row.get("platform_fee_share") or 0),
            organizer_payout=to_decimal(row.get("organizer_payout") or 0),
            currency=str(row.get("currency") or "KES").upper(),
            qr_payload=str(row.get("qr_payload") or ""),
            is_virtual=bool(row.get("is_virtual")),
            event_title=str(row.get("event_title") or ""),
            stream_token=_opt_str(row.get("stream_token")),
            payment_status=TicketStatus(row.get("payment_status") or "pending"),
            checked_in=bool(row.get("checked_in")),
            checked_in_at=_opt_str(row.get("checked_in_at")),
            purchased_at=_opt_str(row.get("purchased_at")),
        )


def tickets_from_rows(rows: List[Dict[str, Any]]) -> List[Ticket]:
    return [Ticket.from_row(r) for r in rows or []]
