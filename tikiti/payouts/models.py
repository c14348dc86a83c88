from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from tikiti.orders.models import PayoutStatus
from tikiti.utils.currency import to_decimal, to_storage


@dataclass(frozen=True)
class PayoutRecord:
    id: str
    organizer_id: str
    amount: Decimal
    currency: str
    order_id: Optional[str] = None
    ticket_ids: Tuple[str, ...] = field(default_factory=tuple)
    status: PayoutStatus = PayoutStatus.PENDING
    created_at: Optional[str] = None

    @property
    def ticket_count(self) -> int:
        return len(self.ticket_ids)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organizer_id": self.organizer_id,
            "order_id": self.order_id,
            "amount": to_storage(self.amount, self.currency),
            "currency": self.currency,
            "status": self.status.value,
            "ticket_ids": list(self.ticket_ids),
            "ticket_count": self.ticket_count,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PayoutRecord":
        return cls(
            id=str(row["id"]),
            organizer_id=str(row.get("organizer_id") or ""),
            amount=to_decimal(row.get("amount") or 0),
            currency=str(row.get("currency") or "KES").upper(),
            order_id=str(row["order_id"]) if row.get("order_id") else None,
            ticket_ids=tuple(str(t) for t in (row.get("ticket_ids") or ())),
            status=PayoutStatus(row.get("status") or "pending"),
            created_at=row.get("created_at"),
        )
