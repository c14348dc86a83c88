"""
Agrégation des reversements organisateurs.

- aggregate_payouts: pur, regroupe organizer_payout par organisateur (et devise)
- process_order_payouts: une fois par commande completed (verrou payout_status), écriture groupée
- run_payout_batch: balayage planifié des commandes completed non encore traitées
Invariant: Σ montants des reversements == Σ organizer_payout des billets de la commande.
"""
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4
import logging

from tikiti.config import PAYOUT_BATCH_LIMIT
from tikiti.errors import OrderStateError
from tikiti.orders import repository as orders_repo
from tikiti.orders.models import Order, PaymentStatus, Ticket, TicketStatus
from tikiti.payouts import repository as payouts_repo
from tikiti.payouts.models import PayoutRecord

logger = logging.getLogger(__name__)

PAYABLE_TICKET_STATUSES = (TicketStatus.ACTIVE, TicketStatus.USED)

def aggregate_payouts(
    tickets: Iterable[Ticket],
    *,
    order_id: Optional[str] = None,
    created_at: Optional[str] = None,
) -> List[PayoutRecord]:
    """Un PayoutRecord par (organisateur, devise); les montants nuls ne produisent pas de ligne."""
    groups: "OrderedDict[Tuple[str, str], List[Ticket]]" = OrderedDict()
    for ticket in tickets:
        groups.setdefault((ticket.organizer_id, ticket.currency), []).append(ticket)

    records: List[PayoutRecord] = []
    for (organizer_id, currency), group in groups.items():
        amount = sum((t.organizer_payout for t in group), Decimal(0))
        if amount == 0:
            continue
        records.append(PayoutRecord(
            id=str(uuid4()),
            organizer_id=organizer_id,
            amount=amount,
            currency=currency,
            order_id=order_id,
            ticket_ids=tuple(t.id for t in group),
            created_at=created_at,
        ))
    return records

def process_order_payouts(order: Order) -> List[PayoutRecord]:
    """
    Crée les reversements d'une commande completed, une seule fois.
    - Second appel (ou appel concurrent): no-op, retourne []
    - Échec d'écriture: verrou relâché puis erreur propagée (reprise par le balayage)
    """
    if order.payment_status is not PaymentStatus.COMPLETED:
        raise OrderStateError(f"Order {order.id} is not completed", code="order_not_completed")
    if not payouts_repo.claim_order_payout(order.id):
        logger.info("payouts.service.process_order_payouts already processed order_id=%s", order.id)
        return []

    try:
        tickets = orders_repo.list_order_tickets(order.id)
        payable = [t for t in tickets if t.payment_status in PAYABLE_TICKET_STATUSES]
        if len(payable) != order.ticket_count:
            raise OrderStateError(
                f"Order {order.id} has {len(payable)}/{order.ticket_count} active tickets",
                code="tickets_not_active",
            )
        records = aggregate_payouts(payable, order_id=order.id, created_at=orders_repo.now_iso())
        payouts_repo.insert_payouts([r.to_row() for r in records])
    except Exception:
        payouts_repo.release_order_payout(order.id)
        raise

    logger.info("payouts.service.process_order_payouts order_id=%s organizers=%s", order.id, len(records))
    return records

def run_payout_batch(limit: int = PAYOUT_BATCH_LIMIT) -> Dict[str, int]:
    summary = {"orders": 0, "payouts": 0, "failed": 0}
    for order in payouts_repo.list_unprocessed_completed_orders(limit=limit):
        try:
            records = process_order_payouts(order)
        except Exception:
            logger.exception("payouts.service.run_payout_batch order failed order_id=%s", order.id)
            summary["failed"] += 1
            continue
        summary["orders"] += 1
        summary["payouts"] += len(records)
    logger.info("payouts.service.run_payout_batch %s", summary)
    return summary
