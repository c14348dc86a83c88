"""
Réconciliation: transition terminale unique d'une commande à partir d'un signal vérifié.

    pending --succès--> completed (billets pending -> active, puis reversements)
    pending --échec---> failed    (billets pending -> cancelled, aucun reversement)

- next_status est pur: un état déjà terminal retourne None (doublon = no-op, jamais une erreur).
- L'écriture est conditionnelle (payment_status = 'pending'): deux webhooks concurrents,
  un seul gagne.
- Si la bascule des billets échoue, la commande est remise à pending et l'erreur propagée.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
import logging

from tikiti.config import PAYOUT_BATCH_LIMIT, PENDING_ORDER_TTL_SECONDS
from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders import repository as orders_repo
from tikiti.orders.models import Order, PaymentMethod, PaymentStatus, TicketStatus
from tikiti.payments import registry
from tikiti.payments.base import Outcome, PaymentSignal
from tikiti.payouts import service as payouts_service
from tikiti.utils.currency import quantize

logger = logging.getLogger(__name__)

SYSTEM_PROVIDER = "system"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    order_id: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    payouts_created: int = 0

    def to_dict(self):
        return {
            "outcome": self.outcome.value,
            "order_id": self.order_id,
            "payment_status": self.payment_status.value if self.payment_status else None,
            "payouts_created": self.payouts_created,
        }


def next_status(current: PaymentStatus, outcome: Outcome) -> Optional[PaymentStatus]:
    if current is not PaymentStatus.PENDING:
        return None
    return PaymentStatus.COMPLETED if outcome is Outcome.SUCCESS else PaymentStatus.FAILED


def check_signal_matches(order: Order, signal: PaymentSignal) -> None:
    """Refuse un signal qui ne correspond pas à la commande (id, devise ou montant)."""
    if signal.order_id and signal.order_id != order.id:
        raise ReconciliationAmbiguity(signal.provider, "Signal order id does not match the stored reference")
    if signal.outcome is not Outcome.SUCCESS:
        return
    if signal.currency and signal.currency.upper() != order.currency:
        raise ReconciliationAmbiguity(signal.provider, f"Currency mismatch {signal.currency} != {order.currency}")
    if signal.amount is not None and quantize(signal.amount, order.currency) != quantize(order.grand_total, order.currency):
        raise ReconciliationAmbiguity(signal.provider, f"Amount mismatch {signal.amount} != {order.grand_total}")


def apply_to_order(order: Order, signal: PaymentSignal) -> ReconcileResult:
    check_signal_matches(order, signal)
    target = next_status(order.payment_status, signal.outcome)
    if target is None:
        if signal.outcome is Outcome.SUCCESS and order.payment_status is PaymentStatus.FAILED:
            logger.warning(
                "reconciliation success signal for failed order order_id=%s provider=%s confirmation=%s",
                order.id, signal.provider, signal.confirmation_id,
            )
        else:
            logger.info("reconciliation duplicate signal order_id=%s status=%s", order.id, order.payment_status.value)
        return ReconcileResult(ReconcileOutcome.NOOP, order.id, order.payment_status)

    if target is PaymentStatus.COMPLETED:
        fields = {"completed_at": orders_repo.now_iso(), "confirmation_id": signal.confirmation_id}
        ticket_target = TicketStatus.ACTIVE
    else:
        fields = {"failure_reason": signal.reason or "payment failed"}
        ticket_target = TicketStatus.CANCELLED

    updated = orders_repo.transition_order(order.id, target, fields=fields)
    if updated is None:
        # Une autre livraison a gagné la course
        current = orders_repo.get_order(order.id) or order
        logger.info("reconciliation lost race order_id=%s status=%s", order.id, current.payment_status.value)
        return ReconcileResult(ReconcileOutcome.NOOP, order.id, current.payment_status)

    try:
        orders_repo.transition_tickets(order.id, TicketStatus.PENDING, ticket_target)
    except Exception:
        orders_repo.transition_order(
            order.id,
            PaymentStatus.PENDING,
            expected=target,
            fields={"completed_at": None, "confirmation_id": None, "failure_reason": None},
        )
        raise

    logger.info(
        "reconciliation applied order_id=%s %s provider=%s ref=%s",
        order.id, target.value, signal.provider, signal.provider_reference,
    )

    payouts_created = 0
    if target is PaymentStatus.COMPLETED:
        try:
            payouts_created = len(payouts_service.process_order_payouts(updated))
        except Exception:
            # Laissé au balayage planifié (payout_status reste null)
            logger.exception("reconciliation payouts deferred order_id=%s", order.id)
    return ReconcileResult(ReconcileOutcome.APPLIED, order.id, target, payouts_created)


def apply_signal(signal: PaymentSignal) -> ReconcileResult:
    """
    Point d'entrée des webhooks: retrouve la commande par (provider, référence) puis applique.
    Une référence inconnue est journalisée et ignorée (UNMATCHED).
    """
    order = orders_repo.find_order_by_reference(signal.provider, signal.provider_reference)
    if order is None:
        logger.warning(
            "reconciliation unmatched signal provider=%s ref=%s outcome=%s",
            signal.provider, signal.provider_reference, signal.outcome.value,
        )
        return ReconcileResult(ReconcileOutcome.UNMATCHED)
    return apply_to_order(order, signal)


def _poll_and_apply(order: Order) -> Order:
    """
    Interroge le rail pour une commande pending et applique le résultat s'il est final.
    Erreur fournisseur ou signal ambigu: commande inchangée; une erreur d'écriture est propagée.
    """
    if order.payment_status.is_terminal or not order.provider or not order.provider_reference:
        return order
    if order.provider in (PaymentMethod.FREE.value, SYSTEM_PROVIDER):
        return order

    try:
        signal = registry.adapter_for_provider(order.provider).fetch_status(order)
    except ProviderError as e:
        logger.info("reconciliation.refresh_order provider unavailable order_id=%s: %s", order.id, e.message)
        return order
    if signal is None:
        return order

    try:
        apply_to_order(order, signal)
    except ReconciliationAmbiguity as e:
        logger.warning("reconciliation.refresh_order ambiguous order_id=%s: %s", order.id, e.message)
        return order
    return orders_repo.get_order(order.id) or order


def refresh_order(order: Order) -> Order:
    """Variante tolérante pour les lectures de statut: toute erreur laisse la commande telle quelle."""
    try:
        return _poll_and_apply(order)
    except Exception:
        logger.exception("reconciliation.refresh_order failed order_id=%s", order.id)
        return order


def expire_stale_orders(
    ttl_seconds: int = PENDING_ORDER_TTL_SECONDS,
    limit: int = PAYOUT_BATCH_LIMIT,
    now: Optional[datetime] = None,
) -> int:
    """
    Passe en failed les commandes pending plus anciennes que ttl_seconds.
    Le rail est interrogé une dernière fois avant d'abandonner la commande.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=ttl_seconds)
    expired = 0
    for order in orders_repo.list_stale_pending_orders(cutoff.isoformat(), limit=limit):
        try:
            current = _poll_and_apply(order)
            if current.payment_status.is_terminal:
                continue
            result = apply_to_order(current, PaymentSignal(
                provider=SYSTEM_PROVIDER,
                provider_reference=current.provider_reference or current.id,
                outcome=Outcome.FAILURE,
                reason="expired",
            ))
        except Exception:
            logger.exception("reconciliation.expire_stale_orders failed order_id=%s", order.id)
            continue
        if result.outcome is ReconcileOutcome.APPLIED:
            expired += 1
    if expired:
        logger.info("reconciliation.expire_stale_orders expired=%s", expired)
    return expired
