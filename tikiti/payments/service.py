"""
Cas d'usage 'payments': initiation sur le rail, capture PayPal, traitement des webhooks.

La référence fournisseur est toujours taguée sur la commande AVANT de rendre la main
à l'acheteur, pour que le réconciliateur puisse retrouver la commande.
"""
from typing import Any, Dict, Mapping, Optional
import logging

from tikiti.errors import OrderStateError, ProviderError, ReconciliationAmbiguity, ValidationError
from tikiti.orders import repository as orders_repo
from tikiti.orders.models import Order, PaymentMethod, PaymentStatus
from tikiti.orders.service import get_order_for_user
from tikiti.payments import registry
from tikiti.payments.base import ProviderHandle
from tikiti.reconciliation import service as reconciler

logger = logging.getLogger(__name__)

# module tikiti.payments.service
def initiate_payment(
    order: Order,
    *,
    phone_number: Optional[str] = None,
    customer_email: Optional[str] = None,
) -> ProviderHandle:
    """
    Lance le paiement d'une commande pending sur son rail.
    - ProviderError si le rail échoue (la commande reste pending, réessayable)
    - la référence est écrite sur la commande avant retour
    """
    if order.payment_status is not PaymentStatus.PENDING:
        raise OrderStateError(f"Order is already {order.payment_status.value}")
    adapter = registry.get_adapter(order.payment_method)
    handle = adapter.initiate(order, phone_number=phone_number or order.phone_number, customer_email=customer_email)
    if not orders_repo.set_provider_reference(order.id, handle.provider, handle.reference):
        logger.error(
            "payments.service.initiate_payment reference not stored order_id=%s provider=%s ref=%s",
            order.id, handle.provider, handle.reference,
        )
        raise ProviderError(handle.provider, "Payment reference could not be recorded, please retry")
    return handle

def create_paypal_order(order_id: str, user: Dict[str, Any]) -> ProviderHandle:
    """(Re)crée l'ordre PayPal d'une commande pending payée par PayPal."""
    order = get_order_for_user(order_id, user)
    if order.payment_method is not PaymentMethod.PAYPAL:
        raise ValidationError("Order is not payable with PayPal", code="invalid_payment_method")
    return initiate_payment(order, customer_email=user.get("email"))

def capture_provider_order(provider_order_id: str, order_id: str, user: Dict[str, Any]) -> bool:
    """
    Capture un ordre PayPal approuvé.
    - True uniquement si la commande est completed après capture (idempotent)
    - False si PayPal ne confirme pas: la commande reste pending
    """
    order = get_order_for_user(order_id, user)
    if order.payment_method is not PaymentMethod.PAYPAL:
        raise ValidationError("Order is not payable with PayPal", code="invalid_payment_method")
    if order.provider_reference != provider_order_id:
        raise ValidationError("PayPal order does not belong to this order", code="reference_mismatch")
    if order.payment_status is PaymentStatus.COMPLETED:
        return True
    if order.payment_status is PaymentStatus.FAILED:
        raise OrderStateError("Order has already failed")

    adapter = registry.get_adapter(PaymentMethod.PAYPAL)
    signal = adapter.capture_provider_order(provider_order_id, order_id)
    if signal is None:
        return False
    try:
        result = reconciler.apply_to_order(order, signal)
    except ReconciliationAmbiguity as e:
        logger.warning("payments.service.capture_provider_order ambiguous order_id=%s: %s", order_id, e.message)
        return False
    return result.payment_status is PaymentStatus.COMPLETED

def handle_webhook(provider: str, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> Dict[str, Any]:
    """
    Traite un webhook fournisseur sans jamais lever: le fournisseur reçoit toujours un accusé 200.
    - non vérifiable -> "ignored" (WARNING), aucun changement d'état
    - erreur interne -> "error" (journalisée), le balayage / l'interrogation reprendront
    """
    try:
        adapter = registry.adapter_for_provider(provider)
        signal = adapter.parse_webhook(body, headers, query)
        result = reconciler.apply_signal(signal)
    except ReconciliationAmbiguity as e:
        logger.warning("payments.webhook ignored provider=%s reason=%s", provider, e.message)
        return {"status": "ignored"}
    except Exception:
        logger.exception("payments.webhook failed provider=%s", provider)
        return {"status": "error"}
    logger.info("payments.webhook provider=%s %s", provider, result.to_dict())
    return {"status": result.outcome.value, "order_id": result.order_id}
