"""
Endpoints API pour les commandes: checkout (panier -> commande + initiation du paiement),
lecture d'une commande et attente bornée de son statut terminal.

- Sécurité: toutes les routes requièrent un utilisateur authentifié (require_user)
- Checkout limité à 10 requêtes / minute (optional_rate_limit)
- Le panier n'est pas vidé par le checkout: le front le vide sur la page de confirmation
"""
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from tikiti.cart.repository import load_cart
from tikiti.config import PAYMENT_POLL_INTERVAL_SECONDS, PAYMENT_POLL_MAX_ATTEMPTS
from tikiti.orders import repository as orders_repo
from tikiti.orders import service as orders_service
from tikiti.orders.models import PaymentStatus
from tikiti.payments import service as payments_service
from tikiti.reconciliation import service as reconciler
from tikiti.reconciliation.polling import wait_for_terminal_status
from tikiti.tickets.service import ticket_public
from tikiti.utils.rate_limit import optional_rate_limit
from tikiti.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Orders API"])


class CheckoutRequest(BaseModel):
    payment_method: str
    phone_number: Optional[str] = None


# module tikiti.orders.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def checkout(payload: CheckoutRequest, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Matérialise le panier de session puis lance le paiement sur le rail choisi.
    Réponse: {order, payment} où payment vaut null pour une commande gratuite
    (déjà completed), sinon le handle du rail (redirect_url, message STK, ordre PayPal...).
    """
    cart = load_cart(request)
    order, _tickets = orders_service.materialize_order(
        cart,
        user_id=user.get("id"),
        payment_method=payload.payment_method,
        phone_number=payload.phone_number,
    )
    payment = None
    if order.payment_status is PaymentStatus.PENDING:
        handle = payments_service.initiate_payment(order, customer_email=user.get("email"))
        payment = handle.to_dict()
    return {"order": order.to_public(), "payment": payment}


@router.get("/orders/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(require_user)):
    order = orders_service.get_order_for_user(order_id, user)
    tickets = orders_repo.list_order_tickets(order.id)
    return {"order": order.to_public(), "tickets": [ticket_public(t) for t in tickets]}


@router.get("/orders/{order_id}/status")
def get_order_status(order_id: str, refresh: bool = False, user: Dict[str, Any] = Depends(require_user)):
    """
    Statut de paiement d'une commande.
    - refresh=1: interroge le rail si la commande est encore pending (repli si le webhook tarde)
    """
    order = orders_service.get_order_for_user(order_id, user)
    if refresh:
        order = reconciler.refresh_order(order)
    return {
        "order_id": order.id,
        "payment_status": order.payment_status.value,
        "provider": order.provider,
        "failure_reason": order.failure_reason,
    }


def _current_status(order_id: str) -> Optional[PaymentStatus]:
    order = orders_repo.get_order(order_id)
    return order.payment_status if order else None


@router.get("/orders/{order_id}/wait")
async def wait_order_status(
    order_id: str,
    request: Request,
    interval: float = Query(PAYMENT_POLL_INTERVAL_SECONDS, ge=0, le=PAYMENT_POLL_INTERVAL_SECONDS),
    max_attempts: int = Query(PAYMENT_POLL_MAX_ATTEMPTS, ge=1, le=PAYMENT_POLL_MAX_ATTEMPTS),
    user: Dict[str, Any] = Depends(require_user),
):
    """
    Attend (borné) que la commande atteigne completed ou failed.
    Lecture seule: un délai dépassé laisse la commande pending (timed_out=true).
    """
    order = await run_in_threadpool(orders_service.get_order_for_user, order_id, user)
    result = await wait_for_terminal_status(
        lambda: run_in_threadpool(_current_status, order.id),
        interval=interval,
        max_attempts=max_attempts,
        is_cancelled=request.is_disconnected,
    )
    if result.cancelled:
        logger.info("orders.views.wait_order_status client disconnected order_id=%s", order.id)
    return {"order_id": order.id, **result.to_dict()}
