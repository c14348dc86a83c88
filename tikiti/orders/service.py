"""
Matérialisation d'un panier en commande + billets.

Étapes:
  1) Valider l'entrée (panier non vide, acheteur, moyen de paiement autorisé, téléphone)
  2) Revérifier stock et support virtuel sur les données fraîches des événements
  3) Construire un billet par unité achetée, avec sa part de commission calculée à l'unité
  4) Écrire la commande puis les billets en un seul lot; compensation si le lot échoue
Un panier à 0 passe par le rail synchrone "free": commande completed et billets actifs d'emblée.
"""
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import uuid4
import logging
import secrets

from tikiti.cart import service as cart_service
from tikiti.cart.models import Cart
from tikiti.errors import MaterializationError, OrderNotFound, ValidationError
from tikiti.events import repository as events_repo
from tikiti.events.models import Event
from tikiti.orders import repository as orders_repo
from tikiti.orders.models import Order, PaymentMethod, PaymentStatus, Ticket, TicketStatus
from tikiti.utils.currency import payment_methods_for_currency, platform_fee
from tikiti.utils.qrcode_utils import build_qr_payload
from tikiti.utils.validators import normalize_phone

logger = logging.getLogger(__name__)

PAYOUT_SKIPPED = "skipped"


@dataclass(frozen=True)
class FeeSplit:
    unit_price: Decimal
    platform_fee_share: Decimal
    organizer_payout: Decimal


def split_unit_price(unit_price: Decimal, currency: str) -> FeeSplit:
    """Part plateforme = round(prix × 5%), reversement = prix - part: la somme retombe exactement sur le prix."""
    share = platform_fee(unit_price, currency)
    return FeeSplit(unit_price=unit_price, platform_fee_share=share, organizer_payout=unit_price - share)


def resolve_payment_method(value: str, currency: str, grand_total: Decimal) -> PaymentMethod:
    if grand_total == 0:
        return PaymentMethod.FREE
    try:
        method = PaymentMethod((value or "").lower())
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value}", code="invalid_payment_method")
    if method.value not in payment_methods_for_currency(currency):
        raise ValidationError(
            f"Payment method {method.value} is not available for {currency}", code="invalid_payment_method"
        )
    return method


def recheck_cart(cart: Cart, events: Dict[str, Event]) -> None:
    """
    Revalide le panier contre l'état courant des événements.
    Les quantités d'un même type de billet (virtuel ou non) partagent le même stock.
    """
    requested: Dict[Tuple[str, str], int] = defaultdict(int)
    for line in cart.lines:
        event = events.get(line.event_id)
        if event is None:
            raise ValidationError("Event is no longer available", code="event_unavailable")
        if event.ticket_type(line.ticket_type_id) is None:
            raise ValidationError("Ticket type is no longer available", code="ticket_type_unavailable")
        cart_service.check_virtual_eligibility(event, line.is_virtual)
        requested[(line.event_id, line.ticket_type_id)] += line.quantity

    for (event_id, ticket_type_id), quantity in requested.items():
        cart_service.check_inventory(events[event_id].ticket_type(ticket_type_id), quantity)


def build_order(
    cart: Cart,
    *,
    user_id: str,
    method: PaymentMethod,
    events: Dict[str, Event],
    phone_number: Optional[str] = None,
    created_at: Optional[str] = None,
) -> Tuple[Order, List[Ticket]]:
    """Construit (sans écrire) la commande et ses billets, un par unité."""
    order_id = str(uuid4())
    currency = cart.currency or "KES"
    totals = cart_service.totals(cart)
    synchronous = method is PaymentMethod.FREE
    ticket_status = TicketStatus.ACTIVE if synchronous else TicketStatus.PENDING

    tickets: List[Ticket] = []
    for line in cart.lines:
        event = events[line.event_id]
        split = split_unit_price(line.unit_price, currency)
        for _ in range(line.quantity):
            ticket_id = str(uuid4())
            tickets.append(Ticket(
                id=ticket_id,
                order_id=order_id,
                user_id=user_id,
                event_id=event.id,
                event_title=event.title,
                organizer_id=event.organizer_id,
                ticket_type_id=line.ticket_type_id,
                ticket_type=line.ticket_type_name,
                unit_price=split.unit_price,
                platform_fee_share=split.platform_fee_share,
                organizer_payout=split.organizer_payout,
                currency=currency,
                is_virtual=line.is_virtual,
                stream_token=secrets.token_urlsafe(24) if line.is_virtual else None,
                qr_payload=build_qr_payload(
                    ticket_id=ticket_id,
                    event_id=event.id,
                    user_id=user_id,
                    order_id=order_id,
                    ticket_type=line.ticket_type_name,
                    is_virtual=line.is_virtual,
                ),
                payment_status=ticket_status,
                purchased_at=created_at,
            ))

    order = Order(
        id=order_id,
        user_id=user_id,
        currency=currency,
        payment_method=method,
        subtotal=totals.subtotal,
        platform_fee=totals.platform_fee,
        grand_total=totals.grand_total,
        line_items=tuple(cart.to_list()),
        ticket_ids=tuple(t.id for t in tickets),
        payment_status=PaymentStatus.COMPLETED if synchronous else PaymentStatus.PENDING,
        phone_number=phone_number,
        provider=PaymentMethod.FREE.value if synchronous else None,
        payout_status=PAYOUT_SKIPPED if synchronous else None,
        created_at=created_at,
        completed_at=created_at if synchronous else None,
    )
    return order, tickets


def materialize_order(
    cart: Cart,
    *,
    user_id: str,
    payment_method: str,
    phone_number: Optional[str] = None,
) -> Tuple[Order, List[Ticket]]:
    """
    Crée la commande et tous ses billets comme une seule unité logique.
    - ValidationError / VirtualNotSupported / InsufficientInventory avant toute écriture
    - MaterializationError si l'écriture échoue (la commande partielle est supprimée)
    """
    if cart.is_empty:
        raise ValidationError("Cart is empty", code="empty_cart")
    if not user_id:
        raise ValidationError("Buyer identity is required", code="missing_user")

    currency = cart.currency or "KES"
    method = resolve_payment_method(payment_method, currency, cart_service.totals(cart).grand_total)
    phone = None
    if method.requires_phone:
        if not phone_number:
            raise ValidationError("Phone number is required for this payment method", code="missing_phone")
        phone = normalize_phone(phone_number, currency)

    events = events_repo.get_events_map(line.event_id for line in cart.lines)
    recheck_cart(cart, events)

    order, tickets = build_order(
        cart,
        user_id=user_id,
        method=method,
        events=events,
        phone_number=phone,
        created_at=orders_repo.now_iso(),
    )

    if orders_repo.insert_order(order.to_row()) is None:
        raise MaterializationError("Could not create order")
    if not orders_repo.insert_tickets([t.to_row() for t in tickets]):
        if not orders_repo.delete_order(order.id):
            logger.error("orders.service.materialize_order rollback failed order_id=%s", order.id)
        raise MaterializationError("Could not create tickets")

    logger.info(
        "orders.service.materialize_order order_id=%s method=%s tickets=%s total=%s %s",
        order.id, method.value, len(tickets), order.grand_total, currency,
    )
    return order, tickets


def get_order_for_user(order_id: str, user: Dict) -> Order:
    """Charge une commande appartenant à l'utilisateur (les admins voient tout)."""
    order = orders_repo.get_order(order_id)
    if order is None or (order.user_id != user.get("id") and user.get("role") != "admin"):
        raise OrderNotFound(order_id)
    return order
