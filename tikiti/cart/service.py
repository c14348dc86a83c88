"""
Logique panier pure (pas de session, pas de DB).

- Réducteurs: add_line / remove_line / set_quantity / clear -> nouveau Cart.
- Prédicats: check_virtual_eligibility / check_inventory, testables sans stockage.
- totals: sous-total, commission plateforme (5%, arrondi de la devise), total.
Le prix unitaire est celui fixé par l'organisateur; le panier ne le modifie jamais.
"""
from typing import Callable, Optional
from uuid import uuid4

from tikiti.cart.models import Cart, CartLine, CartTotals
from tikiti.errors import InsufficientInventory, ValidationError, VirtualNotSupported
from tikiti.events.models import Event, TicketType
from tikiti.utils.currency import platform_fee, quantize

# module tikiti.cart.service
def check_virtual_eligibility(event: Event, is_virtual: bool) -> None:
    if is_virtual and not event.has_virtual_tickets:
        raise VirtualNotSupported(event.id)

def check_inventory(ticket_type: TicketType, requested: int, already_in_cart: int = 0) -> None:
    """
    Vérifie que la quantité totale (déjà au panier + demandée) tient dans le stock restant.
    - remaining = quantity - sold
    - Lève InsufficientInventory ("Sold out" si remaining == 0, sinon "Only N left")
    """
    if requested + already_in_cart > ticket_type.remaining:
        raise InsufficientInventory(ticket_type.id, ticket_type.remaining)

def find_line(cart: Cart, event_id: str, ticket_type_id: str, is_virtual: bool) -> Optional[CartLine]:
    key = (event_id, ticket_type_id, bool(is_virtual))
    return next((l for l in cart.lines if l.merge_key == key), None)

def quantity_in_cart(cart: Cart, event_id: str, ticket_type_id: str, exclude_item_id: Optional[str] = None) -> int:
    """Unités déjà au panier pour un type de billet, lignes virtuelles et physiques confondues (stock partagé)."""
    return sum(
        l.quantity for l in cart.lines
        if l.event_id == event_id and l.ticket_type_id == ticket_type_id and l.cart_item_id != exclude_item_id
    )

def add_line(
    cart: Cart,
    event: Event,
    ticket_type: TicketType,
    quantity: int,
    is_virtual: bool = False,
    new_id: Callable[[], str] = lambda: uuid4().hex,
) -> Cart:
    """
    Ajoute (ou fusionne) une ligne.
    - Rejette si le billet virtuel n'est pas proposé par l'événement (VirtualNotSupported).
    - Rejette si le stock restant est insuffisant pour le total du type au panier (InsufficientInventory).
    - Fusionne avec la ligne {event, type, virtuel} existante en incrémentant la quantité.
    Le panier d'origine n'est jamais modifié (en cas d'erreur, il reste tel quel).
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError("Quantity must be at least 1", code="invalid_quantity")
    check_virtual_eligibility(event, is_virtual)
    if cart.currency and cart.currency != event.currency:
        raise ValidationError(
            f"Cart already holds {cart.currency} tickets; checkout before adding {event.currency} tickets",
            code="currency_mismatch",
        )

    existing = find_line(cart, event.id, ticket_type.id, is_virtual)
    check_inventory(ticket_type, quantity, quantity_in_cart(cart, event.id, ticket_type.id))

    if existing:
        lines = tuple(
            l.with_quantity(l.quantity + quantity) if l.cart_item_id == existing.cart_item_id else l
            for l in cart.lines
        )
        return Cart(lines=lines)

    line = CartLine(
        cart_item_id=new_id(),
        event_id=event.id,
        ticket_type_id=ticket_type.id,
        unit_price=quantize(ticket_type.price, event.currency),
        currency=event.currency,
        quantity=quantity,
        is_virtual=bool(is_virtual),
        event_title=event.title,
        ticket_type_name=ticket_type.name,
        organizer_id=event.organizer_id,
    )
    return Cart(lines=cart.lines + (line,))

def remove_line(cart: Cart, cart_item_id: str) -> Cart:
    return Cart(lines=tuple(l for l in cart.lines if l.cart_item_id != cart_item_id))

def set_quantity(
    cart: Cart,
    cart_item_id: str,
    quantity: int,
    ticket_type: Optional[TicketType] = None,
) -> Cart:
    """
    Change la quantité d'une ligne.
    - quantity <= 0: équivaut à remove_line
    - sinon bornée à >= 1; si ticket_type est fourni, le stock est revérifié à la hausse
      (avec les autres lignes du même type, virtuelles ou physiques)
    - ligne inconnue: panier inchangé
    """
    line = cart.line(cart_item_id)
    if line is None:
        return cart
    if quantity <= 0:
        return remove_line(cart, cart_item_id)
    quantity = max(int(quantity), 1)
    if ticket_type is not None and quantity > line.quantity:
        others = quantity_in_cart(cart, line.event_id, line.ticket_type_id, exclude_item_id=cart_item_id)
        check_inventory(ticket_type, quantity, others)
    return Cart(lines=tuple(
        l.with_quantity(quantity) if l.cart_item_id == cart_item_id else l for l in cart.lines
    ))

def clear(cart: Cart) -> Cart:
    return Cart()

def totals(cart: Cart) -> CartTotals:
    """
    Totaux recalculés à chaque mutation:
    subtotal = Σ(prix × quantité); platform_fee = round(subtotal × 5%); grand_total = subtotal + platform_fee
    """
    currency = cart.currency or "KES"
    subtotal = quantize(sum((l.line_total for l in cart.lines), 0), currency)
    fee = platform_fee(subtotal, currency)
    return CartTotals(
        subtotal=subtotal,
        platform_fee=fee,
        grand_total=subtotal + fee,
        currency=cart.currency,
        item_count=sum(l.quantity for l in cart.lines),
    )
