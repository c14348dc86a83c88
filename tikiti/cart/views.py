from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from tikiti.cart import service as cart_service
from tikiti.cart.models import Cart
from tikiti.cart.repository import load_cart, save_cart
from tikiti.events import repository as events_repo
from tikiti.utils.currency import payment_methods_for_currency

router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])

class AddLineRequest(BaseModel):
    event_id: str
    ticket_type_id: str
    quantity: int = 1
    is_virtual: bool = False

class QuantityRequest(BaseModel):
    quantity: int

def cart_payload(cart: Cart) -> Dict[str, Any]:
    return {
        "items": cart.to_list(),
        "totals": cart_service.totals(cart).to_dict(),
        "payment_methods": payment_methods_for_currency(cart.currency) if cart.currency else [],
    }

# module tikiti.cart.views
@router.get("")
def get_cart(request: Request):
    return cart_payload(load_cart(request))

@router.post("/lines")
def add_cart_line(request: Request, payload: AddLineRequest):
    """
    Ajoute une sélection au panier de session.
    - Relit l'événement (stock, support virtuel, prix) depuis la table events
    - 404 si l'événement ou le type de billet est introuvable
    - 400 VirtualNotSupported / 409 InsufficientInventory via les erreurs métier
    """
    event = events_repo.get_event(payload.event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    ticket_type = event.ticket_type(payload.ticket_type_id)
    if not ticket_type:
        raise HTTPException(status_code=404, detail="Ticket type not found")

    cart = cart_service.add_line(
        load_cart(request), event, ticket_type, payload.quantity, is_virtual=payload.is_virtual
    )
    save_cart(request, cart)
    return cart_payload(cart)

@router.patch("/lines/{cart_item_id}")
def update_cart_line(cart_item_id: str, request: Request, payload: QuantityRequest):
    """
    Modifie la quantité d'une ligne (quantity <= 0 retire la ligne).
    Le stock n'est revérifié qu'à la hausse.
    """
    cart = load_cart(request)
    line = cart.line(cart_item_id)
    if not line:
        raise HTTPException(status_code=404, detail="Cart line not found")

    ticket_type = None
    if payload.quantity > line.quantity:
        event = events_repo.get_event(line.event_id)
        ticket_type = event.ticket_type(line.ticket_type_id) if event else None
        if ticket_type is None:
            raise HTTPException(status_code=404, detail="Ticket type not found")

    cart = cart_service.set_quantity(cart, cart_item_id, payload.quantity, ticket_type=ticket_type)
    save_cart(request, cart)
    return cart_payload(cart)

@router.delete("/lines/{cart_item_id}")
def remove_cart_line(cart_item_id: str, request: Request):
    cart = cart_service.remove_line(load_cart(request), cart_item_id)
    save_cart(request, cart)
    return cart_payload(cart)

@router.delete("")
def clear_cart(request: Request):
    cart = cart_service.clear(load_cart(request))
    save_cart(request, cart)
    return cart_payload(cart)
