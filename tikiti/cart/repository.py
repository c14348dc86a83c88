"""
Persistance du panier dans la session signée (SessionMiddleware, clé "cart").
Le panier ne touche jamais la base: il n'existe côté serveur qu'à partir du checkout.
"""
import logging

from fastapi import Request

from tikiti.cart.models import Cart

logger = logging.getLogger(__name__)

CART_SESSION_KEY = "cart"

def load_cart(request: Request) -> Cart:
    raw = request.session.get(CART_SESSION_KEY)
    try:
        return Cart.from_list(raw)
    except (KeyError, ValueError, TypeError):
        # Session corrompue ou ancien format: repartir d'un panier vide
        logger.warning("cart.repository.load_cart dropped unreadable cart items=%s", len(raw or []))
        return Cart()

def save_cart(request: Request, cart: Cart) -> None:
    if cart.is_empty:
        request.session.pop(CART_SESSION_KEY, None)
    else:
        request.session[CART_SESSION_KEY] = cart.to_list()
