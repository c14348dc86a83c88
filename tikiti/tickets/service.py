from typing import Any, Dict, List

from tikiti.errors import NotFound, OrderStateError
from tikiti.orders.models import Ticket, TicketStatus
from tikiti.tickets import repository as tickets_repo
from tikiti.utils.qrcode_utils import generate_qr_code

# Un QR n'est délivré que pour un billet payé
QR_TICKET_STATUSES = (TicketStatus.ACTIVE, TicketStatus.USED)

def ticket_public(ticket: Ticket) -> Dict[str, Any]:
    """
    Vue acheteur d'un billet.
    - le payload QR et le jeton de streaming ne sont exposés qu'une fois le billet payé
    """
    paid = ticket.payment_status in QR_TICKET_STATUSES
    return {
        "id": ticket.id,
        "order_id": ticket.order_id,
        "event_id": ticket.event_id,
        "event_title": ticket.event_title,
        "ticket_type": ticket.ticket_type,
        "unit_price": str(ticket.unit_price),
        "currency": ticket.currency,
        "is_virtual": ticket.is_virtual,
        "payment_status": ticket.payment_status.value,
        "checked_in": ticket.checked_in,
        "checked_in_at": ticket.checked_in_at,
        "purchased_at": ticket.purchased_at,
        "qr_payload": ticket.qr_payload if paid else None,
        "stream_token": ticket.stream_token if paid and ticket.is_virtual else None,
    }

def get_user_tickets(user_id: str) -> List[Dict[str, Any]]:
    return [ticket_public(t) for t in tickets_repo.list_user_tickets(user_id)]

def get_ticket_qrcode(ticket_id: str, user: Dict[str, Any]) -> str:
    """
    QR code (data URL PNG) d'un billet de l'utilisateur courant.
    - NotFound si le billet n'existe pas ou appartient à un autre acheteur
    - OrderStateError si le paiement n'est pas confirmé
    """
    ticket = tickets_repo.get_ticket(ticket_id)
    if ticket is None or ticket.user_id != user.get("id"):
        raise NotFound("Ticket not found", code="ticket_not_found")
    if ticket.payment_status not in QR_TICKET_STATUSES:
        raise OrderStateError("Ticket is not paid yet", code="ticket_not_active")
    return generate_qr_code(ticket.qr_payload)
