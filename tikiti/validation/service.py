"""
Contrôle d'accès à l'entrée: vérification du payload QR scanné puis check-in unique.

Statuts retournés par check_in:
  invalid             payload illisible ou signature invalide, ou identifiants incohérents
  not_found           billet inconnu
  wrong_event         billet d'un autre événement
  virtual_ticket      billet virtuel (pas d'entrée physique)
  not_active          paiement non confirmé ou billet annulé
  already_checked_in  billet déjà scanné (y compris course perdue entre deux scanners)
  checked_in          entrée enregistrée

Chaque entrée gagnante recalcule events.current_capacity (jauge en direct).
"""
from typing import Any, Dict, Optional, Tuple
import logging

from tikiti.events import repository as events_repo
from tikiti.events.models import Event
from tikiti.orders.models import Ticket, TicketStatus
from tikiti.tickets import repository as tickets_repo
from tikiti.utils.qrcode_utils import parse_qr_payload

logger = logging.getLogger(__name__)

def _summary(ticket: Ticket) -> Dict[str, Any]:
    return {
        "ticket_id": ticket.id,
        "order_id": ticket.order_id,
        "event_id": ticket.event_id,
        "event_title": ticket.event_title,
        "ticket_type": ticket.ticket_type,
        "checked_in_at": ticket.checked_in_at,
    }

def validate_qr_payload(raw: str) -> Optional[Dict[str, Any]]:
    return parse_qr_payload(raw)

def check_in(raw: str, event_id: str, scanner_id: str) -> Tuple[str, Dict[str, Any]]:
    data = validate_qr_payload(raw)
    if data is None:
        return ("invalid", {"message": "Invalid QR code", "reason": "invalid_qr"})

    ticket = tickets_repo.get_ticket(str(data["ticketId"]))
    if ticket is None:
        return ("not_found", {"message": "Ticket not found", "reason": "ticket_not_found"})
    if ticket.user_id != str(data["userId"]) or ticket.event_id != str(data["eventId"]):
        return ("invalid", {"message": "QR code does not match ticket", "reason": "payload_mismatch"})
    if ticket.event_id != event_id:
        return ("wrong_event", {"message": "Ticket is for another event", **_summary(ticket)})
    if ticket.is_virtual:
        return ("virtual_ticket", {"message": "Virtual tickets cannot be used at the door", **_summary(ticket)})
    if ticket.checked_in or ticket.payment_status is TicketStatus.USED:
        return ("already_checked_in", {"message": "Ticket already checked in", **_summary(ticket)})
    if ticket.payment_status is not TicketStatus.ACTIVE:
        return ("not_active", {
            "message": "Ticket is not active",
            "payment_status": ticket.payment_status.value,
            **_summary(ticket),
        })

    updated = tickets_repo.mark_checked_in(ticket.id, scanner_id)
    if updated is None:
        current = tickets_repo.get_ticket(ticket.id) or ticket
        return ("already_checked_in", {"message": "Ticket already checked in", **_summary(current)})

    record_attendance(event_id)
    logger.info("validation.check_in ticket_id=%s event_id=%s scanner=%s", ticket.id, event_id, scanner_id)
    return ("checked_in", {"message": "Welcome", **_summary(updated)})

def record_attendance(event_id: str) -> Optional[int]:
    # Recompté depuis les billets scannés: un billet n'est compté qu'une fois
    current = tickets_repo.count_checked_in(event_id)
    if current is None:
        return None
    try:
        events_repo.set_current_capacity(event_id, current)
    except Exception:
        logger.exception("validation.record_attendance failed event_id=%s", event_id)
        return None
    return current

def live_capacity(event: Event) -> Dict[str, Any]:
    """Jauge en direct: entrées enregistrées sur la capacité du lieu (pourcentage si elle est connue)."""
    current = tickets_repo.count_checked_in(event.id)
    if current is None:
        current = event.current_capacity
    percentage = round(current * 100 / event.venue_capacity, 1) if event.venue_capacity > 0 else None
    return {
        "event_id": event.id,
        "current_capacity": current,
        "venue_capacity": event.venue_capacity,
        "percentage": percentage,
    }
