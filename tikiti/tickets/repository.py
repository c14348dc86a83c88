"""
Accès aux données 'tickets' côté acheteur et scan.
- list_user_tickets: billets d'un utilisateur, les plus récents d'abord
- get_ticket: lecture unitaire (scan)
- mark_checked_in: écriture conditionnelle (checked_in = false et billet actif), un seul scan gagne
- count_checked_in: entrées enregistrées pour un événement (jauge en direct)
"""
from typing import Any, Dict, List, Optional
import logging

import tikiti.infra.supabase_client as supabase_client
from tikiti.orders.models import Ticket, TicketStatus, tickets_from_rows
from tikiti.orders.repository import now_iso

logger = logging.getLogger(__name__)

def list_user_tickets(user_id: str) -> List[Ticket]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .select("*")
            .eq("user_id", user_id)
            .order("purchased_at", desc=True)
            .execute()
        )
    except Exception:
        logger.exception("tickets.repository.list_user_tickets failed user_id=%s", user_id)
        return []
    return tickets_from_rows(res.data or [])

def get_ticket(ticket_id: str) -> Optional[Ticket]:
    if not ticket_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .select("*")
            .eq("id", ticket_id)
            .limit(1)
            .execute()
        )
    except Exception:
        logger.exception("tickets.repository.get_ticket failed id=%s", ticket_id)
        return None
    rows = res.data or []
    return Ticket.from_row(rows[0]) if rows else None

def mark_checked_in(ticket_id: str, scanner_id: str) -> Optional[Ticket]:
    """Retourne le billet mis à jour, ou None si un autre scan l'a déjà enregistré."""
    values: Dict[str, Any] = {
        "checked_in": True,
        "checked_in_at": now_iso(),
        "checked_in_by": scanner_id,
        "payment_status": TicketStatus.USED.value,
    }
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .update(values)
            .eq("id", ticket_id)
            .eq("checked_in", False)
            .eq("payment_status", TicketStatus.ACTIVE.value)
            .execute()
        )
    except Exception:
        logger.exception("tickets.repository.mark_checked_in failed id=%s", ticket_id)
        raise
    rows = res.data or []
    return Ticket.from_row(rows[0]) if rows else None

def count_checked_in(event_id: str) -> Optional[int]:
    """Billets physiques déjà scannés pour un événement (None si la lecture échoue)."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .select("id")
            .eq("event_id", event_id)
            .eq("checked_in", True)
            .execute()
        )
    except Exception:
        logger.exception("tickets.repository.count_checked_in failed event_id=%s", event_id)
        return None
    return len(res.data or [])
