"""
Accès aux données pour les commandes et billets (tables 'orders' et 'tickets').

Toutes les écritures passent par le client service-role.
- Lectures: retournent None / [] en cas d'erreur (journalisée), comme le reste des repositories.
- Transitions d'état: mises à jour conditionnelles (compare-and-set sur le statut courant);
  les erreurs Supabase sont journalisées puis propagées, l'appelant décide de la compensation.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

import tikiti.infra.supabase_client as supabase_client
from tikiti.orders.models import Order, PaymentStatus, Ticket, TicketStatus, tickets_from_rows

logger = logging.getLogger(__name__)

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

# module tikiti.orders.repository
def insert_order(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        res = supabase_client.get_service_supabase().table("orders").insert(row).execute()
    except Exception:
        logger.exception("orders.repository.insert_order failed id=%s", row.get("id"))
        return None
    rows = res.data or []
    return rows[0] if rows else None

def insert_tickets(rows: List[Dict[str, Any]]) -> bool:
    """Insertion groupée (un seul appel PostgREST = une seule instruction INSERT, tout ou rien)."""
    if not rows:
        return True
    try:
        res = supabase_client.get_service_supabase().table("tickets").insert(rows).execute()
    except Exception:
        logger.exception("orders.repository.insert_tickets failed order_id=%s count=%s", rows[0].get("order_id"), len(rows))
        return False
    return len(res.data or []) == len(rows)

def delete_order(order_id: str) -> bool:
    """Compensation: supprime la commande et ses éventuels billets orphelins."""
    try:
        client = supabase_client.get_service_supabase()
        client.table("tickets").delete().eq("order_id", order_id).execute()
        client.table("orders").delete().eq("id", order_id).execute()
        return True
    except Exception:
        logger.exception("orders.repository.delete_order failed id=%s", order_id)
        return False

def get_order(order_id: str) -> Optional[Order]:
    if not order_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.get_order failed id=%s", order_id)
        return None
    rows = res.data or []
    return Order.from_row(rows[0]) if rows else None

def find_order_by_reference(provider: str, reference: str) -> Optional[Order]:
    """Retrouve la commande par la référence fournisseur taguée à l'initiation."""
    if not provider or not reference:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("provider", provider)
            .eq("provider_reference", reference)
            .limit(2)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.find_order_by_reference failed provider=%s ref=%s", provider, reference)
        return None
    rows = res.data or []
    if len(rows) > 1:
        logger.warning("orders.repository.find_order_by_reference duplicate ref provider=%s ref=%s", provider, reference)
        return None
    return Order.from_row(rows[0]) if rows else None

def set_provider_reference(order_id: str, provider: str, reference: str) -> bool:
    """Tague la référence fournisseur sur une commande encore pending."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"provider": provider, "provider_reference": reference, "updated_at": now_iso()})
            .eq("id", order_id)
            .eq("payment_status", PaymentStatus.PENDING.value)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.set_provider_reference failed id=%s provider=%s", order_id, provider)
        return False
    return bool(res.data)

def transition_order(
    order_id: str,
    new_status: PaymentStatus,
    *,
    expected: PaymentStatus = PaymentStatus.PENDING,
    fields: Optional[Dict[str, Any]] = None,
) -> Optional[Order]:
    """
    Applique `expected -> new_status` uniquement si la commande est encore dans l'état attendu.
    Retourne la commande mise à jour, ou None si une autre écriture l'a déjà fait passer.
    """
    values = {"payment_status": new_status.value, "updated_at": now_iso(), **(fields or {})}
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update(values)
            .eq("id", order_id)
            .eq("payment_status", expected.value)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.transition_order failed id=%s %s->%s", order_id, expected.value, new_status.value)
        raise
    rows = res.data or []
    return Order.from_row(rows[0]) if rows else None

def transition_tickets(order_id: str, from_status: TicketStatus, to_status: TicketStatus) -> int:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .update({"payment_status": to_status.value})
            .eq("order_id", order_id)
            .eq("payment_status", from_status.value)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.transition_tickets failed order_id=%s %s->%s", order_id, from_status.value, to_status.value)
        raise
    return len(res.data or [])

def list_order_tickets(order_id: str) -> List[Ticket]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("tickets")
            .select("*")
            .eq("order_id", order_id)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.list_order_tickets failed order_id=%s", order_id)
        return []
    return tickets_from_rows(res.data or [])

def list_stale_pending_orders(created_before: str, limit: int = 100) -> List[Order]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("payment_status", PaymentStatus.PENDING.value)
            .lt("created_at", created_before)
            .order("created_at")
            .limit(limit)
            .execute()
        )
    except Exception:
        logger.exception("orders.repository.list_stale_pending_orders failed before=%s", created_before)
        return []
    return [Order.from_row(r) for r in (res.data or [])]
