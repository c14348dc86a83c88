"""
Accès aux données des reversements (table 'payouts') et au marqueur orders.payout_status.

Le marqueur sert de verrou optimiste: null -> "processed" (conditionnel) avant d'écrire
les reversements, remis à null si l'écriture échoue.
"""
from typing import Any, Dict, List, Optional
import logging

import tikiti.infra.supabase_client as supabase_client
from tikiti.orders.models import Order, PaymentStatus
from tikiti.payouts.models import PayoutRecord

logger = logging.getLogger(__name__)

PAYOUT_PROCESSED = "processed"

def claim_order_payout(order_id: str) -> bool:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"payout_status": PAYOUT_PROCESSED})
            .eq("id", order_id)
            .eq("payment_status", PaymentStatus.COMPLETED.value)
            .is_("payout_status", "null")
            .execute()
        )
    except Exception:
        logger.exception("payouts.repository.claim_order_payout failed order_id=%s", order_id)
        raise
    return bool(res.data)

def release_order_payout(order_id: str) -> None:
    try:
        (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"payout_status": None})
            .eq("id", order_id)
            .eq("payout_status", PAYOUT_PROCESSED)
            .execute()
        )
    except Exception:
        logger.exception("payouts.repository.release_order_payout failed order_id=%s", order_id)

def insert_payouts(rows: List[Dict[str, Any]]) -> None:
    if not rows:
        return
    try:
        supabase_client.get_service_supabase().table("payouts").insert(rows).execute()
    except Exception:
        logger.exception("payouts.repository.insert_payouts failed order_id=%s count=%s", rows[0].get("order_id"), len(rows))
        raise

def list_unprocessed_completed_orders(limit: int = 100) -> List[Order]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("payment_status", PaymentStatus.COMPLETED.value)
            .is_("payout_status", "null")
            .order("completed_at")
            .limit(limit)
            .execute()
        )
    except Exception:
        logger.exception("payouts.repository.list_unprocessed_completed_orders failed")
        return []
    return [Order.from_row(r) for r in (res.data or [])]

def list_payouts(organizer_id: Optional[str] = None, order_id: Optional[str] = None, limit: int = 100) -> List[PayoutRecord]:
    try:
        query = supabase_client.get_service_supabase().table("payouts").select("*")
        if organizer_id:
            query = query.eq("organizer_id", organizer_id)
        if order_id:
            query = query.eq("order_id", order_id)
        res = query.order("created_at", desc=True).limit(limit).execute()
    except Exception:
        logger.exception("payouts.repository.list_payouts failed organizer_id=%s order_id=%s", organizer_id, order_id)
        return []
    return [PayoutRecord.from_row(r) for r in (res.data or [])]
