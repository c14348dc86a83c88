from typing import Iterable, Dict, Optional
import logging

import tikiti.infra.supabase_client as supabase_client
from tikiti.events.models import Event

logger = logging.getLogger(__name__)

EVENT_COLUMNS = (
    "id, title, organizer_id, currency, has_virtual_tickets, ticket_types, image_url, venue_capacity, current_capacity"
)

def get_event(event_id: str) -> Optional[Event]:
    """
    Lit un événement et ses types de billets (lecture publique, client anon).
    - Retourne None si introuvable ou en cas d'erreur Supabase (journalisée).
    """
    if not event_id:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("events")
            .select(EVENT_COLUMNS)
            .eq("id", event_id)
            .limit(1)
            .execute()
        )
    except Exception:
        logger.exception("events.repository.get_event failed id=%s", event_id)
        return None
    rows = res.data or []
    return Event.from_row(rows[0]) if rows else None

def get_events_map(ids: Iterable[str]) -> Dict[str, Event]:
    """Retourne {event_id: Event} pour une liste d'identifiants (données fraîches pour le checkout)."""
    id_list = sorted({str(i) for i in ids if i})
    if not id_list:
        return {}
    try:
        res = (
            supabase_client.get_supabase()
            .table("events")
            .select(EVENT_COLUMNS)
            .in_("id", id_list)
            .execute()
        )
    except Exception:
        logger.exception("events.repository.get_events_map failed ids=%s", id_list)
        return {}
    return {str(r.get("id")): Event.from_row(r) for r in (res.data or [])}

def set_current_capacity(event_id: str, current: int) -> None:
    """Écrit le nombre d'entrées enregistrées (affichage de la jauge en direct)."""
    try:
        (
            supabase_client.get_service_supabase()
            .table("events")
            .update({"current_capacity": int(current)})
            .eq("id", event_id)
            .execute()
        )
    except Exception:
        logger.exception("events.repository.set_current_capacity failed id=%s", event_id)
        raise
