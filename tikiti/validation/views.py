from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from tikiti.events.repository import get_event
from tikiti.utils.security import require_organizer
from tikiti.validation.service import check_in, live_capacity

router = APIRouter(prefix="/api/v1/validation", tags=["Validation API"])

class ScanRequest(BaseModel):
    payload: str
    event_id: str

def ensure_can_scan(event_id: str, user: Dict[str, Any]):
    # Organisateur de l'événement ou admin
    event = get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    if user.get("role") != "admin" and event.organizer_id != user.get("id"):
        raise HTTPException(status_code=403, detail="Not allowed to scan for this event")
    return event

@router.post("/scan")
def scan_ticket(payload: ScanRequest, user: Dict[str, Any] = Depends(require_organizer)):
    """
    Scanner un billet à l'entrée.
    Body: {"payload": "<contenu du QR>", "event_id": "<id>"}
    Réponse toujours 200 avec {"status": ...}: le scanner affiche le statut tel quel.
    """
    ensure_can_scan(payload.event_id, user)
    status, data = check_in(payload.payload, payload.event_id, scanner_id=user.get("id", ""))
    return {"status": status, **data}

@router.get("/events/{event_id}/capacity")
def event_capacity(event_id: str, user: Dict[str, Any] = Depends(require_organizer)):
    """Jauge en direct pour l'organisateur: {"current_capacity", "venue_capacity", "percentage"}."""
    event = ensure_can_scan(event_id, user)
    return live_capacity(event)
