"""
Endpoints API pour les billets de l'acheteur: liste, compteur et QR code.
- Sécurité: toutes les routes requièrent un utilisateur authentifié (require_user)
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from tikiti.tickets.service import get_ticket_qrcode, get_user_tickets
from tikiti.utils.security import require_user

router = APIRouter(prefix="/api/v1/tickets", tags=["Tickets"])

@router.get("", response_model=List[Dict])
def list_tickets(user: Dict[str, Any] = Depends(require_user)):
    return get_user_tickets(user.get("id"))

@router.get("/count")
def tickets_count(user: Dict[str, Any] = Depends(require_user)):
    return {"count": len(get_user_tickets(user.get("id")))}

@router.get("/{ticket_id}/qrcode")
def ticket_qrcode(ticket_id: str, user: Dict[str, Any] = Depends(require_user)):
    """
    QR code d'un billet payé.
    - Retour: {"qr_code": "<data:image/png;base64,...>"}
    - 404 si le billet n'appartient pas à l'utilisateur, 409 si non payé
    """
    return {"qr_code": get_ticket_qrcode(ticket_id, user)}
