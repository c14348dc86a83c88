"""
Payload QR des billets: construction signée, vérification et rendu PNG.

Le payload est un JSON compact {ticketId, eventId, userId, orderId, ticketType, isVirtual, checksum}.
checksum = HMAC-SHA256(QR_SIGNING_SECRET, "ticketId:eventId:userId"), ce qui empêche
de forger un billet à partir d'identifiants connus.
"""
import base64
import hashlib
import hmac
import json
from io import BytesIO
from typing import Any, Dict, Optional

import qrcode

from tikiti.config import QR_SIGNING_SECRET


def _checksum(ticket_id: str, event_id: str, user_id: str, secret: Optional[str] = None) -> str:
    key = (secret or QR_SIGNING_SECRET).encode("utf-8")
    msg = f"{ticket_id}:{event_id}:{user_id}".encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).hexdigest()


def build_qr_payload(
    *,
    ticket_id: str,
    event_id: str,
    user_id: str,
    order_id: str,
    ticket_type: str,
    is_virtual: bool,
    secret: Optional[str] = None,
) -> str:
    return json.dumps(
        {
            "ticketId": ticket_id,
            "eventId": event_id,
            "userId": user_id,
            "orderId": order_id,
            "ticketType": ticket_type,
            "isVirtual": bool(is_virtual),
            "checksum": _checksum(ticket_id, event_id, user_id, secret),
        },
        separators=(",", ":"),
    )


def parse_qr_payload(raw: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Parse et vérifie un payload scanné.
    - Retourne le dict si les champs requis sont présents et la signature valide, sinon None.
    """
    try:
        data = json.loads((raw or "").strip())
    except (ValueError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    ticket_id, event_id, user_id = data.get("ticketId"), data.get("eventId"), data.get("userId")
    checksum = data.get("checksum")
    if not ticket_id or not event_id or not user_id or not isinstance(checksum, str):
        return None
    expected = _checksum(str(ticket_id), str(event_id), str(user_id), secret)
    if not hmac.compare_digest(checksum, expected):
        return None
    return data


def generate_qr_code(data: str, box_size: int = 10, border: int = 4) -> str:
    """Rend `data` en QR code PNG et retourne une data URL base64 (affichage direct côté front)."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    buffered = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode("ascii")
