from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
import logging

import tikiti.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"
ROLES = ("user", "organizer", "admin")

def determine_role(metadata: Dict[str, Any] | None) -> str:
    """
    Rôle applicatif lu dans les métadonnées Supabase (app_metadata prioritaire sur user_metadata).
    Toute valeur inconnue retombe sur "user".
    """
    role = str((metadata or {}).get("role", "")).lower()
    return role if role in ROLES else "user"

def _token_from_request(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(COOKIE_NAME)

def get_user_from_token(token: str) -> Dict[str, Any]:
    """
    Résout le jeton via Supabase Auth (fournisseur d'identité externe).
    Retourne {id, email, role, phone, token}.
    """
    res = supabase_client.get_supabase().auth.get_user(token)
    user = getattr(res, "user", None)
    if not user:
        return {}
    app_meta = getattr(user, "app_metadata", None) or {}
    user_meta = getattr(user, "user_metadata", None) or {}
    return {
        "id": getattr(user, "id", None),
        "email": getattr(user, "email", None),
        "phone": getattr(user, "phone", None),
        "role": determine_role(app_meta if app_meta.get("role") else user_meta),
        "token": token,
    }

def get_current_user(request: Request) -> Dict[str, Any]:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user = get_user_from_token(token)
    except Exception:
        logger.warning("security.get_current_user token rejected", exc_info=True)
        raise HTTPException(status_code=401, detail="Session expired, please log in again")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expired, please log in again")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user

def require_organizer(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") not in ("organizer", "admin"):
        raise HTTPException(status_code=403, detail="Forbidden")
    return user

def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
