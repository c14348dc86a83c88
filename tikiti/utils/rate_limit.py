"""
Limitation de débit optionnelle pour les routes sensibles (checkout, initiation de paiement).
- Backend principal: fastapi-limiter (Redis), initialisé par le lifespan.
- LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (dev/tests).
- app.state.rate_limit_enabled == False: aucune limite.
"""
from typing import Any, Dict
from urllib.parse import urlparse
from fastapi import Request, HTTPException
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
import hashlib
import os
import time

from tikiti.utils.security import COOKIE_NAME

def _client_key(request: Request) -> str:
    # Priorité: jeton (Bearer ou cookie, hashé) puis IP; la clé inclut le chemin
    auth = request.headers.get("Authorization", "")
    token = auth[7:].strip() if auth.startswith("Bearer ") else request.cookies.get(COOKIE_NAME)
    path = request.url.path
    if token:
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{digest}:{path}"
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{path}"

def _local_hit(request: Request, times: int, seconds: int) -> None:
    now = time.time()
    key = _client_key(request)
    store = getattr(request.app.state, "_rl_store", {})
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    hits.append(now)
    store[key] = hits
    request.app.state._rl_store = store

def optional_rate_limit(times: int, seconds: int):
    async def _dep(request: Request):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, times, seconds)
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        async def _identifier(req: Request) -> str:
            return _client_key(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request)
        except HTTPException:
            raise
        except Exception:
            # Redis indisponible: pas de 429 en prod (activer LOCAL_RATE_LIMIT_FALLBACK=1 en dev)
            return
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    ready = getattr(FastAPILimiter, "redis", None) is not None

    info: Dict[str, Any] = {
        "enabled": bool(enabled) if enabled is not None else None,
        "ready": ready,
        "backend": "redis" if ready else None,
    }
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if ready and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
