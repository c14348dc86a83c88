"""
Gestionnaires d'exceptions.
- HTTPException: 401/403 redirigés vers LOGIN_URL (front) pour les navigateurs (hors /api/*), JSON sinon.
- TikitiError: erreurs métier -> {"detail", "code"} avec le statut porté par l'erreur.
"""
import logging
import urllib.parse

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

from tikiti.config import LOGIN_URL
from tikiti.errors import InsufficientInventory, TikitiError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def html_redirect_on_auth_errors(request: Request, exc: HTTPException):
        if exc.status_code in (401, 403):
            accept = (request.headers.get("accept") or "").lower()
            is_api = request.url.path.startswith("/api/")
            if "text/html" in accept and not is_api:
                detail = str(getattr(exc, "detail", "")) or (
                    "Please log in" if exc.status_code == 401 else "Forbidden"
                )
                msg = urllib.parse.quote_plus(detail)
                return RedirectResponse(url=f"{LOGIN_URL}?error={msg}", status_code=HTTP_303_SEE_OTHER)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(TikitiError)
    async def domain_error(request: Request, exc: TikitiError):
        content = {"detail": exc.message, "code": exc.code}
        if isinstance(exc, InsufficientInventory):
            content["remaining"] = exc.remaining
        if exc.status_code >= 500:
            logger.error("%s %s -> %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=content)
