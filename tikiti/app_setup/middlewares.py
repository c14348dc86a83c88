"""
Middlewares transverses de l'application.
- SessionMiddleware: session signée par cookie (porte le panier).
- CORSMiddleware: autorise les origines définies (dev/prod).
- TrustedHostMiddleware: limite les hôtes acceptés (défense host header).
- ProxyHeadersMiddleware: fait confiance aux en-têtes du proxy (x-forwarded-*).
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from tikiti.config import ALLOWED_HOSTS, COOKIE_SECURE, CORS_ORIGINS, SESSION_SECRET_KEY

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        SessionMiddleware,
        secret_key=SESSION_SECRET_KEY,
        session_cookie="tikiti_session",
        same_site="lax",
        https_only=COOKIE_SECURE,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=ALLOWED_HOSTS + ["*"] if "*" in CORS_ORIGINS else ALLOWED_HOSTS,
    )
    # Render, Nginx, etc.
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])
