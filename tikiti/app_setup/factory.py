"""
Factory d'application pour les entrypoints (tikiti.asgi, tests).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI

from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_basic_middlewares
from .routers import register_routers

def create_app() -> FastAPI:
    app = FastAPI(title="Tikiti", lifespan=lifespan)
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
