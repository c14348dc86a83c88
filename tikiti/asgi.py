"""
ASGI entrypoint: expose `app` pour les process managers (uvicorn, gunicorn -k uvicorn.workers.UvicornWorker).
Toute la configuration est centralisée dans tikiti.app_setup.
"""
from tikiti.app import app
