"""
Registre central des routers (API v1, admin, health, webhooks).
"""
from fastapi import FastAPI

from tikiti.cart import views as cart_views
from tikiti.health.router import router as health_router
from tikiti.orders import views as orders_views
from tikiti.payments import views as payments_views
from tikiti.payouts import views as payouts_views
from tikiti.tickets import views as tickets_views
from tikiti.validation import views as validation_views

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(cart_views.router)
    app.include_router(orders_views.router)
    app.include_router(payments_views.router)
    app.include_router(tickets_views.router)
    app.include_router(validation_views.router)
    # Admin
    app.include_router(payouts_views.router)
    # Health & monitoring
    app.include_router(health_router)
