import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel

from tikiti.payments import service as payments_service
from tikiti.utils.rate_limit import optional_rate_limit
from tikiti.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

class PayPalCreateRequest(BaseModel):
    order_id: str

class PayPalCaptureRequest(BaseModel):
    order_id: str
    paypal_order_id: str

# module tikiti.payments.views
@router.post("/paypal/create-order", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def paypal_create_order(payload: PayPalCreateRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée (ou recrée) l'ordre PayPal d'une commande pending, appelé par le bouton PayPal.
    Réponse: {paypal_order_id}
    """
    handle = payments_service.create_paypal_order(payload.order_id, user)
    return {"paypal_order_id": handle.reference}

@router.post("/paypal/capture-order", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def paypal_capture_order(payload: PayPalCaptureRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Capture après approbation de l'acheteur.
    - {"success": true} seulement si la commande est completed
    - {"success": false}: la commande reste pending (jamais completed par défaut)
    """
    success = payments_service.capture_provider_order(payload.paypal_order_id, payload.order_id, user)
    return {"success": success, "order_id": payload.order_id}

async def _handle(provider: str, request: Request) -> Dict[str, Any]:
    body = await request.body()
    return await run_in_threadpool(
        payments_service.handle_webhook, provider, body, dict(request.headers), dict(request.query_params)
    )

@router.post("/webhooks/mpesa", include_in_schema=False)
async def mpesa_webhook(request: Request):
    """Callback STK Daraja. Safaricom attend toujours {"ResultCode": 0, "ResultDesc": "Accepted"}."""
    await _handle("mpesa", request)
    return JSONResponse({"ResultCode": 0, "ResultDesc": "Accepted"})

@router.post("/webhooks/flutterwave", include_in_schema=False)
async def flutterwave_webhook(request: Request):
    await _handle("flutterwave", request)
    return JSONResponse({"status": "received"})

@router.post("/webhooks/stripe", include_in_schema=False)
async def stripe_webhook(request: Request):
    result = await _handle("stripe", request)
    return JSONResponse({"received": True, "status": result.get("status")})
