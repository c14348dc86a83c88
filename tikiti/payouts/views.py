"""
Endpoints admin des reversements organisateurs.
- Sécurité: require_admin
- run: lance un balayage immédiat (mêmes règles que la tâche planifiée)
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from tikiti.config import PAYOUT_BATCH_LIMIT
from tikiti.errors import OrderNotFound
from tikiti.orders import repository as orders_repo
from tikiti.payouts import repository as payouts_repo
from tikiti.payouts import service as payouts_service
from tikiti.utils.security import require_admin

router = APIRouter(prefix="/api/v1/admin/payouts", tags=["Admin Payouts"])

@router.post("/run")
def run_payouts(limit: int = Query(PAYOUT_BATCH_LIMIT, ge=1, le=1000), admin: Dict[str, Any] = Depends(require_admin)):
    return payouts_service.run_payout_batch(limit=limit)

@router.post("/orders/{order_id}")
def process_order(order_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    """
    Crée les reversements d'une commande completed.
    - 409 si la commande n'est pas completed
    - created = 0 si la commande avait déjà été traitée
    """
    order = orders_repo.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    records = payouts_service.process_order_payouts(order)
    return {"order_id": order_id, "created": len(records), "payouts": [r.to_row() for r in records]}

@router.get("")
def list_payouts(
    organizer_id: Optional[str] = None,
    order_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    admin: Dict[str, Any] = Depends(require_admin),
):
    return [r.to_row() for r in payouts_repo.list_payouts(organizer_id=organizer_id, order_id=order_id, limit=limit)]
