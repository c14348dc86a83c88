"""
Tâche de fond: balayage périodique des commandes.

Chaque cycle:
- expire les commandes pending trop anciennes (après une dernière interrogation du rail)
- crée les reversements des commandes completed encore non traitées (reprise après échec)
Les appels Supabase / fournisseurs sont synchrones: ils tournent dans le pool de threads.
"""
from typing import Any, Dict, Optional
import asyncio
import logging

from tikiti.config import PAYOUT_BATCH_LIMIT, PAYOUT_JOB_INTERVAL_SECONDS, PENDING_ORDER_TTL_SECONDS
from tikiti.payouts import service as payouts_service
from tikiti.reconciliation import service as reconciler

logger = logging.getLogger(__name__)

_task: Optional[asyncio.Task] = None


async def run_sweep_cycle(limit: int = PAYOUT_BATCH_LIMIT) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    expired = 0
    try:
        expired = await loop.run_in_executor(None, reconciler.expire_stale_orders, PENDING_ORDER_TTL_SECONDS, limit)
    except Exception:
        logger.exception("payouts.jobs expire_stale_orders failed")
    payouts = await loop.run_in_executor(None, payouts_service.run_payout_batch, limit)
    return {"expired": expired, **payouts}


async def sweep_scheduler(interval: int = PAYOUT_JOB_INTERVAL_SECONDS) -> None:
    logger.info("payouts.jobs scheduler started interval=%ss", interval)
    while True:
        try:
            summary = await run_sweep_cycle()
            logger.info("payouts.jobs cycle done %s", summary)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("payouts.jobs cycle failed")
        await asyncio.sleep(max(int(interval), 1))


def start(interval: int = PAYOUT_JOB_INTERVAL_SECONDS) -> asyncio.Task:
    global _task
    if _task is None or _task.done():
        _task = asyncio.create_task(sweep_scheduler(interval))
    return _task


async def stop() -> None:
    global _task
    if _task is None:
        return
    _task.cancel()
    try:
        await _task
    except asyncio.CancelledError:
        logger.info("payouts.jobs scheduler stopped")
    _task = None
