"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Démarre / arrête la tâche de balayage (expiration des commandes + reversements).
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
  - PAYOUT_JOB_ENABLED=0: pas de tâche de balayage
"""
from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis

from tikiti.config import PAYOUT_JOB_ENABLED, PAYOUT_JOB_INTERVAL_SECONDS
from tikiti.payouts import jobs as payout_jobs

logger = logging.getLogger("uvicorn.error")

async def init_rate_limiter(app: FastAPI) -> None:
    """
    Configure le rate limiting et gère les fallbacks.
    - En cas d'échec de Redis et sans fallback, le rate limiting est désactivé proprement.
    """
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            from fakeredis.aioredis import FakeRedis
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_rate_limiter(app)
    if PAYOUT_JOB_ENABLED:
        payout_jobs.start(PAYOUT_JOB_INTERVAL_SECONDS)
        logger.info("Payout sweep job started")
    else:
        logger.info("Payout sweep job disabled")
    try:
        yield
    finally:
        await payout_jobs.stop()
