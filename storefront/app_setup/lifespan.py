"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Construit les clients injectés une seule fois: StripeGateway et NotificationDispatcher (app.state).
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from storefront.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_CURRENCY
from storefront.payments.stripe_client import StripeGateway
from storefront.notifications.mailer import build_mailer
from storefront.notifications.service import NotificationDispatcher

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

def init_clients(app: FastAPI) -> None:
    """Clients à durée de vie applicative (remplaçables dans les tests)."""
    logger = logging.getLogger("uvicorn.error")
    if getattr(app.state, "gateway", None) is None:
        app.state.gateway = StripeGateway(STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_CURRENCY)
    if getattr(app.state, "dispatcher", None) is None:
        app.state.dispatcher = NotificationDispatcher(build_mailer())
    if not STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY absent: les appels Stripe échoueront")
    if not STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET absent: tous les webhooks seront rejetés (400)")

async def init_rate_limiter(app: FastAPI):
    """
    Configure le rate limiting et gère les fallbacks.
    - En cas d'échec de Redis et sans fallback, le rate limiting est désactivé proprement.
    - Retourne la connexion Redis ouverte (à fermer au shutdown) ou None.
    """
    logger = logging.getLogger("uvicorn.error")
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return None
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
        return r
    except Exception as e:
        app.state.rate_limit_enabled = False
        logger.warning(f"Rate limiting disabled due to init error: {e}")
        return None

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_clients(app)
    r = await init_rate_limiter(app)
    yield
    if r is not None:
        await FastAPILimiter.close()
