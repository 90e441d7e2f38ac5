"""
Factory d'application utilisée par les entrypoints (storefront.app, storefront.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .log_setup import configure_logging
from .middlewares import register_basic_middlewares, register_security_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - logging, middlewares de base et de sécurité (CSRF, en-têtes)
      - gestionnaires d'exceptions (400 validation, 500 générique)
      - tous les routers (orders, payments, health)
    Retour:
      FastAPI prêt à être utilisé par le serveur ASGI.
    """
    configure_logging()
    app = FastAPI(title="Storefront API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
