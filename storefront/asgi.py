"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn -k uvicorn.workers.UvicornWorker) importe
  `storefront.asgi:app`.
- Toute la configuration FastAPI est centralisée dans storefront.app_setup, ce fichier ne fait
  qu'exposer l'instance `app`.
"""

from storefront.app import app

__all__ = ["app"]
