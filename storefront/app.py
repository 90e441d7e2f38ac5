# module storefront.app
"""
Instance globale de l'application (construite par la factory).
Toute la configuration (middlewares, routers, exceptions, lifespan) vit dans storefront.app_setup.
"""
from storefront.app_setup.factory import create_app

app = create_app()
