"""
Dépendances FastAPI vers les clients partagés créés dans le lifespan (app.state).
Surchargées dans les tests via app.dependency_overrides.
"""
from fastapi import Request

from storefront.payments.stripe_client import StripeGateway
from storefront.notifications.service import NotificationDispatcher

def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway

def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher
