# module storefront.orders.views

"""Endpoints de la feature Commandes.
- POST /            : crée une commande « pending » (authentifié, rate-limité)
- GET  /            : commandes de l'utilisateur
- GET  /admin/all   : toutes les commandes (admin)
- GET  /{id}        : détail (propriétaire ou admin)
- PUT  /{id}/pay    : confirmation client du paiement (alternative au webhook)
- PUT  /{id}/status : mise à jour du statut (admin)
- GET  /{id}/invoice: données de facture (propriétaire ou admin)
"""
from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from storefront.utils.security import require_user, require_admin
from storefront.utils.rate_limit import optional_rate_limit
from storefront.utils.clients import get_gateway, get_dispatcher
from storefront.orders import service as orders_service
from storefront.orders.models import CreateOrderRequest, ConfirmPaymentRequest, UpdateStatusRequest, to_public_order
from storefront.payments import service as payments_service
from storefront.notifications.invoice import build_invoice

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


@router.post("", status_code=201, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_order(body: CreateOrderRequest, user: Dict[str, Any] = Depends(require_user)):
    """Crée une commande à partir du panier.
    - 400: panier/adresse/moyen de paiement invalide ou stock insuffisant
    - 404: produit introuvable
    """
    order = orders_service.create_order(user=user, request=body)
    return JSONResponse(to_public_order(order), status_code=201)


@router.get("")
def list_my_orders(user: Dict[str, Any] = Depends(require_user)):
    return [to_public_order(o) for o in orders_service.list_orders_for_user(user.get("id"))]


@router.get("/admin/all")
def list_all_orders(limit: int = Query(100, ge=1, le=500), user: Dict[str, Any] = Depends(require_admin)):
    return [to_public_order(o) for o in orders_service.list_all_orders(limit=limit)]


@router.get("/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(require_user)):
    return to_public_order(orders_service.get_order_for_user(order_id, user))


@router.put("/{order_id}/pay")
def confirm_order_payment(
    order_id: str,
    body: ConfirmPaymentRequest,
    user: Dict[str, Any] = Depends(require_user),
    gateway=Depends(get_gateway),
    dispatcher=Depends(get_dispatcher),
):
    """Confirmation client: vérifie le PaymentIntent auprès de Stripe puis marque payée (idempotent)."""
    order = payments_service.confirm_payment(
        order_id=order_id,
        payment_intent_id=body.payment_intent_id,
        user=user,
        gateway=gateway,
        dispatcher=dispatcher,
    )
    return to_public_order(order)


@router.put("/{order_id}/status")
def update_order_status(order_id: str, body: UpdateStatusRequest, user: Dict[str, Any] = Depends(require_admin)):
    return to_public_order(orders_service.update_status(order_id, body))


@router.get("/{order_id}/invoice")
def get_order_invoice(order_id: str, user: Dict[str, Any] = Depends(require_user)):
    """Document facture (JSON) consommé par le rendu PDF/email."""
    order = orders_service.get_order_for_user(order_id, user)
    customer = {"email": user.get("email"), "name": user.get("name")} if str(order.get("user_id")) == str(user.get("id")) else None
    return build_invoice(order, customer)
