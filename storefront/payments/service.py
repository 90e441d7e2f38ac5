"""
Cas d'usage 'payments': orchestre orders, stripe_client, metadata.
- create_payment_intent: ouvre un PaymentIntent Stripe pour une commande non payée.
- confirm_payment: alternative au webhook, côté client; vérifie le PaymentIntent puis mark_paid.
Aucune de ces fonctions ne modifie une commande sans preuve de paiement côté Stripe.
"""
from typing import Any, Dict, Optional
import logging

import stripe
from fastapi import HTTPException

from storefront.config import STORE_NAME, STRIPE_STATEMENT_DESCRIPTOR_SUFFIX
from storefront.orders import service as orders_service
from storefront.orders.pricing import to_minor_units
from storefront.payments import metadata as meta
from storefront.payments.reconciler import receipt_from_intent
from storefront.payments.stripe_client import StripeGateway
from storefront.notifications.service import NotificationDispatcher, notify_order_paid

logger = logging.getLogger(__name__)

def _stripe_address(address: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "line1": address.get("street"),
        "city": address.get("city"),
        "state": address.get("state"),
        "postal_code": address.get("zipCode"),
        "country": address.get("country"),
    }

def _provider_error(e: Exception) -> HTTPException:
    message = getattr(e, "user_message", None) or str(e) or "Erreur du prestataire de paiement"
    return HTTPException(status_code=400, detail=message)

def create_payment_intent(*, order_id: str, user: Dict[str, Any], gateway: StripeGateway) -> Dict[str, Any]:
    """
    Crée le PaymentIntent d'une commande.
    Étapes:
      1) Charger la commande (404), vérifier la propriété (403) puis l'état payé (400)
      2) Retrouver ou créer le client Stripe par email (best-effort)
      3) Créer le PaymentIntent: montant en centimes, description avec le numéro,
         adresse de livraison, metadata de corrélation (orderId, userId, orderNumber...)
    Retour: {"clientSecret": ..., "orderId": ...}; la commande n'est pas modifiée.
    """
    order = orders_service.get_order_or_404(order_id)
    # Propriété vérifiée avant l'état payé: un tiers n'apprend rien de la commande
    orders_service.ensure_owner(order, user)
    if order.get("is_paid"):
        raise HTTPException(status_code=400, detail="Commande déjà payée")

    address = order.get("shipping_address") or {}
    email = user.get("email") or ""
    name = user.get("name") or ""

    customer: Optional[Dict[str, Any]] = None
    if email:
        try:
            customer = gateway.find_or_create_customer(email=email, name=name, address=_stripe_address(address))
        except stripe.StripeError:
            # Le paiement reste possible sans fiche client
            logger.warning("payments.service customer lookup/create failed email=%s", email, exc_info=True)

    params: Dict[str, Any] = {
        "amount": to_minor_units(order.get("total_price") or 0),
        "description": f"{STORE_NAME} purchase - Order #{order.get('order_number')}",
        "metadata": meta.make_metadata(order, user),
        "shipping": {"name": name or email or "Customer", "address": _stripe_address(address)},
    }
    if email:
        params["receipt_email"] = email
    if customer and customer.get("id"):
        params["customer"] = customer["id"]
    if STRIPE_STATEMENT_DESCRIPTOR_SUFFIX:
        params["statement_descriptor_suffix"] = STRIPE_STATEMENT_DESCRIPTOR_SUFFIX[:22]

    try:
        intent = gateway.create_payment_intent(**params)
    except stripe.StripeError as e:
        logger.exception("payments.service.create_payment_intent failed order_id=%s", order_id)
        raise _provider_error(e)

    logger.info("payments.service intent=%s order_id=%s amount=%s", intent.get("id"), order_id, params["amount"])
    return {"clientSecret": intent.get("client_secret"), "orderId": order.get("id")}

def confirm_payment(
    *,
    order_id: str,
    payment_intent_id: str,
    user: Dict[str, Any],
    gateway: StripeGateway,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Dict[str, Any]:
    """
    Confirmation côté client (course possible avec le webhook).
    - 404/403 comme pour la création d'intent
    - Commande déjà payée: renvoyée telle quelle (no-op)
    - Le PaymentIntent doit être 'succeeded' et porter metadata.orderId == order_id (400 sinon)
    - mark_paid: si cet appel gagne la transition, il déclenche la notification
    """
    order = orders_service.get_order_or_404(order_id)
    orders_service.ensure_owner(order, user)
    if order.get("is_paid"):
        return order

    try:
        intent = gateway.retrieve_payment_intent(payment_intent_id)
    except stripe.StripeError as e:
        logger.exception("payments.service.confirm_payment retrieve failed intent=%s", payment_intent_id)
        raise _provider_error(e)

    status = intent.get("status") or ""
    if status != "succeeded":
        raise HTTPException(status_code=400, detail=f"Paiement non confirmé (status={status})")
    correlation = meta.correlation_from_metadata(intent.get("metadata"))
    if correlation is None or correlation.order_id != str(order.get("id")):
        raise HTTPException(status_code=400, detail="PaymentIntent non associé à cette commande")

    updated = orders_service.mark_paid(order_id, receipt_from_intent(intent))
    if updated is None:
        # Le webhook est passé entre-temps
        return orders_service.get_order_or_404(order_id)

    notify_order_paid(dispatcher, updated, {"email": user.get("email") or "", "name": user.get("name") or ""})
    return updated
