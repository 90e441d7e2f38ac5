"""
Réconciliation des webhooks Stripe avec l'état des commandes.
Protocole (dans l'ordre):
  1) Signature vérifiée sur le corps brut (stripe_client.construct_event); échec -> 400 terminal
  2) Aiguillage par type:
     - payment_intent.succeeded      -> réconciliation
     - payment_intent.payment_failed -> journalisation seule
     - autre                         -> ignoré (journalisé, acquitté)
  3) Réconciliation: corrélation typée depuis metadata, puis mark_paid (idempotent).
     Commande absente ou déjà payée -> no-op acquitté (Stripe rejoue les livraisons).
  4) Notification best-effort, uniquement si CET événement a effectué la transition.
  5) Acquittement {"received": True} dès que 1-3 sont passés.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from storefront.orders import service as orders_service
from storefront.payments import metadata as payments_metadata
from storefront.notifications.service import NotificationDispatcher, notify_order_paid

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"

# module storefront.payments.reconciler
def receipt_from_intent(intent: Dict[str, Any]) -> Dict[str, Any]:
    """Reçu opaque stocké dans orders.payment_result."""
    return {
        "id": intent.get("id"),
        "status": intent.get("status"),
        "update_time": datetime.now(timezone.utc).isoformat(),
        "email_address": intent.get("receipt_email"),
    }

def customer_from_intent(intent: Dict[str, Any]) -> Dict[str, str]:
    meta = intent.get("metadata") or {}
    return {
        "email": meta.get("customerEmail") or intent.get("receipt_email") or "",
        "name": meta.get("customerName") or "",
    }

def reconcile_payment_succeeded(intent: Dict[str, Any], dispatcher: Optional[NotificationDispatcher]) -> str:
    """
    Applique la transition de paiement pour un PaymentIntent réussi.
    Retourne l'action effectuée: "paid", "noop_no_correlation" ou "noop".
    """
    correlation = payments_metadata.correlation_from_metadata(intent.get("metadata"))
    if correlation is None:
        logger.warning("payments.reconciler intent=%s sans metadata.orderId: ignoré", intent.get("id"))
        return "noop_no_correlation"

    order = orders_service.mark_paid(correlation.order_id, receipt_from_intent(intent))
    if order is None:
        return "noop"

    notify_order_paid(dispatcher, order, customer_from_intent(intent))
    return "paid"

def handle_event(event: Dict[str, Any], dispatcher: Optional[NotificationDispatcher] = None) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà vérifié.
    - Renvoie {"received": True, "action": ...} dans tous les cas non terminaux.
    - Les erreurs de la base pendant la réconciliation remontent (Stripe relivrera).
    """
    event_type = (event or {}).get("type") or ""
    event_id = (event or {}).get("id")
    data_obj = ((event or {}).get("data") or {}).get("object") or {}

    if event_type == PAYMENT_SUCCEEDED:
        action = reconcile_payment_succeeded(data_obj, dispatcher)
    elif event_type == PAYMENT_FAILED:
        error = (data_obj.get("last_payment_error") or {}).get("message")
        logger.warning("payments.reconciler payment failed intent=%s error=%s", data_obj.get("id"), error)
        action = "logged"
    else:
        logger.info("payments.reconciler unhandled event type=%s", event_type)
        action = "ignored"

    logger.info("payments.reconciler event id=%s type=%s action=%s", event_id, event_type, action)
    return {"received": True, "action": action}
