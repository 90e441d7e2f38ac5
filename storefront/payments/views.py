import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, Depends, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storefront.utils.security import require_user
from storefront.utils.rate_limit import optional_rate_limit
from storefront.utils.clients import get_gateway, get_dispatcher
from storefront.orders.models import PaymentIntentRequest
from storefront.payments import service as payments_service
from storefront.payments import reconciler
from storefront.payments.stripe_client import WebhookVerificationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

WEBHOOK_PATH = "/api/v1/payments/webhook"

# module storefront.payments.views
@router.post("/create-payment-intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intent(
    body: PaymentIntentRequest,
    user: Dict[str, Any] = Depends(require_user),
    gateway=Depends(get_gateway),
):
    """
    Crée un PaymentIntent Stripe pour une commande de l'utilisateur authentifié.
    - Entrée JSON: { "orderId": "<id>" }
    - Retour: { "clientSecret": "...", "orderId": "<id>" }
    - Erreurs: 404 commande introuvable, 403 non propriétaire, 400 déjà payée / erreur Stripe
    """
    return payments_service.create_payment_intent(order_id=body.order_id, user=user, gateway=gateway)

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, gateway=Depends(get_gateway), dispatcher=Depends(get_dispatcher)):
    """
    Webhook Stripe (PaymentIntent).
    - Corps lu BRUT (request.body()): aucune désérialisation avant la vérification de signature
    - Signature invalide -> 400 {"detail": "Webhook Error: ..."}, aucune commande n'est lue
    - Sinon délègue au reconciler et renvoie {"received": true, ...}
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = gateway.construct_event(payload, sig_header)
    except WebhookVerificationError as e:
        logger.warning("payments.webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    # Réconciliation synchrone (client Supabase bloquant): hors de la boucle asyncio
    result = await run_in_threadpool(reconciler.handle_event, event, dispatcher)
    return JSONResponse(result)
