"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
- StripeGateway est instancié une fois (lifespan) puis injecté dans les vues/services:
  aucune mutation globale de stripe.api_key, la clé est passée à chaque appel.
- Les objets Stripe sont convertis en dict (to_dict, récursif) avant de sortir du gateway:
  les StripeObject ne sont pas des mappings.
"""
import json
import logging
from typing import Any, Dict, Optional

import stripe

logger = logging.getLogger(__name__)

# module storefront.payments.stripe_client
class WebhookVerificationError(Exception):
    """Signature ou payload de webhook invalide: rejet terminal (400), jamais rejoué en interne."""


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str, currency: str = "usd", tolerance: int = 300):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.tolerance = tolerance

    def require_api_key(self) -> None:
        if not self.api_key:
            raise stripe.AuthenticationError("STRIPE_SECRET_KEY manquant")

    def find_or_create_customer(self, *, email: str, name: str = "", address: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Réutilise le client Stripe existant pour cet email, sinon le crée.
        Évite les doublons de fiches client pour un même acheteur.
        """
        self.require_api_key()
        existing = stripe.Customer.list(email=email, limit=1, api_key=self.api_key)
        data = list(existing.data or [])
        if data:
            return data[0].to_dict()
        customer = stripe.Customer.create(
            email=email,
            name=name or None,
            address=address or None,
            api_key=self.api_key,
        )
        logger.info("stripe.customer created id=%s", customer.id)
        return customer.to_dict()

    def create_payment_intent(self, **params: Any) -> Dict[str, Any]:
        """
        Crée un PaymentIntent (amount en centimes, currency par défaut du gateway).
        Retour: dict incluant "id", "client_secret", "status", "metadata".
        """
        self.require_api_key()
        params.setdefault("currency", self.currency)
        intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        return intent.to_dict()

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self.require_api_key()
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        return intent.to_dict()

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Valide un événement signé (webhook) puis le décode.
        - payload: corps BRUT de la requête (la signature porte sur les octets exacts)
        - sig_header: en-tête Stripe-Signature
        Soulève WebhookVerificationError si le secret, l'en-tête ou la signature est invalide.
        """
        if not self.webhook_secret:
            raise WebhookVerificationError("Webhook secret not configured")
        if not sig_header:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, sig_header, self.webhook_secret, self.tolerance)
            event = json.loads(text)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(str(e)) from e
        except ValueError as e:
            # UnicodeDecodeError et JSONDecodeError héritent de ValueError
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
        if not isinstance(event, dict):
            raise WebhookVerificationError("Invalid payload: not an object")
        return event
