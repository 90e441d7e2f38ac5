"""
Métadonnées de corrélation Stripe <-> commande.
Contrat externe (noms et types des clés, valeurs str) posé sur le PaymentIntent à la création
et renvoyé tel quel par Stripe dans les webhooks:
  orderId, userId, orderNumber, items, itemCount, customerEmail, customerName, customerAddress
Côté serveur, seules orderId/orderNumber/userId sont relues, sous forme typée (PaymentCorrelation).
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Limite Stripe: 500 caractères par valeur de metadata
MAX_VALUE_LENGTH = 500

# module storefront.payments.metadata
@dataclass(frozen=True)
class PaymentCorrelation:
    order_id: str
    order_number: str = ""
    user_id: str = ""

def _clip(value: Any) -> str:
    return str(value if value is not None else "")[:MAX_VALUE_LENGTH]

def make_metadata(order: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, str]:
    """
    Sérialise les métadonnées du PaymentIntent pour une commande.
    - order: ligne 'orders' (id, order_number, order_items, shipping_address)
    - user: utilisateur authentifié (id, email, name)
    """
    items = order.get("order_items") or []
    address = order.get("shipping_address") or {}
    customer_address = (
        f"{address.get('street', '')}, {address.get('city', '')}, "
        f"{address.get('state', '')} {address.get('zipCode', '')}, {address.get('country', '')}"
    )
    return {
        "orderId": _clip(order.get("id")),
        "userId": _clip(user.get("id")),
        "orderNumber": _clip(order.get("order_number")),
        "items": _clip(", ".join(str(i.get("name") or "") for i in items)),
        "itemCount": str(len(items)),
        "customerEmail": _clip(user.get("email")),
        "customerName": _clip(user.get("name")),
        "customerAddress": _clip(customer_address),
    }

def correlation_from_metadata(meta: Optional[Dict[str, Any]]) -> Optional[PaymentCorrelation]:
    """Convertit la metadata brute en PaymentCorrelation; None si orderId absent/vide."""
    meta = meta or {}
    order_id = str(meta.get("orderId") or "").strip()
    if not order_id:
        return None
    return PaymentCorrelation(
        order_id=order_id,
        order_number=str(meta.get("orderNumber") or ""),
        user_id=str(meta.get("userId") or ""),
    )

def extract_correlation(event: Dict[str, Any]) -> Optional[PaymentCorrelation]:
    """
    Extrait la corrélation depuis un event Stripe (webhook).
    - Attend event.data.object.metadata.orderId
    """
    data_obj = (event or {}).get("data", {}).get("object", {}) if isinstance(event, dict) else {}
    return correlation_from_metadata(data_obj.get("metadata"))
