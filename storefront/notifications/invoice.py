"""
Modèle de facture: vue figée d'une commande consommée par le rendu (email, PDF externe).
Aucun accès DB ici: tout provient de la ligne 'orders' déjà persistée.
"""
from typing import Any, Dict, Optional

from storefront.config import STORE_NAME
from storefront.orders.pricing import to_money

# module storefront.notifications.invoice
def build_invoice(order: Dict[str, Any], customer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Construit le document facture à partir de la commande.
    - Les montants sont ceux enregistrés à la création (jamais recalculés),
      à l'exception des totaux de ligne (prix figé × quantité) pour l'affichage.
    - customer: {email, name} si connu (sinon repris de payment_result.email_address).
    """
    customer = customer or {}
    receipt = order.get("payment_result") or {}
    lines = []
    for item in order.get("order_items") or []:
        qty = int(item.get("quantity") or 0)
        unit = to_money(item.get("price") or 0)
        lines.append({
            "product": item.get("product"),
            "name": item.get("name") or "",
            "quantity": qty,
            "unit_price": str(unit),
            "line_total": str(to_money(unit * qty)),
        })
    return {
        "store": STORE_NAME,
        "order_id": order.get("id"),
        "order_number": order.get("order_number") or order.get("id"),
        "order_date": order.get("created_at"),
        "customer": {
            "email": customer.get("email") or receipt.get("email_address") or "",
            "name": customer.get("name") or "",
        },
        "shipping_address": order.get("shipping_address") or {},
        "payment_method": order.get("payment_method"),
        "lines": lines,
        "items_price": str(to_money(order.get("items_price") or 0)),
        "tax_price": str(to_money(order.get("tax_price") or 0)),
        "shipping_price": str(to_money(order.get("shipping_price") or 0)),
        "total_price": str(to_money(order.get("total_price") or 0)),
        "is_paid": bool(order.get("is_paid")),
        "paid_at": order.get("paid_at"),
        "status": order.get("status"),
    }
