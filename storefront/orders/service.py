"""
Cas d'usage 'orders': création, transition de paiement, statut admin, lecture.
Rôles:
- create_order: valide le panier contre le stock, fige les lignes (snapshot), calcule les prix,
  réserve le stock de façon atomique puis persiste la commande (pending, non payée).
- mark_paid: unique transition « non payée -> payée », idempotente, appelée par le webhook
  Stripe comme par la confirmation client.
- confirm_payment: confirmation côté client, vérifie le PaymentIntent auprès de Stripe.
- update_status: mise à jour admin (delivered pose is_delivered/delivered_at une seule fois).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import secrets

from fastapi import HTTPException
from postgrest.exceptions import APIError

from storefront.config import ORDER_NUMBER_MAX_ATTEMPTS
from storefront.infra.errors import api_error_code, UNIQUE_VIOLATION
from storefront.orders import repository
from storefront.orders import pricing
from storefront.orders.models import CreateOrderRequest, OrderStatus, UpdateStatusRequest
from storefront.products import repository as products_repo

logger = logging.getLogger(__name__)

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def generate_order_number(now: Optional[datetime] = None) -> str:
    """Numéro lisible ORD-AAAAMMJJ-XXXXXXXX (unicité garantie par la contrainte UNIQUE en base)."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"

def aggregate_quantities(request: CreateOrderRequest) -> Dict[str, int]:
    """
    Agrège les lignes en {product_id: quantité totale}, dans l'ordre de première apparition.
    Deux lignes du même produit sont contrôlées ensemble contre le stock.
    """
    quantities: Dict[str, int] = {}
    for item in request.order_items:
        pid = item.product.strip()
        quantities[pid] = quantities.get(pid, 0) + int(item.quantity)
    return quantities

def check_availability(quantities: Dict[str, int], products: Dict[str, Dict[str, Any]]) -> None:
    """
    Vérifie chaque ligne contre l'état courant du catalogue, tout ou rien.
    - 404 si un produit est introuvable
    - 400 si une quantité dépasse le stock disponible
    """
    for pid, qty in quantities.items():
        product = products.get(pid)
        if not product:
            raise HTTPException(status_code=404, detail=f"Produit introuvable: {pid}")
        stock = int(product.get("stock") or 0)
        if stock < qty:
            raise HTTPException(
                status_code=400,
                detail=f"Stock insuffisant pour {product.get('name')}. Disponible: {stock}",
            )

def snapshot_items(quantities: Dict[str, int], products: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fige nom/image/prix au moment de la commande (indépendant des évolutions du catalogue)."""
    items: List[Dict[str, Any]] = []
    for pid, qty in quantities.items():
        product = products[pid]
        items.append({
            "product": pid,
            "name": product.get("name") or "",
            "image": product.get("image") or "",
            "price": str(pricing.to_money(product.get("price") or 0)),
            "quantity": qty,
        })
    return items

def _insert_with_unique_number(record: Dict[str, Any]) -> Dict[str, Any]:
    last_error: Optional[APIError] = None
    for attempt in range(1, ORDER_NUMBER_MAX_ATTEMPTS + 1):
        record["order_number"] = generate_order_number()
        try:
            return repository.insert_order(record)
        except APIError as e:
            if api_error_code(e) != UNIQUE_VIOLATION:
                raise
            logger.warning("orders.service order_number collision attempt=%s number=%s", attempt, record["order_number"])
            last_error = e
    raise RuntimeError("Impossible d'attribuer un numéro de commande unique") from last_error

def create_order(*, user: Dict[str, Any], request: CreateOrderRequest, policy: pricing.PricingPolicy = pricing.DEFAULT_POLICY) -> Dict[str, Any]:
    """
    Crée une commande « pending » à partir d'un panier.
    Étapes:
      1) Agréger les quantités et charger les produits
      2) Vérifier existence et stock (404/400, rien n'est écrit)
      3) Figer les lignes et calculer les prix
      4) Réserver le stock (décrément conditionnel atomique, tout ou rien)
      5) Insérer la commande; en cas d'échec, restituer le stock
    """
    quantities = aggregate_quantities(request)
    if not quantities:
        raise HTTPException(status_code=400, detail="Aucun article dans la commande")

    products = products_repo.get_products_map(list(quantities.keys()))
    check_availability(quantities, products)

    items = snapshot_items(quantities, products)
    prices = pricing.compute_prices([(i["price"], i["quantity"]) for i in items], policy)

    if not products_repo.reserve_stock(quantities):
        # Course perdue: un autre achat a consommé le stock entre la vérification et la réservation
        raise HTTPException(status_code=400, detail="Stock insuffisant pour un ou plusieurs articles")

    record: Dict[str, Any] = {
        "user_id": user.get("id"),
        "order_items": items,
        "shipping_address": request.shipping_address.as_record(),
        "payment_method": request.payment_method.value,
        **prices.as_record(),
        "status": OrderStatus.PENDING.value,
        "is_paid": False,
        "is_delivered": False,
    }
    try:
        order = _insert_with_unique_number(record)
    except Exception:
        logger.exception("orders.service.create_order insert failed, releasing stock user_id=%s", user.get("id"))
        products_repo.release_stock(quantities)
        raise

    logger.info(
        "orders.service.create_order order_id=%s number=%s total=%s user_id=%s",
        order.get("id"), order.get("order_number"), prices.total_price, user.get("id"),
    )
    return order

def mark_paid(order_id: str, receipt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Transition unique « non payée -> payée » (is_paid, paid_at, status=confirmed, payment_result).
    - Retourne la commande mise à jour si CET appel a effectué la transition.
    - Retourne None si la commande est absente ou déjà payée: no-op idempotent.
    Le garde is_paid = false est appliqué par la base dans la même requête UPDATE.
    """
    if not order_id:
        return None
    changes = {
        "is_paid": True,
        "paid_at": _now_iso(),
        "status": OrderStatus.CONFIRMED.value,
        "payment_result": receipt,
    }
    updated = repository.mark_paid_if_unpaid(order_id, changes)
    if updated:
        logger.info("orders.service.mark_paid order_id=%s receipt_id=%s", order_id, receipt.get("id"))
    else:
        logger.info("orders.service.mark_paid noop order_id=%s (absente ou déjà payée)", order_id)
    return updated

def get_order_or_404(order_id: str) -> Dict[str, Any]:
    order = repository.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return order

def ensure_owner(order: Dict[str, Any], user: Dict[str, Any], allow_admin: bool = False) -> None:
    """403 si l'utilisateur n'est pas propriétaire (ou admin quand allow_admin)."""
    if str(order.get("user_id")) == str(user.get("id")):
        return
    if allow_admin and user.get("role") == "admin":
        return
    raise HTTPException(status_code=403, detail="Accès refusé")

def get_order_for_user(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    order = get_order_or_404(order_id)
    ensure_owner(order, user, allow_admin=True)
    return order

def list_orders_for_user(user_id: str) -> List[Dict[str, Any]]:
    return repository.list_user_orders(user_id)

def list_all_orders(limit: int = 100) -> List[Dict[str, Any]]:
    return repository.list_all_orders(limit=limit)

def update_status(order_id: str, request: UpdateStatusRequest) -> Dict[str, Any]:
    """
    Mise à jour admin du statut (+ suivi/notes optionnels).
    - delivered: is_delivered/delivered_at posés une seule fois (garde en base).
    - Ne touche jamais is_paid/paid_at.
    """
    get_order_or_404(order_id)
    changes: Dict[str, Any] = {"status": request.status.value}
    if request.tracking_number:
        changes["tracking_number"] = request.tracking_number
    if request.notes:
        changes["notes"] = request.notes

    updated = repository.update_order(order_id, changes)
    if request.status == OrderStatus.DELIVERED:
        delivered = repository.set_delivered_if_not_delivered(order_id, _now_iso())
        updated = delivered or updated
    if not updated:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    logger.info("orders.service.update_status order_id=%s status=%s", order_id, request.status.value)
    return updated
