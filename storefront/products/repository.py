"""
Accès aux données 'products' utilisé par la création de commande.
- Lecture du catalogue par IDs.
- Décrément/restitution de stock via les fonctions SQL reserve_stock/release_stock
  (voir sql/schema.sql): une seule transaction, décrément conditionnel stock >= quantité.
"""
from typing import Any, Dict, Iterable, List, Mapping
import logging

from postgrest.exceptions import APIError

import storefront.infra.supabase_client as supabase_client
from storefront.infra.errors import api_error_message

logger = logging.getLogger(__name__)

INSUFFICIENT_STOCK_MARKER = "insufficient_stock"

# module storefront.products.repository
def fetch_products_by_ids(ids: List[str]) -> List[dict]:
    """
    Récupère les produits par leurs IDs (table 'products').
    - Retourne [] si ids vide.
    - Les erreurs de la base remontent: une commande ne doit pas être refusée
      en « produit introuvable » parce que la base est indisponible.
    """
    if not ids:
        return []
    res = (
        supabase_client.get_service_supabase()
        .table("products")
        .select("id, name, image, price, stock")
        .in_("id", [str(i) for i in ids])
        .execute()
    )
    return res.data or []

def get_products_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Retourne un dict {id: produit} à partir d'une liste d'IDs."""
    products = fetch_products_by_ids(list(ids))
    return {str(p.get("id")): p for p in products}

def _rpc_items(quantities: Mapping[str, int]) -> List[Dict[str, Any]]:
    return [{"product_id": pid, "quantity": int(qty)} for pid, qty in quantities.items()]

def reserve_stock(quantities: Mapping[str, int]) -> bool:
    """
    Décrémente le stock de toutes les lignes, ou d'aucune.
    - True si toutes les lignes ont été décrémentées.
    - False si au moins un produit n'a plus assez de stock (course perdue entre
      la vérification et le décrément); la transaction SQL est alors annulée.
    - Toute autre erreur remonte.
    """
    try:
        supabase_client.get_service_supabase().rpc("reserve_stock", {"p_items": _rpc_items(quantities)}).execute()
        return True
    except APIError as e:
        if INSUFFICIENT_STOCK_MARKER in api_error_message(e):
            logger.warning("products.repository.reserve_stock refused items=%s: %s", dict(quantities), api_error_message(e))
            return False
        raise

def release_stock(quantities: Mapping[str, int]) -> None:
    """Restitue le stock réservé (compensation si l'insertion de la commande échoue)."""
    supabase_client.get_service_supabase().rpc("release_stock", {"p_items": _rpc_items(quantities)}).execute()
