"""
Accès aux données pour la feature 'orders' (table 'orders').
Les écritures passent par le client service-role.
Contrairement aux lectures « best-effort » ailleurs, les erreurs de la base sont journalisées
puis remontées: un état de paiement ne doit jamais être déduit d'une erreur réseau.
"""
from typing import Any, Dict, List, Optional
import logging

import storefront.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

TABLE = "orders"

def _first(res) -> Optional[Dict[str, Any]]:
    rows = res.data or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None

# module storefront.orders.repository
def insert_order(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Insère une commande et retourne la ligne créée (id, order_number, timestamps...).
    - APIError 23505 (order_number déjà pris) remonte tel quel: le service retire un numéro.
    """
    res = supabase_client.get_service_supabase().table(TABLE).insert(record).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insertion de la commande sans ligne retournée")
    return row

def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    """Retourne la commande par id interne, ou None si absente."""
    if not order_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .select("*")
        .eq("id", order_id)
        .limit(1)
        .execute()
    )
    return _first(res)

def list_user_orders(user_id: str) -> List[Dict[str, Any]]:
    """Commandes d'un utilisateur, les plus récentes d'abord."""
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return res.data or []

def list_all_orders(limit: int = 100) -> List[Dict[str, Any]]:
    """Toutes les commandes (admin), les plus récentes d'abord."""
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .select("*")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return res.data or []

def mark_paid_if_unpaid(order_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    UPDATE orders SET ... WHERE id = :id AND is_paid = false, en une seule requête.
    - Retourne la ligne mise à jour si cet appel a effectué la transition.
    - Retourne None si la commande est absente ou déjà payée (aucune ligne touchée).
    La condition est évaluée par la base: deux écrivains concurrents ne peuvent
    pas tous les deux obtenir une ligne.
    """
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .update(changes)
        .eq("id", order_id)
        .eq("is_paid", False)
        .execute()
    )
    return _first(res)

def set_delivered_if_not_delivered(order_id: str, delivered_at: str) -> Optional[Dict[str, Any]]:
    """Pose is_delivered/delivered_at une seule fois (WHERE is_delivered = false)."""
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .update({"is_delivered": True, "delivered_at": delivered_at})
        .eq("id", order_id)
        .eq("is_delivered", False)
        .execute()
    )
    return _first(res)

def update_order(order_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Mise à jour simple (statut admin, suivi, notes). Retourne la ligne ou None."""
    res = (
        supabase_client.get_service_supabase()
        .table(TABLE)
        .update(changes)
        .eq("id", order_id)
        .execute()
    )
    return _first(res)
