"""
Clients Supabase partagés, créés à la première utilisation.
- get_supabase: clé anon, utilisé pour Supabase Auth (validation des jetons).
- get_service_supabase: clé service-role (bypass RLS), utilisé pour toutes les lectures/écritures
  commandes et stock, y compris depuis le webhook Stripe qui n'a pas d'utilisateur.
"""
from typing import Dict

from supabase import create_client, Client

from storefront.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_clients: Dict[str, Client] = {}

def _get_client(role: str, key: str, env_name: str) -> Client:
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL manquant")
    if not key:
        raise RuntimeError(f"{env_name} manquant pour le client Supabase '{role}'")
    if role not in _clients:
        _clients[role] = create_client(SUPABASE_URL, key)
    return _clients[role]

def get_supabase() -> Client:
    return _get_client("anon", SUPABASE_ANON, "SUPABASE_ANON_KEY")

def get_service_supabase() -> Client:
    return _get_client("service", SUPABASE_SERVICE_KEY, "SUPABASE_SERVICE_KEY")
