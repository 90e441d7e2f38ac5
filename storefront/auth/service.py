from typing import Dict, Any
from .repository import get_user_from_access_token as _repo_get_user_from_token

def determine_role(metadata: Dict[str, Any] | None) -> str:
    """Rôle applicatif: 'admin' si posé dans les metadata, sinon 'user'."""
    role_lower = str((metadata or {}).get("role", "")).lower()
    if role_lower == "admin":
        return "admin"
    return "user"

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise l'utilisateur issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, name, role, token}
    - Le rôle est lu dans app_metadata (non modifiable par l'utilisateur), à défaut user_metadata
    """
    raw = _repo_get_user_from_token(access_token)
    user_metadata = raw.get("user_metadata") or {}
    app_metadata = raw.get("app_metadata") or {}
    role = determine_role(app_metadata if app_metadata.get("role") else user_metadata)
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "name": user_metadata.get("full_name") or user_metadata.get("name") or "",
        "role": role,
        "token": access_token,
    }
