"""
Authentification des requêtes API.
- Jeton Supabase lu en Bearer, à défaut dans le cookie de session (navigation web).
- require_user / require_admin: dépendances FastAPI des routes protégées.
"""
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request

COOKIE_NAME = "sb_access"

def extract_token(request: Request) -> Optional[str]:
    """Jeton d'accès de la requête (Bearer prioritaire sur le cookie), ou None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None

def get_current_user(request: Request) -> Dict[str, Any]:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    from storefront.auth import service as auth_service
    try:
        user = auth_service.get_user_from_token(token)
    except Exception:
        # Jeton expiré/révoqué ou Supabase Auth injoignable: on ne distingue pas côté client
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user

def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Accès interdit")
    return user
