"""
Lecture des erreurs PostgREST (APIError) remontées par le client Supabase.
"""
from typing import Optional
from postgrest.exceptions import APIError

UNIQUE_VIOLATION = "23505"

def api_error_code(e: APIError) -> Optional[str]:
    code = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return str(code) if code else None

def api_error_message(e: APIError) -> str:
    msg = getattr(e, "message", None)
    if not msg and e.args and isinstance(e.args[0], dict):
        msg = e.args[0].get("message")
    return str(msg or e)
