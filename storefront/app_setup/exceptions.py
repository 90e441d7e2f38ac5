"""
Gestionnaires d'exceptions.
- HTTPException: réponse JSON {"detail": ...} avec le code d'origine.
- RequestValidationError: 400 (et non 422) avec les messages par champ.
- Toute autre exception: 500 générique, journalisée, sans détail interne.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

def _field_name(loc) -> str:
    # ("body", "shippingAddress", "zipCode") -> "shippingAddress.zipCode"
    parts = [str(p) for p in (loc or ()) if p not in ("body", "query", "path")]
    return ".".join(parts)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [{"field": _field_name(err.get("loc")), "message": err.get("msg")} for err in exc.errors()]
        return JSONResponse(status_code=400, content={"detail": "Données invalides", "errors": errors})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Erreur non gérée %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Erreur interne du serveur"})
