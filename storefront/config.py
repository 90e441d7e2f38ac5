# storefront.config
from pathlib import Path
from decimal import Decimal
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale de la boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, SMTP)
- Expose la politique de prix (TVA, seuil de livraison gratuite, forfait)
- Sécurité cookies, CORS/hosts
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _decimal_env(name: str, default: str) -> Decimal:
    return Decimal(_clean_env(os.getenv(name) or default))

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé secrète, secret webhook, devise
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_CURRENCY = _clean_env(os.getenv("STRIPE_CURRENCY") or "usd").lower()
STRIPE_STATEMENT_DESCRIPTOR_SUFFIX = _clean_env(os.getenv("STRIPE_STATEMENT_DESCRIPTOR_SUFFIX") or "")

STORE_NAME = _clean_env(os.getenv("STORE_NAME") or "Storefront")

# Politique de prix (montants en unités de devise)
TAX_RATE = _decimal_env("TAX_RATE", "0.08")
FREE_SHIPPING_THRESHOLD = _decimal_env("FREE_SHIPPING_THRESHOLD", "50")
SHIPPING_FLAT_FEE = _decimal_env("SHIPPING_FLAT_FEE", "10")

# Numéros de commande: nombre de tirages en cas de collision (contrainte UNIQUE)
ORDER_NUMBER_MAX_ATTEMPTS = int(os.getenv("ORDER_NUMBER_MAX_ATTEMPTS", "5"))

# SMTP (optionnel): sans SMTP_HOST, les emails sont seulement journalisés
SMTP_HOST = _clean_env(os.getenv("SMTP_HOST") or "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = _clean_env(os.getenv("SMTP_USER") or "")
SMTP_PASSWORD = _clean_env(os.getenv("SMTP_PASSWORD") or "")
SMTP_USE_TLS = (os.getenv("SMTP_USE_TLS", "true").lower() == "true")
EMAIL_FROM = _clean_env(os.getenv("EMAIL_FROM") or SMTP_USER or "no-reply@localhost")

LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "info").lower()
