# payflow.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de paiement.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), sécurité cookies, CORS/hosts
- Fournit les URLs de redirection du checkout par type de sujet (cours, commande)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon pour l'auth, service pour les écritures serveur)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Tables
PURCHASE_INTENTS_TABLE = os.getenv("PURCHASE_INTENTS_TABLE", "purchase_intents")
COURSES_TABLE = os.getenv("COURSES_TABLE", "courses")
ENROLLMENTS_TABLE = os.getenv("ENROLLMENTS_TABLE", "enrollments")
RESTAURANTS_TABLE = os.getenv("RESTAURANTS_TABLE", "restaurants")
MENUS_TABLE = os.getenv("MENUS_TABLE", "menus")
ORDERS_TABLE = os.getenv("ORDERS_TABLE", "orders")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé secrète et secret de signature des webhooks
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
# Tolérance (secondes) sur l'horodatage signé par Stripe
STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)

# Réconciliation: durée (secondes) du bail pris par la livraison qui accorde l'entitlement
GRANT_LEASE_SECONDS = max(_int_env("GRANT_LEASE_SECONDS", 300), 30)

# Checkout
CHECKOUT_CURRENCY = _clean_env(os.getenv("CHECKOUT_CURRENCY") or "inr").lower()
# Stripe impose une durée de vie comprise entre 30 minutes et 24 heures
CHECKOUT_SESSION_TTL_MINUTES = min(max(_int_env("CHECKOUT_SESSION_TTL_MINUTES", 30), 30), 24 * 60)

FRONTEND_URL = _clean_env(os.getenv("FRONTEND_URL") or "http://localhost:5173").rstrip("/")

# Pages de succès/annulation; {subject_id} est remplacé par l'id du cours ou de la commande
COURSE_SUCCESS_PATH = os.getenv("COURSE_SUCCESS_PATH", "/course-progress/{subject_id}")
COURSE_CANCEL_PATH = os.getenv("COURSE_CANCEL_PATH", "/course-detail/{subject_id}")
ORDER_SUCCESS_PATH = os.getenv("ORDER_SUCCESS_PATH", "/order/status")
ORDER_CANCEL_PATH = os.getenv("ORDER_CANCEL_PATH", "/cart")
