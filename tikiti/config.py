# tikiti.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du backend Tikiti.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, M-Pesa, Flutterwave, PayPal, Stripe)
- Expose les réglages métier (taux de commission, polling, expiration des commandes, job de reversement)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_int(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

def _env_flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

# Supabase: URL et clés (anon pour les lectures publiques, service pour les écritures serveur)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Session (le panier vit dans la session signée), cookies, CORS/hosts
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")
COOKIE_SECURE = _env_flag("COOKIE_SECURE")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")
# Page de connexion du front (redirection des navigateurs sur 401/403)
LOGIN_URL = _clean_env(os.getenv("LOGIN_URL") or "/login")

# Règles métier
PLATFORM_FEE_RATE = Decimal(_clean_env(os.getenv("PLATFORM_FEE_RATE")) or "0.05")
QR_SIGNING_SECRET = _clean_env(os.getenv("QR_SIGNING_SECRET") or "dev-qr-secret-change-me")

# M-Pesa Daraja (STK push)
MPESA_ENV = _clean_env(os.getenv("MPESA_ENV") or "sandbox")
MPESA_BASE_URL = "https://api.safaricom.co.ke" if MPESA_ENV == "production" else "https://sandbox.safaricom.co.ke"
MPESA_CONSUMER_KEY = _clean_env(os.getenv("MPESA_CONSUMER_KEY") or "")
MPESA_CONSUMER_SECRET = _clean_env(os.getenv("MPESA_CONSUMER_SECRET") or "")
MPESA_SHORTCODE = _clean_env(os.getenv("MPESA_SHORTCODE") or "")
MPESA_PASSKEY = _clean_env(os.getenv("MPESA_PASSKEY") or "")
MPESA_CALLBACK_TOKEN = _clean_env(os.getenv("MPESA_CALLBACK_TOKEN") or "")
MPESA_CALLBACK_URL = _clean_env(
    os.getenv("MPESA_CALLBACK_URL") or f"{BASE_URL}/api/v1/payments/webhooks/mpesa?token={MPESA_CALLBACK_TOKEN}"
)

# Flutterwave (carte + Airtel Money)
FLUTTERWAVE_BASE_URL = _clean_env(os.getenv("FLUTTERWAVE_BASE_URL") or "https://api.flutterwave.com/v3")
FLUTTERWAVE_SECRET_KEY = _clean_env(os.getenv("FLUTTERWAVE_SECRET_KEY") or "")
FLUTTERWAVE_WEBHOOK_HASH = _clean_env(os.getenv("FLUTTERWAVE_WEBHOOK_HASH") or "")

# PayPal (création puis capture)
PAYPAL_MODE = _clean_env(os.getenv("PAYPAL_MODE") or "sandbox")
PAYPAL_BASE_URL = "https://api-m.paypal.com" if PAYPAL_MODE == "live" else "https://api-m.sandbox.paypal.com"
PAYPAL_CLIENT_ID = _clean_env(os.getenv("PAYPAL_CLIENT_ID") or "")
PAYPAL_CLIENT_SECRET = _clean_env(os.getenv("PAYPAL_CLIENT_SECRET") or "")

# Stripe Checkout (cartes internationales)
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Pages de retour après paiement (front)
ORDER_CONFIRMED_PATH = os.getenv("ORDER_CONFIRMED_PATH", "/order-confirmed")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/cart?payment=cancel")

# Réseau / polling / jobs
HTTP_TIMEOUT_SECONDS = _env_int("HTTP_TIMEOUT_SECONDS", 15)
PAYMENT_POLL_INTERVAL_SECONDS = _env_int("PAYMENT_POLL_INTERVAL_SECONDS", 3)
PAYMENT_POLL_MAX_ATTEMPTS = _env_int("PAYMENT_POLL_MAX_ATTEMPTS", 20)
PENDING_ORDER_TTL_SECONDS = _env_int("PENDING_ORDER_TTL_SECONDS", 24 * 60 * 60)
PAYOUT_JOB_ENABLED = _env_flag("PAYOUT_JOB_ENABLED", "true")
PAYOUT_JOB_INTERVAL_SECONDS = _env_int("PAYOUT_JOB_INTERVAL_SECONDS", 24 * 60 * 60)
PAYOUT_BATCH_LIMIT = _env_int("PAYOUT_BATCH_LIMIT", 100)
