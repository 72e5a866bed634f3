"""
Evolv – Django Settings (Infrastructure Only)
=============================================
Django serves as the framework container for the storefront engine.
The engines are the authority — Django does not dictate structure.

Collaborator credentials come from the environment through the
STOREFRONT dict (read by core.config.StorefrontConfig). Business rules
are NOT configured here; they are named constants in their engines.
"""

import json
import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "evolv-dev-key-replace-before-deployment")

DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"

ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "").split(",") if h]

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # ── Evolv Modules ─────────────────────────────────────
    "adapters.django_api.apps.StorefrontApiConfig",
]

# ── Middleware ────────────────────────────────────────────────
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

# ── URL ───────────────────────────────────────────────────────
ROOT_URLCONF = "config.urls"
APPEND_SLASH = False

# ── Database ──────────────────────────────────────────────────
# The engines keep state in their own repositories. Django only
# needs a database for its contrib apps.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── E-mail ────────────────────────────────────────────────────
EMAIL_BACKEND = os.environ.get(
    "EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend",
)
EMAIL_HOST = os.environ.get("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.environ.get("EMAIL_PORT", "25"))
EMAIL_HOST_USER = os.environ.get("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.environ.get("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = os.environ.get("EMAIL_USE_TLS", "0") == "1"

# ── Storefront collaborators ──────────────────────────────────
STOREFRONT = {
    "gateway_key_id": os.environ.get("RAZORPAY_KEY_ID", ""),
    "gateway_key_secret": os.environ.get("RAZORPAY_KEY_SECRET", ""),
    "gateway_webhook_secret": os.environ.get("RAZORPAY_WEBHOOK_SECRET", ""),
    "carrier_api_token": os.environ.get("DELHIVERY_API_TOKEN", ""),
    "carrier_pickup_location": os.environ.get("DELHIVERY_PICKUP_LOCATION", ""),
    "carrier_webhook_secret": os.environ.get("DELHIVERY_WEBHOOK_SECRET", ""),
    "notification_sender": os.environ.get("ORDER_EMAIL_SENDER", "orders@evolv.example"),
    "http_timeout_seconds": os.environ.get("STOREFRONT_HTTP_TIMEOUT", "15"),
    "retry_max_retries": os.environ.get("STOREFRONT_RETRY_MAX", "3"),
    "retry_backoff_seconds": os.environ.get("STOREFRONT_RETRY_BACKOFF", "2"),
}

# {"<api key>": {"actor_id": "...", "actor_type": "CUSTOMER" | "ADMIN"}}.
# Empty means the development keys in adapters.django_api.wiring.
STOREFRONT_API_KEYS = json.loads(os.environ.get("STOREFRONT_API_KEYS", "{}"))

STOREFRONT_CATALOG = []
STOREFRONT_PROMO_CODES = []

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "evolv": {
            "handlers": ["console"],
            "level": os.environ.get("EVOLV_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
