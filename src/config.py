"""
Application configuration.
Non-secret settings live here as module constants with sane defaults.
Secrets are read from the environment by the service that needs them.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if APP_ENV == "development" else "INFO")

# Public site URL used for auth redirects and checkout return URLs
SITE_URL = os.getenv("SITE_URL", "http://localhost:3000").rstrip("/")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,https://spoqen.com").split(",")
    if origin.strip()
]

# Public URL of this API; the voice-AI platform posts call reports here
API_URL = os.getenv("API_URL", "http://localhost:8000").rstrip("/")

# Voice-AI platform
VAPI_API_URL = os.getenv("VAPI_API_URL", "https://api.vapi.ai").rstrip("/")

# Address search
GEOAPIFY_BASE_URL = os.getenv("GEOAPIFY_BASE_URL", "https://api.geoapify.com").rstrip("/")

# Telephony
TWILIO_API_URL = os.getenv("TWILIO_API_URL", "https://api.twilio.com/2010-04-01").rstrip("/")
TWILIO_DEFAULT_AREA_CODE = os.getenv("TWILIO_DEFAULT_AREA_CODE", "415")
# Inbound calls on provisioned numbers are handed to the voice-AI platform
TWILIO_VOICE_URL = os.getenv("TWILIO_VOICE_URL", f"{VAPI_API_URL}/twilio/inbound_call")

REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
USER_AGENT = "spoqen-dashboard/1.0"

# Recent calls are cached per user to keep voice-AI API usage down
CALL_CACHE_TTL_SECONDS = int(os.getenv("CALL_CACHE_TTL_SECONDS", "60"))

# Requests per minute per IP for the public email-existence check
EMAIL_CHECK_RPM = int(os.getenv("EMAIL_CHECK_RPM", "10"))

SSE_HEARTBEAT_SECONDS = float(os.getenv("SSE_HEARTBEAT_SECONDS", "30"))

SENTRY_DSN = os.getenv("SENTRY_DSN")

# Secrets the API cannot run without
REQUIRED_ENV_VARS = [
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_SERVICE_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "STRIPE_PRICE_MONTHLY",
    "STRIPE_PRICE_YEARLY",
    "VAPI_PRIVATE_KEY",
    "VAPI_WEBHOOK_SECRET",
    "GEOAPIFY_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "ADMIN_API_TOKEN",
]


def validate_config() -> list[str]:
    """Return the names of required environment variables that are not set."""
    return [name for name in REQUIRED_ENV_VARS if not os.environ.get(name)]


def require_env(name: str) -> str:
    """Read a secret, raising ConfigurationError when it is missing."""
    from .lib.errors import ConfigurationError

    value = os.environ.get(name)
    if not value:
        raise ConfigurationError(f"{name} is not configured")
    return value
