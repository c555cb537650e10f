"""
Application Configuration

Loads environment variables and provides typed settings
for the application. Uses python-dotenv to load from .env file.

Policy constants for the auto-gift pipeline (minimum gift price,
address token lifetime, nudge rate limits) live here as well so
they can be tuned per environment without code changes.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from the repository root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- App Settings ---
API_V1_PREFIX = "/api/v1"
PROJECT_NAME = "AutoGift"
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

# --- Supabase ---
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# --- Catalog search service ---
CATALOG_SEARCH_URL: str = os.getenv("CATALOG_SEARCH_URL", "")
CATALOG_API_KEY: str = os.getenv("CATALOG_API_KEY", "")

# --- Anthropic (nudge personalization) ---
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

# --- Resend (transactional email) ---
RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM: str = os.getenv("EMAIL_FROM", "Auto-Gifts <gifts@example.com>")

# --- Upstash QStash (scheduler webhook) ---
QSTASH_CURRENT_SIGNING_KEY: str = os.getenv("QSTASH_CURRENT_SIGNING_KEY", "")
QSTASH_NEXT_SIGNING_KEY: str = os.getenv("QSTASH_NEXT_SIGNING_KEY", "")

# --- APNs (approval push notifications) ---
APNS_KEY_ID: str = os.getenv("APNS_KEY_ID", "")
APNS_TEAM_ID: str = os.getenv("APNS_TEAM_ID", "")
APNS_AUTH_KEY_PATH: str = os.getenv("APNS_AUTH_KEY_PATH", "")
APNS_BUNDLE_ID: str = os.getenv("APNS_BUNDLE_ID", "")
APNS_USE_SANDBOX: bool = os.getenv("APNS_USE_SANDBOX", "true").lower() == "true"

# --- Pipeline policy ---
MIN_GIFT_PRICE: float = float(os.getenv("MIN_GIFT_PRICE", "10"))
WISHLIST_SCAN_LIMIT: int = int(os.getenv("WISHLIST_SCAN_LIMIT", "10"))
CATALOG_SEARCH_LIMIT: int = int(os.getenv("CATALOG_SEARCH_LIMIT", "20"))
ADDRESS_TOKEN_TTL_HOURS: int = int(os.getenv("ADDRESS_TOKEN_TTL_HOURS", "72"))
DEFAULT_BUDGET_LIMIT: float = float(os.getenv("DEFAULT_BUDGET_LIMIT", "50"))

# --- Nudge rate limits ---
NUDGE_MAX_PER_WINDOW: int = int(os.getenv("NUDGE_MAX_PER_WINDOW", "3"))
NUDGE_WINDOW_DAYS: int = int(os.getenv("NUDGE_WINDOW_DAYS", "7"))
NUDGE_MIN_INTERVAL_HOURS: int = int(os.getenv("NUDGE_MIN_INTERVAL_HOURS", "24"))
AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "8"))


def validate_supabase_config() -> bool:
    """Check that all required Supabase credentials are present and non-empty."""
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_ANON_KEY:
        missing.append("SUPABASE_ANON_KEY")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise EnvironmentError(
            f"Missing required Supabase environment variables: {', '.join(missing)}. "
            f"Please fill in your .env file at: {_env_path}"
        )
    return True


def is_anthropic_configured() -> bool:
    """True when nudge messages can be personalized with Claude."""
    return bool(ANTHROPIC_API_KEY)


def is_resend_configured() -> bool:
    """True when transactional email can be delivered."""
    return bool(RESEND_API_KEY)


def is_catalog_configured() -> bool:
    """True when the catalog search service URL is set."""
    return bool(CATALOG_SEARCH_URL)


def is_apns_configured() -> bool:
    """
    Check that every APNs credential is present.

    Push delivery is optional. When any value is missing the approval
    flow falls back to email only.
    """
    return bool(APNS_KEY_ID and APNS_TEAM_ID and APNS_AUTH_KEY_PATH and APNS_BUNDLE_ID)
