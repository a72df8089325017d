"""
Application Configuration

Loads environment variables and provides typed settings
for the push service. Uses python-dotenv to load from .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

from app.core.errors import ConfigurationError

# Load .env file from the project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- Supabase ---
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# --- APNs ---
APNS_KEY_ID: str = os.getenv("APNS_KEY_ID", "")
APNS_TEAM_ID: str = os.getenv("APNS_TEAM_ID", "")
APNS_BUNDLE_ID: str = os.getenv("APNS_BUNDLE_ID", "")
# PEM text of the .p8 key. APNS_AUTH_KEY_PATH is read when this is empty.
APNS_KEY_P8: str = os.getenv("APNS_KEY_P8", "")
APNS_AUTH_KEY_PATH: str = os.getenv("APNS_AUTH_KEY_PATH", "")
APNS_USE_SANDBOX: bool = os.getenv("APNS_USE_SANDBOX", "false").lower() == "true"

# --- Dispatch ---
# When set, the scheduler POSTs to this send-push URL instead of
# delivering in process.
PUSH_DISPATCH_URL: str = os.getenv("PUSH_DISPATCH_URL", "")
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))


def validate_supabase_config() -> bool:
    """Check that all required Supabase credentials are present and non-empty."""
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise ConfigurationError(
            f"Missing required Supabase environment variables: {', '.join(missing)}"
        )
    return True


def validate_apns_config() -> bool:
    """
    Check that APNs credentials are configured.

    The signing key may come from either APNS_KEY_P8 (inline PEM) or
    APNS_AUTH_KEY_PATH (a .p8 file on disk); one of the two is required.
    """
    missing = []
    if not APNS_KEY_ID:
        missing.append("APNS_KEY_ID")
    if not APNS_TEAM_ID:
        missing.append("APNS_TEAM_ID")
    if not APNS_BUNDLE_ID:
        missing.append("APNS_BUNDLE_ID")
    if not APNS_KEY_P8 and not APNS_AUTH_KEY_PATH:
        missing.append("APNS_KEY_P8")
    if missing:
        raise ConfigurationError(
            f"Missing required APNs environment variables: {', '.join(missing)}"
        )
    return True
