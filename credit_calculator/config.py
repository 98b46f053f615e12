"""Environment configuration. Uses python-dotenv.

Callers use the accessor functions below rather than reading `os.environ`
directly. Remote sync is enabled only when both Supabase settings are present.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from credit_calculator.backend_logic import DEFAULT_BATCH


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def load_config() -> None:
    """Load .env from the project root. Idempotent; existing env vars win."""
    load_dotenv(_project_root() / ".env", override=False)


def get_optional(key: str, default: str = "") -> str:
    """Get optional env var; return default if missing or empty."""
    load_config()
    val = os.getenv(key, "").strip()
    return val if val else default


def get_optional_int(key: str, default: int) -> int:
    """Get optional env var as int; return default if missing or invalid."""
    raw = get_optional(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# --- Public config accessors ---

def supabase_url() -> Optional[str]:
    return get_optional("SUPABASE_URL") or None


def supabase_key() -> Optional[str]:
    """Anon/public key; the service role key is never needed client-side."""
    return get_optional("SUPABASE_KEY") or get_optional("SUPABASE_ANON_KEY") or None


def supabase_table() -> str:
    return get_optional("SUPABASE_TABLE", "grade_profiles")


def remote_configured() -> bool:
    return bool(supabase_url() and supabase_key())


def data_dir() -> Path:
    """Directory holding the device-local store. Default ~/.credit_calculator."""
    raw = get_optional("CREDIT_CALCULATOR_DATA_DIR")
    return Path(raw).expanduser() if raw else Path.home() / ".credit_calculator"


def sync_interval_seconds() -> int:
    """Period of the background sync timer. Default 30 seconds."""
    value = get_optional_int("SYNC_INTERVAL_SECONDS", 30)
    return value if value > 0 else 30


def default_batch() -> str:
    return get_optional("DEFAULT_BATCH", DEFAULT_BATCH)
