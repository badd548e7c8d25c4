from __future__ import annotations

import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _optional_float_env(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "").strip()
ROSTER_FUNCTION_NAME = os.getenv("ROSTER_FUNCTION_NAME", "process-roster").strip()

ROSTER_SCAN_LIMIT = _int_env("ROSTER_SCAN_LIMIT", 5)
ROSTER_SCAN_DEFAULT_LIMIT = _int_env("ROSTER_SCAN_DEFAULT_LIMIT", 20)
ROSTER_SCAN_ELEVATED_EMAILS = frozenset(
    email.strip().lower()
    for email in os.getenv("ROSTER_SCAN_ELEVATED_EMAILS", "").split(",")
    if email.strip()
)

TOKEN_REFRESH_THRESHOLD_SECONDS = _float_env("TOKEN_REFRESH_THRESHOLD_SECONDS", 60.0)
TOKEN_RELEASE_GRACE_SECONDS = _float_env("TOKEN_RELEASE_GRACE_SECONDS", 0.1)
AUTH_RETRY_DELAY_SECONDS = _float_env("AUTH_RETRY_DELAY_SECONDS", 0.5)
MAX_AUTH_RETRIES = _int_env("MAX_AUTH_RETRIES", 2)
ROSTER_REQUEST_TIMEOUT_SECONDS = _optional_float_env("ROSTER_REQUEST_TIMEOUT_SECONDS")
SUCCESS_CLOSE_DELAY_SECONDS = _float_env("SUCCESS_CLOSE_DELAY_SECONDS", 2.0)

KEYRING_SERVICE = os.getenv("ROSTER_KEYRING_SERVICE", "roster-scanner-supabase").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def roster_function_url() -> str:
    if not SUPABASE_URL or not ROSTER_FUNCTION_NAME:
        return ""
    return f"{SUPABASE_URL}/functions/v1/{ROSTER_FUNCTION_NAME}"
