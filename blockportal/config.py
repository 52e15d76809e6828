import os
from dataclasses import dataclass, field

from .policy.login_policy import LoginPolicy


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None or not v.strip():
        return default
    return int(v)


@dataclass(frozen=True)
class Settings:
    # Hosted backend (Supabase project)
    supabase_url: str = field(default_factory=lambda: os.environ.get("SUPABASE_URL", "http://localhost:54321").rstrip("/"))
    supabase_service_key: str = field(default_factory=lambda: os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""))
    backend_timeout_sec: int = field(default_factory=lambda: _env_int("BACKEND_TIMEOUT_SEC", 10))

    # Branding
    brand_name: str = field(default_factory=lambda: os.environ.get("BRAND_NAME", "Krishnagar-I Development Block"))
    office_name: str = field(default_factory=lambda: os.environ.get("OFFICE_NAME", "Block Development Office"))

    # Security / sessions
    secret_key: str = field(default_factory=lambda: os.environ.get("FLASK_SECRET", "CHANGE_ME_LONG_RANDOM"))
    session_cookie_secure: bool = field(default_factory=lambda: _env_bool("SESSION_COOKIE_SECURE", True))
    session_max_age_sec: int = field(default_factory=lambda: _env_int("SESSION_MAX_AGE_SEC", 86400))
    csrf_enabled: bool = field(default_factory=lambda: _env_bool("CSRF_ENABLED", True))

    # Login ledger: "memory" (per process) or "supabase" (hosted table)
    ledger_backend: str = field(default_factory=lambda: os.environ.get("LEDGER_BACKEND", "memory").strip().lower())
    ledger_ttl_sec: int = field(default_factory=lambda: _env_int("LEDGER_TTL_SEC", 3600))

    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper())

    # Upload limits (bytes)
    max_attachment_bytes: int = 10 * 1024 * 1024
    max_image_bytes: int = 5 * 1024 * 1024
    max_request_bytes: int = 50 * 1024 * 1024

    # Policy object (centralized thresholds/messages)
    login_policy: LoginPolicy = field(default_factory=LoginPolicy)
