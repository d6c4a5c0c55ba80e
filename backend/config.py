# config.py
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from errors import ConfigError

load_dotenv()

STORE_BACKENDS = ("sql", "remote")


@dataclass(frozen=True)
class Settings:
    google_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    temperature: float = 0.7
    max_output_tokens: int = 8192
    min_text_length: int = 50       # pipeline floor
    min_submit_length: int = 100    # caller floor (API)
    database_url: str = "sqlite:///./studypack.db"
    store_backend: str = "sql"
    record_service_url: str = "http://127.0.0.1:8090"
    token_ttl_hours: int = 72
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    """Read settings from the environment (and .env), validating ranges."""
    temperature = _env_float("GEMINI_TEMPERATURE", Settings.temperature)
    if not 0.0 <= temperature <= 1.0:
        raise ConfigError(f"GEMINI_TEMPERATURE must be within [0, 1], got {temperature}")

    max_tokens = _env_int("GEMINI_MAX_OUTPUT_TOKENS", Settings.max_output_tokens)
    if max_tokens <= 0:
        raise ConfigError("GEMINI_MAX_OUTPUT_TOKENS must be positive")

    backend = (os.getenv("STORE_BACKEND") or Settings.store_backend).strip().lower()
    if backend not in STORE_BACKENDS:
        raise ConfigError(f"STORE_BACKEND must be one of {STORE_BACKENDS}, got {backend!r}")

    ttl = _env_int("TOKEN_TTL_HOURS", Settings.token_ttl_hours)
    if ttl <= 0:
        raise ConfigError("TOKEN_TTL_HOURS must be positive")

    return Settings(
        google_api_key=(os.getenv("GOOGLE_API_KEY") or "").strip(),
        gemini_model=(os.getenv("GEMINI_MODEL") or "").strip() or Settings.gemini_model,
        temperature=temperature,
        max_output_tokens=max_tokens,
        database_url=(os.getenv("DATABASE_URL") or "").strip() or Settings.database_url,
        store_backend=backend,
        record_service_url=(os.getenv("RECORD_SERVICE_URL") or "").strip().rstrip("/")
        or Settings.record_service_url,
        token_ttl_hours=ttl,
        log_level=(os.getenv("LOG_LEVEL") or Settings.log_level).strip().upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
