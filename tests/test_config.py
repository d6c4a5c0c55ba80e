# tests/test_config.py
import pytest

from config import Settings, load_settings
from errors import ConfigError

ENV_VARS = (
    "GOOGLE_API_KEY", "GEMINI_MODEL", "GEMINI_TEMPERATURE", "GEMINI_MAX_OUTPUT_TOKENS",
    "DATABASE_URL", "STORE_BACKEND", "RECORD_SERVICE_URL", "TOKEN_TTL_HOURS", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    assert load_settings() == Settings()


def test_reads_environment(clean_env):
    clean_env.setenv("GOOGLE_API_KEY", " key ")
    clean_env.setenv("GEMINI_MODEL", "gemini-2.0-flash")
    clean_env.setenv("GEMINI_TEMPERATURE", "0.2")
    clean_env.setenv("STORE_BACKEND", "Remote")
    clean_env.setenv("RECORD_SERVICE_URL", "http://pb.local:8090/")
    s = load_settings()
    assert s.google_api_key == "key"
    assert s.gemini_model == "gemini-2.0-flash"
    assert s.temperature == 0.2
    assert s.store_backend == "remote"
    assert s.record_service_url == "http://pb.local:8090"


@pytest.mark.parametrize("name,value", [
    ("GEMINI_TEMPERATURE", "1.5"),
    ("GEMINI_TEMPERATURE", "hot"),
    ("GEMINI_MAX_OUTPUT_TOKENS", "0"),
    ("STORE_BACKEND", "mongo"),
    ("TOKEN_TTL_HOURS", "-1"),
])
def test_invalid_values(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ConfigError):
        load_settings()


def test_pipeline_floor_is_looser_than_caller_floor():
    s = Settings()
    assert s.min_text_length == 50
    assert s.min_submit_length == 100
