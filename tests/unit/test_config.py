import pytest

from namegen.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch):
  for name in ("NAMEGEN_ENV", "NAMEGEN_CACHE_BACKEND", "NAMEGEN_RETRY_BACKOFF_SECONDS", "NAMEGEN_DEFAULT_MODELS", "NAMEGEN_ENABLED_MODELS", "NAMEGEN_PG_DSN", "DATABASE_URL"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.environment == "development"
  assert settings.cache_backend == "memory"
  assert settings.retry_backoff_seconds == (30.0, 60.0, 120.0)
  assert settings.default_models == ("gpt-4o", "claude-3.5-sonnet")
  assert settings.enabled_models is None
  assert settings.pg_dsn is None


def test_env_overrides(monkeypatch):
  monkeypatch.setenv("NAMEGEN_RETRY_BACKOFF_SECONDS", "1, 2")
  monkeypatch.setenv("NAMEGEN_ENABLED_MODELS", "gpt-4o,grok-beta")
  monkeypatch.setenv("NAMEGEN_MOCK_PROVIDERS", "yes")
  monkeypatch.setenv("OPENAI_API_KEY", "  ")

  settings = get_settings()

  assert settings.retry_backoff_seconds == (1.0, 2.0)
  assert settings.enabled_models == ("gpt-4o", "grok-beta")
  assert settings.mock_providers is True
  assert settings.openai_api_key is None


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("NAMEGEN_MAX_CONCURRENCY", "0"),
    ("NAMEGEN_CACHE_BACKEND", "memcached"),
    ("NAMEGEN_RETRY_BACKOFF_SECONDS", "-5"),
    ("NAMEGEN_LOG_BACKUP_COUNT", "-1"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
  monkeypatch.setenv(name, value)

  with pytest.raises(ValueError):
    get_settings()


def test_redis_backend_requires_url(monkeypatch):
  monkeypatch.setenv("NAMEGEN_CACHE_BACKEND", "redis")
  monkeypatch.delenv("NAMEGEN_REDIS_URL", raising=False)

  with pytest.raises(ValueError):
    get_settings()
