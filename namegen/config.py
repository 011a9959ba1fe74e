"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
  """Typed settings for the name generation service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  max_concurrency: int
  task_timeout_seconds: float
  batch_timeout_seconds: float
  max_attempts: int
  retry_backoff_seconds: tuple[float, ...]
  model_result_ttl_seconds: int
  combined_result_ttl_seconds: int
  cancel_flag_ttl_seconds: int
  rate_limit_cooldown_seconds: int
  cache_backend: str
  redis_url: str | None
  pg_dsn: str | None
  pg_connect_timeout: int
  mock_providers: bool
  default_models: tuple[str, ...]
  quick_models: tuple[str, ...]
  enabled_models: tuple[str, ...] | None
  names_per_model: int
  session_retention_days: int
  maintenance_enabled: bool
  maintenance_interval_seconds: float
  openai_api_key: str | None
  openai_base_url: str | None
  anthropic_api_key: str | None
  anthropic_base_url: str
  anthropic_api_version: str
  gemini_api_key: str | None
  xai_api_key: str | None
  xai_base_url: str


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _parse_csv(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()
  return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_backoff(raw: str | None) -> tuple[float, ...]:
  """Parse the retry backoff schedule (seconds between attempts)."""

  if not raw:
    return (30.0, 60.0, 120.0)

  delays = tuple(float(item) for item in _parse_csv(raw))
  if not delays:
    raise ValueError("NAMEGEN_RETRY_BACKOFF_SECONDS must include at least one delay.")

  if any(delay < 0 for delay in delays):
    raise ValueError("NAMEGEN_RETRY_BACKOFF_SECONDS must not include negative delays.")

  return delays


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("NAMEGEN_ENV", "development").lower()
  debug = _parse_bool(os.getenv("NAMEGEN_DEBUG"))

  log_max_bytes = _parse_positive_int("NAMEGEN_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("NAMEGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("NAMEGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Fan-out is bounded explicitly so a wide model set cannot flood provider rate limits.
  max_concurrency = _parse_positive_int("NAMEGEN_MAX_CONCURRENCY", "8")
  max_attempts = _parse_positive_int("NAMEGEN_MAX_ATTEMPTS", "3")

  cache_backend = (os.getenv("NAMEGEN_CACHE_BACKEND") or "memory").strip().lower()
  if cache_backend not in {"memory", "redis"}:
    raise ValueError("NAMEGEN_CACHE_BACKEND must be 'memory' or 'redis'.")

  redis_url = _optional_str(os.getenv("NAMEGEN_REDIS_URL"))
  if cache_backend == "redis" and not redis_url:
    raise ValueError("NAMEGEN_REDIS_URL must be set when NAMEGEN_CACHE_BACKEND is 'redis'.")

  default_models = _parse_csv(os.getenv("NAMEGEN_DEFAULT_MODELS")) or ("gpt-4o", "claude-3.5-sonnet")
  quick_models = _parse_csv(os.getenv("NAMEGEN_QUICK_MODELS")) or ("gpt-4o", "claude-3.5-sonnet")
  enabled_models = _parse_csv(os.getenv("NAMEGEN_ENABLED_MODELS")) or None

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("NAMEGEN_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    max_concurrency=max_concurrency,
    task_timeout_seconds=_parse_positive_float("NAMEGEN_TASK_TIMEOUT_SECONDS", "120"),
    batch_timeout_seconds=_parse_positive_float("NAMEGEN_BATCH_TIMEOUT_SECONDS", "300"),
    max_attempts=max_attempts,
    retry_backoff_seconds=_parse_backoff(os.getenv("NAMEGEN_RETRY_BACKOFF_SECONDS")),
    model_result_ttl_seconds=_parse_positive_int("NAMEGEN_MODEL_RESULT_TTL_SECONDS", "600"),
    combined_result_ttl_seconds=_parse_positive_int("NAMEGEN_COMBINED_RESULT_TTL_SECONDS", "86400"),
    cancel_flag_ttl_seconds=_parse_positive_int("NAMEGEN_CANCEL_FLAG_TTL_SECONDS", "3600"),
    rate_limit_cooldown_seconds=_parse_positive_int("NAMEGEN_RATE_LIMIT_COOLDOWN_SECONDS", "60"),
    cache_backend=cache_backend,
    redis_url=redis_url,
    pg_dsn=_optional_str(os.getenv("NAMEGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_parse_positive_int("NAMEGEN_PG_CONNECT_TIMEOUT", "5"),
    mock_providers=_parse_bool(os.getenv("NAMEGEN_MOCK_PROVIDERS")),
    default_models=default_models,
    quick_models=quick_models,
    enabled_models=enabled_models,
    names_per_model=_parse_positive_int("NAMEGEN_NAMES_PER_MODEL", "10"),
    session_retention_days=_parse_positive_int("NAMEGEN_SESSION_RETENTION_DAYS", "7"),
    maintenance_enabled=_parse_bool(os.getenv("NAMEGEN_MAINTENANCE_ENABLED", "true")),
    maintenance_interval_seconds=_parse_positive_float("NAMEGEN_MAINTENANCE_INTERVAL_SECONDS", "300"),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_base_url=_optional_str(os.getenv("OPENAI_BASE_URL")),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    anthropic_base_url=(os.getenv("ANTHROPIC_BASE_URL") or "https://api.anthropic.com/v1").strip(),
    anthropic_api_version=(os.getenv("ANTHROPIC_API_VERSION") or "2023-06-01").strip(),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    xai_api_key=_optional_str(os.getenv("XAI_API_KEY")),
    xai_base_url=(os.getenv("XAI_BASE_URL") or "https://api.x.ai/v1").strip(),
  )
