"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Curricula API service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  jwt_secret: str | None
  jwt_algorithm: str
  catalog_cache_seconds: int
  catalog_max_page_size: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


@dataclass(frozen=True)
class SchedulerSettings:
  """Typed settings for the scheduled-publish worker process."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  poll_interval_seconds: float
  batch_size: int
  stale_schedule_alert_seconds: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("CURRICULA_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("CURRICULA_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("CURRICULA_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


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


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _log_settings() -> tuple[str, int, int]:
  log_dir = (os.getenv("CURRICULA_LOG_DIR") or "./logs").strip()
  log_max_bytes = _positive_int("CURRICULA_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("CURRICULA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("CURRICULA_LOG_BACKUP_COUNT must be zero or a positive integer.")
  return log_dir, log_max_bytes, log_backup_count


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("CURRICULA_ENV", "development").lower()

  # Toggle verbose error output and SQL echo in non-production environments.
  debug = _parse_bool(os.getenv("CURRICULA_DEBUG"))

  log_dir, log_max_bytes, log_backup_count = _log_settings()

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("CURRICULA_LOG_HTTP_4XX"))

  jwt_algorithm = (os.getenv("CURRICULA_JWT_ALGORITHM") or "HS256").strip().upper()
  if not jwt_algorithm.startswith("HS"):
    raise ValueError("CURRICULA_JWT_ALGORITHM must be an HMAC algorithm (HS256, HS384, HS512).")

  catalog_cache_seconds = int(os.getenv("CURRICULA_CATALOG_CACHE_SECONDS", "300"))
  if catalog_cache_seconds < 0:
    raise ValueError("CURRICULA_CATALOG_CACHE_SECONDS must be zero or a positive integer.")

  catalog_max_page_size = _positive_int("CURRICULA_CATALOG_MAX_PAGE_SIZE", "100")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("CURRICULA_ALLOWED_ORIGINS")),
    debug=debug,
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("CURRICULA_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("CURRICULA_PG_CONNECT_TIMEOUT", "5"),
    jwt_secret=_optional_str(os.getenv("CURRICULA_JWT_SECRET")),
    jwt_algorithm=jwt_algorithm,
    catalog_cache_seconds=catalog_cache_seconds,
    catalog_max_page_size=catalog_max_page_size,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and the scheduler don't require unrelated env vars.
  debug = _parse_bool(os.getenv("CURRICULA_DEBUG"))
  pg_connect_timeout = _positive_int("CURRICULA_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for container platforms that inject it.
  pg_dsn = os.getenv("CURRICULA_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
  """Load settings for the scheduled-publish worker."""

  log_dir, log_max_bytes, log_backup_count = _log_settings()

  poll_interval_seconds = float(os.getenv("CURRICULA_SCHEDULER_POLL_SECONDS", "60"))
  if poll_interval_seconds <= 0:
    raise ValueError("CURRICULA_SCHEDULER_POLL_SECONDS must be positive.")

  return SchedulerSettings(
    environment=os.getenv("CURRICULA_ENV", "development").lower(),
    debug=_parse_bool(os.getenv("CURRICULA_DEBUG")),
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    poll_interval_seconds=poll_interval_seconds,
    batch_size=_positive_int("CURRICULA_SCHEDULER_BATCH_SIZE", "100"),
    stale_schedule_alert_seconds=_positive_int("CURRICULA_SCHEDULER_STALE_ALERT_SECONDS", "86400"),
  )
