"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from motionforge.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the MotionForge service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  uploads_dir: str
  sessions_dir: str
  max_upload_bytes: int
  session_retention_hours: float
  sweep_interval_seconds: float
  translation_timeout_minutes: float
  translation_check_interval_seconds: float
  metadata_retry_attempts: int
  metadata_retry_interval_seconds: float
  http_connect_timeout_seconds: float
  http_read_timeout_seconds: float
  aps_base_url: str
  forge_client_id: str | None
  forge_client_secret: str | None
  gemini_api_key: str | None
  gemini_model: str
  generation_timeout_seconds: float
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool

  @property
  def session_retention_seconds(self) -> float:
    """Return the retention window in seconds."""
    return self.session_retention_hours * 3600

  @property
  def translation_timeout_seconds(self) -> float:
    """Return the overall translation wait budget in seconds."""
    return self.translation_timeout_minutes * 60


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("MOTIONFORGE_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("MOTIONFORGE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("MOTIONFORGE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("MOTIONFORGE_ENV", "development").lower()
  debug = _parse_bool(os.getenv("MOTIONFORGE_DEBUG"))

  # 100MB default upload cap.
  max_upload_bytes = _positive_int("MOTIONFORGE_MAX_UPLOAD_BYTES", str(100 * 1024 * 1024))

  session_retention_hours = _positive_float("MOTIONFORGE_SESSION_RETENTION_HOURS", "24")
  sweep_interval_seconds = _positive_float("MOTIONFORGE_SWEEP_INTERVAL_SECONDS", "3600")

  translation_timeout_minutes = _positive_float("MOTIONFORGE_TRANSLATION_TIMEOUT_MINUTES", "30")
  translation_check_interval_seconds = _positive_float("MOTIONFORGE_TRANSLATION_CHECK_INTERVAL_SECONDS", "10")
  metadata_retry_attempts = _positive_int("MOTIONFORGE_METADATA_RETRY_ATTEMPTS", "5")
  metadata_retry_interval_seconds = _positive_float("MOTIONFORGE_METADATA_RETRY_INTERVAL_SECONDS", "5")

  # Every outbound call carries both a connect and a read timeout.
  http_connect_timeout_seconds = _positive_float("MOTIONFORGE_HTTP_CONNECT_TIMEOUT_SECONDS", "10")
  http_read_timeout_seconds = _positive_float("MOTIONFORGE_HTTP_READ_TIMEOUT_SECONDS", "30")
  generation_timeout_seconds = _positive_float("MOTIONFORGE_GENERATION_TIMEOUT_SECONDS", "120")

  log_max_bytes = _positive_int("MOTIONFORGE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("MOTIONFORGE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("MOTIONFORGE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("MOTIONFORGE_ALLOWED_ORIGINS")),
    debug=debug,
    uploads_dir=os.getenv("MOTIONFORGE_UPLOADS_DIR", "./uploads").strip(),
    sessions_dir=os.getenv("MOTIONFORGE_SESSIONS_DIR", "./responses").strip(),
    max_upload_bytes=max_upload_bytes,
    session_retention_hours=session_retention_hours,
    sweep_interval_seconds=sweep_interval_seconds,
    translation_timeout_minutes=translation_timeout_minutes,
    translation_check_interval_seconds=translation_check_interval_seconds,
    metadata_retry_attempts=metadata_retry_attempts,
    metadata_retry_interval_seconds=metadata_retry_interval_seconds,
    http_connect_timeout_seconds=http_connect_timeout_seconds,
    http_read_timeout_seconds=http_read_timeout_seconds,
    aps_base_url=(os.getenv("MOTIONFORGE_APS_BASE_URL") or "https://developer.api.autodesk.com").strip().rstrip("/"),
    forge_client_id=_optional_str(os.getenv("FORGE_CLIENT_ID")),
    forge_client_secret=_optional_str(os.getenv("FORGE_CLIENT_SECRET")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    gemini_model=(os.getenv("MOTIONFORGE_GEMINI_MODEL") or "gemini-2.0-flash").strip(),
    generation_timeout_seconds=generation_timeout_seconds,
    log_dir=os.getenv("MOTIONFORGE_LOG_DIR", "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("MOTIONFORGE_LOG_HTTP_4XX")),
  )
