"""Startup checks for the environment variables the service depends on.

Secrets are logged only as `<redacted>`. Violations are logged as warnings
unless MOTIONFORGE_ENV_CONTRACT_ENFORCE is truthy, in which case startup fails.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass

EnvValidator = Callable[[str], str | None]


@dataclass(frozen=True)
class EnvVarDefinition:
  """Describe how an environment variable must be validated."""

  name: str
  required: bool
  secret: bool
  validator: EnvValidator | None = None


class EnvContractError(RuntimeError):
  """Raised when required runtime environment keys are missing or invalid."""


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  if raw is None:
    return default
  return raw.strip().lower() in {"1", "true", "yes", "on"}


def _validate_allowed_origins(value: str) -> str | None:
  origins = [origin.strip() for origin in value.split(",") if origin.strip()]
  if not origins:
    return "must include at least one origin."
  if "*" in origins:
    return "must not include wildcard origins."
  return None


def _validate_positive_number(value: str) -> str | None:
  try:
    number = float(value)
  except ValueError:
    return "must be a number."
  if number <= 0:
    return "must be positive."
  return None


REQUIRED_ENV_REGISTRY: tuple[EnvVarDefinition, ...] = (
  EnvVarDefinition(name="MOTIONFORGE_ALLOWED_ORIGINS", required=True, secret=False, validator=_validate_allowed_origins),
  EnvVarDefinition(name="FORGE_CLIENT_ID", required=True, secret=True),
  EnvVarDefinition(name="FORGE_CLIENT_SECRET", required=True, secret=True),
  EnvVarDefinition(name="GEMINI_API_KEY", required=True, secret=True),
  EnvVarDefinition(name="MOTIONFORGE_SESSION_RETENTION_HOURS", required=False, secret=False, validator=_validate_positive_number),
  EnvVarDefinition(name="MOTIONFORGE_TRANSLATION_TIMEOUT_MINUTES", required=False, secret=False, validator=_validate_positive_number),
)


def validate_env_values(env_map: Mapping[str, str]) -> list[str]:
  """Return every contract violation found in env_map."""
  errors: list[str] = []
  for definition in REQUIRED_ENV_REGISTRY:
    value = env_map.get(definition.name, "").strip()
    if definition.required and value == "":
      errors.append(f"{definition.name}: required variable is missing.")
      continue
    if definition.validator and value != "":
      problem = definition.validator(value)
      if problem:
        errors.append(f"{definition.name}: {problem}")
  return errors


def validate_runtime_env_or_raise(*, logger: logging.Logger) -> None:
  """Log every contract key and enforce the contract when enabled."""
  enforce = _parse_bool(os.getenv("MOTIONFORGE_ENV_CONTRACT_ENFORCE"), default=False)
  resolved: dict[str, str] = {}
  for definition in REQUIRED_ENV_REGISTRY:
    value = os.getenv(definition.name, "")
    resolved[definition.name] = value
    if definition.secret:
      logger.info("ENV_CHECK key=%s value=%s", definition.name, "<redacted>" if value else "<missing>")
    else:
      logger.info("ENV_CHECK key=%s value=%s", definition.name, value or "<missing>")

  errors = validate_env_values(resolved)
  if not errors:
    logger.info("ENV_CHECK status=ok checked=%d", len(REQUIRED_ENV_REGISTRY))
    return

  message = "ENV_CHECK status=failed violations:\n- " + "\n- ".join(errors)
  if enforce:
    logger.error(message)
    raise EnvContractError(message)

  logger.warning("ENV_CHECK enforcement disabled by MOTIONFORGE_ENV_CONTRACT_ENFORCE=0")
  logger.warning(message)
