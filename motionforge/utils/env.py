"""Read a local .env file into the process environment before settings load."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VARIABLE = "MOTIONFORGE_ENV_FILE"
_QUOTES = {'"', "'"}


def default_env_path() -> Path:
  """Return MOTIONFORGE_ENV_FILE when set, otherwise the .env beside the package."""
  override = os.getenv(ENV_FILE_VARIABLE)
  if override:
    return Path(override).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_text(text: str) -> dict[str, str]:
  """Parse KEY=value lines; later keys win and malformed lines are ignored."""
  values: dict[str, str] = {}
  for raw_line in text.splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    value = value.strip()
    # FORGE_CLIENT_SECRET="abc" reads as abc; an unquoted value drops a trailing " # comment".
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
      value = value[1:-1]
    elif " #" in value:
      value = value.split(" #", 1)[0].rstrip()
    values[key] = value
  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export a .env file into os.environ and return the keys that were applied."""
  if not path.is_file():
    return []

  applied: list[str] = []
  for key, value in parse_env_text(path.read_text(encoding="utf-8")).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
