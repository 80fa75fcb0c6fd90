"""Lenient JSON parsing for generated text."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)')


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON strictly first, then retry on progressively repaired candidates.

  Recovery passes run in order on the first balanced object or array found in
  the text: as-is, without trailing commas, then with bare keys quoted. The
  last decode error is raised when every pass fails.
  """
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  candidate = extract_json_block(raw)
  if candidate is None:
    raise last_error

  repairs: tuple[Callable[[str], str], ...] = (lambda text: text, strip_trailing_commas, quote_bare_keys)
  for repair in repairs:
    candidate = repair(candidate)
    try:
      return json.loads(candidate)
    except json.JSONDecodeError as exc:
      last_error = exc

  raise last_error


def extract_json_block(raw: str) -> str | None:
  """Return the first balanced JSON object or array, honoring string escapes."""
  start: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start is None:
      if char in "{[":
        start = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start : index + 1]

  return None


def strip_trailing_commas(raw: str) -> str:
  """Remove commas directly before a closing bracket."""
  return _TRAILING_COMMA_RE.sub(r"\1", raw)


def quote_bare_keys(raw: str) -> str:
  """Wrap JS-style identifier keys in double quotes."""
  # Split on string literals so quoted content is never rewritten.
  parts = re.split(r'("(?:\\.|[^"\\])*")', raw)
  for index in range(0, len(parts), 2):
    parts[index] = _BARE_KEY_RE.sub(r'\1"\2"\3', parts[index])
  return "".join(parts)
