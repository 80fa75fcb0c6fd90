"""Turn raw generated text into validated animation commands."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from motionforge.ai.json_parser import parse_json_with_fallback
from motionforge.core.errors import MalformedGenerationError

logger = logging.getLogger(__name__)

# One leading fence with an optional language tag and its matching closing fence.
_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(?P<body>.*?)\n?```$", re.DOTALL)

AnimationAction = Literal["rotate", "scale", "translate"]


class RotateParams(BaseModel):
  axis: Literal["x", "y", "z"]
  angle: float
  model_config = ConfigDict(extra="allow")

  @field_validator("axis", mode="before")
  @classmethod
  def normalize_axis(cls, value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class ScaleParams(BaseModel):
  factor: float
  model_config = ConfigDict(extra="allow")


class TranslateParams(BaseModel):
  x: float
  y: float
  z: float
  model_config = ConfigDict(extra="allow")


_PARAMS_BY_ACTION: dict[str, type[BaseModel]] = {"rotate": RotateParams, "scale": ScaleParams, "translate": TranslateParams}


class AnimationCommand(BaseModel):
  """One transform applied to a model fragment."""

  fragment_id: int = Field(alias="fragmentId")
  action: AnimationAction
  params: dict[str, Any]
  model_config = ConfigDict(populate_by_name=True)

  @field_validator("action", mode="before")
  @classmethod
  def normalize_action(cls, value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value

  @model_validator(mode="after")
  def check_params(self) -> AnimationCommand:
    # Validate params against the shape its action requires.
    params_model = _PARAMS_BY_ACTION[self.action]
    self.params = params_model.model_validate(self.params).model_dump()
    return self


def strip_code_fence(raw: str) -> str:
  """Remove surrounding whitespace and a single enclosing fenced code block."""
  text = raw.strip()
  match = _FENCE_RE.match(text)
  if match:
    return match.group("body").strip()
  return text


def sanitize_animation_response(raw: str) -> list[AnimationCommand]:
  """Parse generated text into commands or raise MalformedGenerationError."""
  text = strip_code_fence(raw or "")
  if not text:
    raise MalformedGenerationError(raw or "", "Generated text was empty")

  try:
    parsed = parse_json_with_fallback(text)
  except json.JSONDecodeError as exc:
    logger.warning("Generated text is not valid JSON: %s", exc)
    raise MalformedGenerationError(text, f"Generated text is not valid JSON: {exc.msg}") from exc

  # Accept a bare list or an object wrapping it under "commands".
  if isinstance(parsed, dict) and isinstance(parsed.get("commands"), list):
    parsed = parsed["commands"]
  if not isinstance(parsed, list):
    raise MalformedGenerationError(text, "Generated JSON is not a list of commands")

  try:
    return [AnimationCommand.model_validate(item) for item in parsed]
  except ValidationError as exc:
    logger.warning("Generated commands failed validation: %s", exc.error_count())
    raise MalformedGenerationError(text, f"Generated commands failed validation: {exc.errors(include_input=False)[0]['msg']}") from exc
