"""Generate animation command sequences from stored model metadata."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from motionforge.ai.prompts import build_animation_prompt
from motionforge.ai.providers.base import AIModel, GenerationConfig
from motionforge.ai.sanitizer import AnimationCommand, sanitize_animation_response
from motionforge.core.errors import RemoteStageError

logger = logging.getLogger(__name__)

GENERATION_STAGE = "generate_animation"


class AnimationService:
  """Prompt the generative model with hierarchy and properties and sanitize its reply."""

  def __init__(self, model: AIModel, config: GenerationConfig | None = None) -> None:
    self._model = model
    self._config = config or GenerationConfig()

  async def generate(self, hierarchy: Mapping[str, Any], properties: Mapping[str, Any]) -> list[AnimationCommand]:
    """Return a fresh command sequence; malformed output raises MalformedGenerationError."""
    prompt = build_animation_prompt(hierarchy, properties)
    try:
      response = await self._model.generate(prompt, self._config)
    except TimeoutError as exc:
      raise RemoteStageError(GENERATION_STAGE, "Generation timed out") from exc
    except Exception as exc:
      raise RemoteStageError(GENERATION_STAGE, f"Generation failed: {exc}") from exc

    commands = sanitize_animation_response(response.content)
    logger.info("Generated %s animation command(s) with model=%s", len(commands), self._model.name)
    return commands
