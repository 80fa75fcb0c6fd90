"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Final

from google import genai
from google.genai import types

from motionforge.ai.providers.base import AIModel, GenerationConfig, ModelResponse, Provider, SimpleModelResponse

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client bounded by a per-call timeout."""

  def __init__(self, name: str, api_key: str | None, *, timeout_seconds: float = 120.0, client: Any | None = None) -> None:
    self.name: str = name
    self._timeout_seconds = timeout_seconds

    if client is None:
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=api_key)
    self._client = client

  async def generate(self, prompt: str, config: GenerationConfig | None = None) -> ModelResponse:
    """Generate a text response from Gemini."""
    config = config or GenerationConfig()
    request_config = types.GenerateContentConfig(temperature=config.temperature, max_output_tokens=config.max_output_tokens)

    # Use the async client so a slow generation never blocks the event loop.
    call = _with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=request_config)
    response = await asyncio.wait_for(call, timeout=self._timeout_seconds)

    text = response.text or ""
    logger.debug("Gemini response (%s chars)", len(text))
    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}
    return SimpleModelResponse(content=text, usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.0-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.0-flash-lite"}

  def __init__(self, api_key: str | None = None, *, timeout_seconds: float = 120.0) -> None:
    self.name: str = "gemini"
    self._api_key = api_key
    self._timeout_seconds = timeout_seconds

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key, timeout_seconds=self._timeout_seconds)


async def _with_backoff(func, *args, **kwargs):
  retries = 3
  base_delay = 1
  for attempt in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as exc:
      # Only rate limiting is retried; everything else surfaces immediately.
      if "429" not in str(exc) and "Too Many Requests" not in str(exc) and "RESOURCE_EXHAUSTED" not in str(exc):
        raise
      if attempt == retries - 1:
        raise
      delay = base_delay * (2**attempt) + random.uniform(0, 1)
      logger.warning("Gemini rate limited; retry %s/%s in %.1fs", attempt + 1, retries - 1, delay)
      await asyncio.sleep(delay)
