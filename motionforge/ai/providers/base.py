"""Base interfaces for generative-text providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


@dataclass(frozen=True)
class GenerationConfig:
  """Sampling settings applied to a single generation call."""

  temperature: float = 0.7
  max_output_tokens: int = 1000


class AIModel(ABC):
  """Abstract base class for generative models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, config: GenerationConfig | None = None) -> ModelResponse:
    """Generate a response for the given prompt."""


class Provider(ABC):
  """Abstract base class for model providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
