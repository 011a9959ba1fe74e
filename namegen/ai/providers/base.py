"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol


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
class GenerationParams:
  """Decoding parameters passed through to a provider call."""

  temperature: float
  max_tokens: int
  count: int = 10

  @classmethod
  def from_mapping(cls, params: dict[str, Any]) -> GenerationParams:
    return cls(temperature=float(params.get("temperature", 0.7)), max_tokens=int(params.get("max_tokens", 150)), count=int(params.get("count", 10)))


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, params: GenerationParams) -> ModelResponse:
    """Generate a response for the given prompt."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @property
  @abstractmethod
  def configured(self) -> bool:
    """Return True when credentials for the provider are present."""

  @abstractmethod
  def get_model(self, model: str) -> AIModel:
    """Return the model client for the provider."""
