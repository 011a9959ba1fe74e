"""Provider implementations."""

from namegen.ai.providers.anthropic import AnthropicModel, AnthropicProvider
from namegen.ai.providers.base import AIModel, GenerationParams, ModelResponse, Provider, SimpleModelResponse
from namegen.ai.providers.gemini import GeminiModel, GeminiProvider
from namegen.ai.providers.mock import MockModel, MockProvider
from namegen.ai.providers.openai_compat import OpenAICompatibleModel, OpenAICompatibleProvider

__all__ = [
  "AIModel",
  "GenerationParams",
  "ModelResponse",
  "SimpleModelResponse",
  "Provider",
  "AnthropicModel",
  "AnthropicProvider",
  "GeminiModel",
  "GeminiProvider",
  "MockModel",
  "MockProvider",
  "OpenAICompatibleModel",
  "OpenAICompatibleProvider",
]
