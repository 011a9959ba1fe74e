"""Catalog of generation models and their provider capabilities."""

from __future__ import annotations

from dataclasses import dataclass

@dataclass(frozen=True)
class ModelDefinition:
  """Capability metadata for one public model id."""

  model_id: str
  provider: str
  provider_model: str
  display_name: str
  description: str
  max_tokens: int
  cost_per_1k_tokens: float

MODEL_REGISTRY: dict[str, ModelDefinition] = {
  "gpt-4o": ModelDefinition("gpt-4o", "openai", "gpt-4o", "GPT-4o", "Balanced creative naming with strong instruction following.", 16384, 0.005),
  "gpt-4o-mini": ModelDefinition("gpt-4o-mini", "openai", "gpt-4o-mini", "GPT-4o mini", "Fast, low-cost naming suggestions.", 16384, 0.0006),
  "claude-3.5-sonnet": ModelDefinition("claude-3.5-sonnet", "anthropic", "claude-3-5-sonnet-latest", "Claude 3.5 Sonnet", "Thoughtful names with careful reasoning.", 8192, 0.003),
  "gemini-1.5-pro": ModelDefinition("gemini-1.5-pro", "gemini", "gemini-1.5-pro", "Gemini 1.5 Pro", "Analytical names grounded in the business concept.", 8192, 0.00125),
  "grok-beta": ModelDefinition("grok-beta", "xai", "grok-beta", "Grok", "Bold, cutting-edge naming ideas.", 131072, 0.005),
}

DEFAULT_MAX_TOKENS = 4096


def max_tokens_for(model_id: str) -> int:
  """Return the model's output-token capability limit."""
  definition = MODEL_REGISTRY.get(model_id)
  if definition is None:
    return DEFAULT_MAX_TOKENS
  return definition.max_tokens
