"""Prompt construction and per-model parameter tuning."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from namegen.ai.registry import max_tokens_for

MODE_INSTRUCTIONS: dict[str, str] = {
  "creative": "Focus on unique, creative, and memorable names.",
  "professional": "Focus on professional, corporate, and trustworthy names.",
  "brandable": "Focus on brandable, catchy, and marketable names.",
  "tech-focused": "Focus on technical, developer-friendly, and modern names.",
}

DEEP_THINKING_INSTRUCTION = "Take your time to think deeply about each name. Consider multiple angles and ensure high quality."

MODEL_FRAMING: dict[str, str] = {
  "gpt-4o": "Generate {count} unique business names.",
  "gpt-4o-mini": "Generate {count} short, distinct business names.",
  "claude-3.5-sonnet": "Think step by step and generate {count} creative business names.",
  "gemini-1.5-pro": "Analyze the business concept and generate {count} innovative names.",
  "grok-beta": "Be creative and generate {count} cutting-edge business names.",
}

# (temperature, max_tokens) per generation mode.
MODE_PARAMS: dict[str, tuple[float, int]] = {
  "creative": (0.9, 150),
  "professional": (0.6, 120),
  "brandable": (0.8, 100),
  "tech-focused": (0.7, 130),
}

_DEEP_TEMPERATURE_DROP = 0.2
_MIN_TEMPERATURE = 0.2


class PromptOptimizer:
  """Shape one base prompt into a model-specific prompt and parameters."""

  def __init__(self, capability_limit: Callable[[str], int] = max_tokens_for) -> None:
    self._capability_limit = capability_limit

  def build_base_prompt(self, business_description: str, count: int = 10) -> str:
    """Render the request shared by every model in a session."""
    description = " ".join(business_description.split())
    if not description:
      raise ValueError("Business description must not be empty.")

    return (
      f"Generate {count} business name ideas for the following business:\n\n{description}\n\n"
      "Return only a JSON array of name strings. Avoid explanations, numbering and duplicates."
    )

  def optimize(self, model_id: str, base_prompt: str, mode: str, deep_thinking: bool, count: int = 10) -> str:
    """
    Append mode, deep-thinking and model-specific instructions.

    The output is deterministic for identical inputs and never empty.
    Unknown models get no model-specific framing.
    """
    if not base_prompt or not base_prompt.strip():
      raise ValueError("Base prompt must not be empty.")

    sections = [base_prompt.rstrip()]

    mode_instruction = MODE_INSTRUCTIONS.get(mode)
    if mode_instruction:
      sections.append(mode_instruction)

    if deep_thinking:
      sections.append(DEEP_THINKING_INSTRUCTION)

    framing = MODEL_FRAMING.get(model_id)
    if framing:
      sections.append(framing.format(count=count))

    return "\n\n".join(sections)

  def generation_params(self, model_id: str, mode: str, deep_thinking: bool, overrides: Mapping[str, Any] | None = None, count: int = 10) -> dict[str, Any]:
    """Return decoding parameters for one model call."""
    temperature, max_tokens = MODE_PARAMS.get(mode, MODE_PARAMS["creative"])

    if deep_thinking:
      temperature = max(_MIN_TEMPERATURE, round(temperature - _DEEP_TEMPERATURE_DROP, 2))
      max_tokens *= 2

    overrides = overrides or {}
    if overrides.get("temperature") is not None:
      temperature = min(max(float(overrides["temperature"]), 0.0), 2.0)
    if overrides.get("max_tokens") is not None:
      max_tokens = max(int(overrides["max_tokens"]), 1)
    if overrides.get("count") is not None:
      count = max(int(overrides["count"]), 1)

    # Never ask for more tokens than the model can produce.
    max_tokens = min(max_tokens, self._capability_limit(model_id))

    return {"temperature": temperature, "max_tokens": max_tokens, "count": count}
