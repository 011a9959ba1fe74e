import pytest

from namegen.ai.prompts import DEEP_THINKING_INSTRUCTION, MODE_INSTRUCTIONS, PromptOptimizer


@pytest.fixture
def optimizer() -> PromptOptimizer:
  return PromptOptimizer()


def test_base_prompt_includes_description_and_count(optimizer: PromptOptimizer):
  prompt = optimizer.build_base_prompt("  Artisanal   coffee roastery  ", count=5)

  assert "Artisanal coffee roastery" in prompt
  assert "Generate 5 business name ideas" in prompt


def test_base_prompt_rejects_blank_description(optimizer: PromptOptimizer):
  with pytest.raises(ValueError):
    optimizer.build_base_prompt("   ")


def test_optimize_is_deterministic_and_layered(optimizer: PromptOptimizer):
  base = optimizer.build_base_prompt("Artisanal coffee roastery")

  first = optimizer.optimize("claude-3.5-sonnet", base, "professional", True)
  second = optimizer.optimize("claude-3.5-sonnet", base, "professional", True)

  assert first == second
  assert first.startswith(base)
  assert MODE_INSTRUCTIONS["professional"] in first
  assert DEEP_THINKING_INSTRUCTION in first
  assert first.endswith("Think step by step and generate 10 creative business names.")


def test_optimize_differs_per_model_and_skips_unknown_framing(optimizer: PromptOptimizer):
  base = optimizer.build_base_prompt("Coffee")

  assert optimizer.optimize("gpt-4o", base, "creative", False) != optimizer.optimize("grok-beta", base, "creative", False)
  assert optimizer.optimize("custom-model", base, "creative", False) == f"{base}\n\n{MODE_INSTRUCTIONS['creative']}"
  assert DEEP_THINKING_INSTRUCTION not in optimizer.optimize("gpt-4o", base, "creative", False)


def test_optimize_rejects_empty_base(optimizer: PromptOptimizer):
  with pytest.raises(ValueError):
    optimizer.optimize("gpt-4o", "", "creative", False)


def test_generation_params_by_mode(optimizer: PromptOptimizer):
  assert optimizer.generation_params("gpt-4o", "creative", False) == {"temperature": 0.9, "max_tokens": 150, "count": 10}
  assert optimizer.generation_params("gpt-4o", "professional", False)["temperature"] == 0.6


def test_deep_thinking_lowers_temperature_and_raises_budget(optimizer: PromptOptimizer):
  params = optimizer.generation_params("gpt-4o", "creative", True)

  assert params["temperature"] == 0.7
  assert params["max_tokens"] == 300


def test_overrides_are_clamped_and_capped_by_capability():
  optimizer = PromptOptimizer(capability_limit=lambda model_id: 200)

  params = optimizer.generation_params("gpt-4o", "creative", False, {"temperature": 5, "max_tokens": 10_000, "count": 4})

  assert params == {"temperature": 2.0, "max_tokens": 200, "count": 4}
