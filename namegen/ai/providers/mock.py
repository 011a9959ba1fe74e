"""Deterministic mock provider used for local runs and tests."""

from __future__ import annotations

import json

from namegen.ai.providers.base import AIModel, GenerationParams, ModelResponse, Provider, SimpleModelResponse

_CANNED_NAMES: dict[str, list[str]] = {
  "gpt-4o": ["TechFlow", "DataVibe", "CodeForge", "ByteStream", "PixelWave", "CloudNest", "AppSphere", "DevHub", "NetPulse", "CyberLink"],
  "gpt-4o-mini": ["BrewCraft", "BeanLogic", "RoastHub", "GrindWorks", "CupSpark", "MugMint", "DripLab", "CremaCore", "JavaNest", "PourPoint"],
  "claude-3.5-sonnet": ["InnovateLab", "FutureCore", "NextGenTech", "SmartFlow", "VisionaryAI", "QuantumLeap", "BrightMind", "SwiftLogic", "PureCode", "TechVault"],
  "gemini-1.5-pro": ["AlphaWorks", "BetaLabs", "GammaFlow", "DeltaTech", "OmegaSoft", "PrimeLogic", "NexusPoint", "FusionCore", "VertexAI", "MatrixHub"],
  "grok-beta": ["RocketCode", "BlastOff", "WarpSpeed", "HyperLink", "TurboCharge", "NitroBoost", "FlashPoint", "ThunderBolt", "LightningFast", "SonicBoom"],
}
_DEFAULT_NAMES = ["DefaultName1", "DefaultName2", "DefaultName3"]


class MockModel(AIModel):
  def __init__(self, name: str) -> None:
    self.name: str = name

  async def generate(self, prompt: str, params: GenerationParams) -> ModelResponse:
    names = _CANNED_NAMES.get(self.name, _DEFAULT_NAMES)[: params.count]
    return SimpleModelResponse(content=json.dumps(names), usage={"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0})


class MockProvider(Provider):
  """Serves canned name lists keyed by model id."""

  def __init__(self) -> None:
    self.name: str = "mock"

  @property
  def configured(self) -> bool:
    return True

  def get_model(self, model: str) -> AIModel:
    return MockModel(model)
