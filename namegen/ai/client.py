"""Uniform model client adapter over the registered AI providers."""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from namegen.ai.errors import ProviderError, ProviderErrorKind, to_provider_error
from namegen.ai.providers import AnthropicProvider, GeminiProvider, GenerationParams, MockProvider, OpenAICompatibleProvider, Provider
from namegen.ai.registry import MODEL_REGISTRY, ModelDefinition
from namegen.config import Settings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+\s*[.):-]|[-*•])\s*")
_MAX_NAME_LENGTH = 60


def parse_names(raw: str, count: int = 10) -> list[str]:
  """
  Turn raw model output into an ordered list of candidate names.

  JSON arrays (optionally fenced, or wrapped as ``{"names": [...]}``) are
  preferred; otherwise the text is read one name per line. Duplicates are
  dropped case-insensitively and the list is capped at ``count``.
  """
  text = _FENCE_RE.sub("", raw.strip())
  candidates = _parse_json_names(text)

  if candidates is None:
    candidates = [_clean_line(line) for line in text.splitlines()]

  names: list[str] = []
  seen: set[str] = set()

  for candidate in candidates:
    if not candidate or len(candidate) > _MAX_NAME_LENGTH:
      continue

    key = candidate.casefold()
    if key in seen:
      continue

    seen.add(key)
    names.append(candidate)

    if len(names) >= count:
      break

  return names


def _parse_json_names(text: str) -> list[str] | None:
  try:
    parsed = json.loads(text)
  except json.JSONDecodeError:
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
      return None
    try:
      parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
      return None

  if isinstance(parsed, dict):
    parsed = parsed.get("names")

  if not isinstance(parsed, list):
    return None

  return [str(item).strip() for item in parsed if isinstance(item, (str, int, float))]


def _clean_line(line: str) -> str:
  cleaned = _LIST_MARKER_RE.sub("", line).strip()
  cleaned = cleaned.strip("\"'`*").strip()
  # Skip headings such as "Here are some names:".
  if cleaned.endswith(":"):
    return ""
  return cleaned.rstrip(",.;")


class ModelClientAdapter:
  """
  Present a uniform generate-names capability over heterogeneous providers.

  The adapter owns provider lookup, availability, exception classification
  and output parsing. It never touches session state.
  """

  def __init__(
    self,
    providers: Mapping[str, Provider],
    *,
    registry: Mapping[str, ModelDefinition] | None = None,
    enabled_models: Iterable[str] | None = None,
    rate_limit_cooldown_seconds: float = 60.0,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._providers = dict(providers)
    self._registry = dict(registry if registry is not None else MODEL_REGISTRY)
    self._enabled = frozenset(enabled_models) if enabled_models is not None else None
    self._cooldown_seconds = rate_limit_cooldown_seconds
    self._clock = clock
    self._cooldown_until: dict[str, float] = {}

  def is_registered(self, model_id: str) -> bool:
    return model_id in self._registry

  def definition(self, model_id: str) -> ModelDefinition | None:
    return self._registry.get(model_id)

  def enabled_models(self) -> list[str]:
    """Return registered, enabled model ids in registry order."""
    return [model_id for model_id in self._registry if self._enabled is None or model_id in self._enabled]

  def is_configured(self, model_id: str) -> bool:
    """Return True when the model is registered, enabled and its provider has credentials."""
    definition = self._registry.get(model_id)
    if definition is None:
      return False

    if self._enabled is not None and model_id not in self._enabled:
      return False

    provider = self._providers.get(definition.provider)
    return provider is not None and provider.configured

  def is_available(self, model_id: str) -> bool:
    """Return True when the model can be called right now."""
    return self.is_configured(model_id) and self.rate_limit_state(model_id)["cooling_down"] is False

  def rate_limit_state(self, model_id: str) -> dict[str, Any]:
    """Report whether the model is inside a rate-limit cooldown window."""
    until = self._cooldown_until.get(model_id)
    now = self._clock()

    if until is None or until <= now:
      self._cooldown_until.pop(model_id, None)
      return {"cooling_down": False, "retry_in_seconds": 0.0}

    return {"cooling_down": True, "retry_in_seconds": round(until - now, 3)}

  def availability(self) -> dict[str, bool]:
    return {model_id: self.is_available(model_id) for model_id in self._registry}

  def record_rate_limit(self, model_id: str, retry_after: float | None = None) -> float:
    """Start a cooldown window after the provider signalled a rate limit; return its length."""
    window = max(self._cooldown_seconds, retry_after or 0.0)
    self._cooldown_until[model_id] = self._clock() + window
    logger.warning("Model %s rate limited; cooling down for %.1fs", model_id, window)
    return window

  async def generate(self, model_id: str, prompt: str, params: Mapping[str, Any]) -> list[str]:
    """Generate candidate names, raising ProviderError on any failure."""
    definition = self._registry.get(model_id)
    if definition is None:
      raise ProviderError(ProviderErrorKind.MODEL_NOT_FOUND, f"Model '{model_id}' is not registered.", model_id=model_id)

    provider = self._providers.get(definition.provider)
    if provider is None or not provider.configured:
      raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"Provider '{definition.provider}' is not configured.", model_id=model_id)

    # Calls inside a cooldown window fail fast but stay retryable once the window closes.
    cooldown = self.rate_limit_state(model_id)
    if cooldown["cooling_down"]:
      raise ProviderError(ProviderErrorKind.RATE_LIMITED, "Model is cooling down after a rate limit.", model_id=model_id, retry_after=cooldown["retry_in_seconds"])

    generation_params = GenerationParams.from_mapping(dict(params))
    # The mock provider serves canned lists keyed by the public model id.
    provider_model = model_id if isinstance(provider, MockProvider) else definition.provider_model

    try:
      model = provider.get_model(provider_model)
    except ValueError as exc:
      raise ProviderError(ProviderErrorKind.INVALID_CREDENTIALS, str(exc), model_id=model_id) from exc

    try:
      response = await model.generate(prompt, generation_params)
    except ProviderError:
      raise
    except Exception as exc:  # noqa: BLE001
      error = to_provider_error(exc, model_id=model_id)
      if error.kind is ProviderErrorKind.RATE_LIMITED:
        # The retry policy waits out the whole cooldown before the next attempt.
        error.retry_after = self.record_rate_limit(model_id, error.retry_after)
      raise error from exc

    names = parse_names(response.content or "", generation_params.count)
    if not names:
      raise ProviderError(ProviderErrorKind.EMPTY_RESPONSE, "Model returned no usable names.", model_id=model_id)

    logger.info("Model %s returned %d names (usage=%s)", model_id, len(names), response.usage)
    return names

  async def aclose(self) -> None:
    """Close provider clients that hold open connections."""
    for provider in {id(provider): provider for provider in self._providers.values()}.values():
      aclose = getattr(provider, "aclose", None)
      if aclose is not None:
        await aclose()


def build_providers(settings: Settings) -> dict[str, Provider]:
  """Construct provider clients from settings."""
  if settings.mock_providers:
    mock = MockProvider()
    return {name: mock for name in ("openai", "anthropic", "gemini", "xai")}

  timeout = settings.task_timeout_seconds
  return {
    "openai": OpenAICompatibleProvider("openai", settings.openai_api_key, settings.openai_base_url, timeout=timeout),
    "xai": OpenAICompatibleProvider("xai", settings.xai_api_key, settings.xai_base_url, timeout=timeout),
    "anthropic": AnthropicProvider(settings.anthropic_api_key, settings.anthropic_base_url, settings.anthropic_api_version, timeout=timeout),
    "gemini": GeminiProvider(settings.gemini_api_key),
  }


def build_model_client_adapter(settings: Settings) -> ModelClientAdapter:
  return ModelClientAdapter(build_providers(settings), enabled_models=settings.enabled_models, rate_limit_cooldown_seconds=settings.rate_limit_cooldown_seconds)
