"""Anthropic Messages API provider implemented over httpx."""

from __future__ import annotations

import logging

import httpx

from namegen.ai.providers.base import AIModel, GenerationParams, ModelResponse, Provider, SimpleModelResponse

_SYSTEM_MESSAGE = "You are a naming expert. Reply with a JSON array of strings and nothing else."


class AnthropicModel(AIModel):
  """Claude model client calling /v1/messages."""

  def __init__(self, name: str, client: httpx.AsyncClient) -> None:
    self.name: str = name
    self._client = client

  async def generate(self, prompt: str, params: GenerationParams) -> ModelResponse:
    """Generate text response from Claude."""
    logger = logging.getLogger("namegen.ai.providers.anthropic")

    payload = {"model": self.name, "system": _SYSTEM_MESSAGE, "max_tokens": params.max_tokens, "temperature": params.temperature, "messages": [{"role": "user", "content": prompt}]}
    response = await self._client.post("/messages", json=payload)
    response.raise_for_status()
    body = response.json()

    # Concatenate text blocks; other block types are not expected for plain prompts.
    content = "".join(block.get("text", "") for block in body.get("content", []) if block.get("type") == "text")
    logger.debug("Anthropic response for %s:\n%s", self.name, content)
    usage = None

    raw_usage = body.get("usage")
    if isinstance(raw_usage, dict):
      prompt_tokens = int(raw_usage.get("input_tokens", 0))
      completion_tokens = int(raw_usage.get("output_tokens", 0))
      usage = {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens, "total_tokens": prompt_tokens + completion_tokens}

    return SimpleModelResponse(content=content, usage=usage)


class AnthropicProvider(Provider):
  """Anthropic provider."""

  def __init__(self, api_key: str | None, base_url: str = "https://api.anthropic.com/v1", api_version: str = "2023-06-01", timeout: float | None = None) -> None:
    self.name: str = "anthropic"
    self._api_key = api_key
    self._base_url = base_url.rstrip("/")
    self._api_version = api_version
    self._timeout = timeout
    self._client: httpx.AsyncClient | None = None

  @property
  def configured(self) -> bool:
    return bool(self._api_key)

  def _get_client(self) -> httpx.AsyncClient:
    if self._client is None:
      if not self._api_key:
        raise ValueError("ANTHROPIC_API_KEY environment variable is required")
      headers = {"x-api-key": self._api_key, "anthropic-version": self._api_version, "content-type": "application/json"}
      self._client = httpx.AsyncClient(base_url=self._base_url, headers=headers, timeout=self._timeout, trust_env=False)
    return self._client

  def get_model(self, model: str) -> AIModel:
    """Return a Claude model client."""
    return AnthropicModel(model, self._get_client())

  async def aclose(self) -> None:
    if self._client is not None:
      await self._client.aclose()
      self._client = None
