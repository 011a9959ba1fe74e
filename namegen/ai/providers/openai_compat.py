"""OpenAI-compatible provider implementation using the openai SDK (OpenAI, xAI)."""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

from namegen.ai.providers.base import AIModel, GenerationParams, ModelResponse, Provider, SimpleModelResponse

_SYSTEM_MESSAGE = "You are a naming expert. Reply with a JSON array of strings and nothing else."


class OpenAICompatibleModel(AIModel):
  """Chat-completions model client for OpenAI-compatible endpoints."""

  def __init__(self, name: str, client: AsyncOpenAI, provider_name: str) -> None:
    self.name: str = name
    self._client = client
    self._provider_name = provider_name

  async def generate(self, prompt: str, params: GenerationParams) -> ModelResponse:
    """Generate a text response from the chat completions endpoint."""
    logger = logging.getLogger("namegen.ai.providers.openai_compat")

    response = await self._client.chat.completions.create(
      model=self.name,
      messages=[{"role": "system", "content": _SYSTEM_MESSAGE}, {"role": "user", "content": prompt}],
      temperature=params.temperature,
      max_tokens=params.max_tokens,
    )

    content = response.choices[0].message.content or ""
    logger.debug("%s response for %s:\n%s", self._provider_name, self.name, content)
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return SimpleModelResponse(content=content, usage=usage)


class OpenAICompatibleProvider(Provider):
  """Provider for OpenAI and OpenAI-compatible APIs."""

  def __init__(self, name: str, api_key: str | None, base_url: str | None = None, timeout: float | None = None) -> None:
    self.name: str = name
    self._api_key = api_key
    self._base_url = base_url
    self._timeout = timeout
    self._client: AsyncOpenAI | None = None

  @property
  def configured(self) -> bool:
    return bool(self._api_key)

  def _get_client(self) -> AsyncOpenAI:
    if self._client is None:
      if not self._api_key:
        raise ValueError(f"API key for provider '{self.name}' is not configured")
      # Retries are owned by the per-model task policy, not the SDK.
      self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, timeout=self._timeout, max_retries=0)
    return self._client

  def get_model(self, model: str) -> AIModel:
    """Return an OpenAI-compatible model client."""
    return OpenAICompatibleModel(model, self._get_client(), self.name)

  async def aclose(self) -> None:
    if self._client is not None:
      await self._client.close()
      self._client = None
