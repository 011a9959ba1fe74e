"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging

from google import genai
from google.genai import types

from namegen.ai.providers.base import AIModel, GenerationParams, ModelResponse, Provider, SimpleModelResponse


class GeminiModel(AIModel):
  """Gemini model client."""

  def __init__(self, name: str, client: genai.Client) -> None:
    self.name: str = name
    self._client = client

  async def generate(self, prompt: str, params: GenerationParams) -> ModelResponse:
    """Generate text response from Gemini."""
    logger = logging.getLogger("namegen.ai.providers.gemini")

    config = types.GenerateContentConfig(temperature=params.temperature, max_output_tokens=params.max_tokens, response_mime_type="application/json")
    # Use the async client to avoid blocking the asyncio event loop.
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)

    logger.debug("Gemini response for %s:\n%s", self.name, response.text)
    usage = None

    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}
    return SimpleModelResponse(content=response.text or "", usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key
    self._client: genai.Client | None = None

  @property
  def configured(self) -> bool:
    return bool(self._api_key)

  def get_model(self, model: str) -> AIModel:
    """Return a Gemini model client."""
    if self._client is None:
      if not self._api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      self._client = genai.Client(api_key=self._api_key)
    return GeminiModel(model, self._client)
