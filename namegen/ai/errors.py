"""Typed provider failure classification shared by the adapter and retry policy."""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx
import openai
from google.genai import errors as genai_errors


class ProviderErrorKind(str, Enum):
  """Kinds of provider failure, each either retryable or permanent."""

  NETWORK = "network"
  TIMEOUT = "timeout"
  RATE_LIMITED = "rate_limited"
  SERVER_ERROR = "server_error"
  EMPTY_RESPONSE = "empty_response"
  INVALID_CREDENTIALS = "invalid_credentials"
  UNAUTHORIZED = "unauthorized"
  FORBIDDEN = "forbidden"
  MODEL_NOT_FOUND = "model_not_found"
  QUOTA_EXHAUSTED = "quota_exhausted"
  UNAVAILABLE = "unavailable"
  BAD_REQUEST = "bad_request"

  @property
  def retryable(self) -> bool:
    return self in _TRANSIENT_KINDS


_TRANSIENT_KINDS = frozenset({ProviderErrorKind.NETWORK, ProviderErrorKind.TIMEOUT, ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.SERVER_ERROR, ProviderErrorKind.EMPTY_RESPONSE})


class ProviderError(RuntimeError):
  """Raised by the model client adapter for any provider failure."""

  def __init__(self, kind: ProviderErrorKind, message: str, *, model_id: str | None = None, retry_after: float | None = None) -> None:
    super().__init__(message)
    self.kind = kind
    self.model_id = model_id
    self.retry_after = retry_after

  @property
  def retryable(self) -> bool:
    return self.kind.retryable

  def __str__(self) -> str:
    base = super().__str__()
    if self.model_id:
      return f"[{self.model_id}] {self.kind.value}: {base}"
    return f"{self.kind.value}: {base}"


_QUOTA_MARKERS = ("insufficient_quota", "quota exceeded", "quota_exceeded", "billing", "credit balance")


def _mentions_quota(message: str) -> bool:
  lowered = message.lower()
  return any(marker in lowered for marker in _QUOTA_MARKERS)


def classify_status(status_code: int, message: str = "") -> ProviderErrorKind:
  """
  Classify an HTTP status returned by a provider.

  400 → bad request, 401 → invalid credentials, 403 → forbidden,
  404 → model not found, 402 → quota exhausted, 408/504 → timeout,
  429 → rate limited (or quota exhausted when the body says so),
  other 5xx → server error.
  """
  if status_code == 401:
    return ProviderErrorKind.INVALID_CREDENTIALS
  if status_code == 402:
    return ProviderErrorKind.QUOTA_EXHAUSTED
  if status_code == 403:
    # Some providers report exhausted quota as 403.
    if _mentions_quota(message):
      return ProviderErrorKind.QUOTA_EXHAUSTED
    return ProviderErrorKind.FORBIDDEN
  if status_code == 404:
    return ProviderErrorKind.MODEL_NOT_FOUND
  if status_code in {408, 504}:
    return ProviderErrorKind.TIMEOUT
  if status_code == 429:
    if _mentions_quota(message):
      return ProviderErrorKind.QUOTA_EXHAUSTED
    return ProviderErrorKind.RATE_LIMITED
  if status_code >= 500:
    return ProviderErrorKind.SERVER_ERROR
  return ProviderErrorKind.BAD_REQUEST


def classify_provider_exception(exc: BaseException) -> ProviderErrorKind:
  """Map SDK and transport exceptions onto a provider error kind."""
  if isinstance(exc, ProviderError):
    return exc.kind

  # openai SDK (OpenAI and OpenAI-compatible providers).
  if isinstance(exc, openai.APITimeoutError):
    return ProviderErrorKind.TIMEOUT
  if isinstance(exc, openai.APIConnectionError):
    return ProviderErrorKind.NETWORK
  if isinstance(exc, openai.APIStatusError):
    return classify_status(exc.status_code, str(exc))

  # google-genai SDK.
  if isinstance(exc, genai_errors.APIError):
    return classify_status(int(exc.code or 500), str(exc))

  # Raw httpx transport (Anthropic client).
  if isinstance(exc, httpx.HTTPStatusError):
    return classify_status(exc.response.status_code, exc.response.text)
  if isinstance(exc, httpx.TimeoutException):
    return ProviderErrorKind.TIMEOUT
  if isinstance(exc, httpx.TransportError):
    return ProviderErrorKind.NETWORK

  if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
    return ProviderErrorKind.TIMEOUT
  if isinstance(exc, (ConnectionError, OSError)):
    return ProviderErrorKind.NETWORK

  # Unknown failures are treated as transient so they get bounded retries.
  return ProviderErrorKind.SERVER_ERROR


def to_provider_error(exc: BaseException, *, model_id: str) -> ProviderError:
  """Wrap an arbitrary exception into a classified ProviderError."""
  if isinstance(exc, ProviderError):
    if exc.model_id is None:
      exc.model_id = model_id
    return exc

  kind = classify_provider_exception(exc)
  retry_after = _retry_after_seconds(exc) if kind is ProviderErrorKind.RATE_LIMITED else None
  message = str(exc) or type(exc).__name__
  return ProviderError(kind, message, model_id=model_id, retry_after=retry_after)


def _retry_after_seconds(exc: BaseException) -> float | None:
  """Read a Retry-After header when the exception carries an HTTP response."""
  response = getattr(exc, "response", None)
  headers = getattr(response, "headers", None)
  if not headers:
    return None
  raw = headers.get("retry-after")
  if raw is None:
    return None
  try:
    return max(float(raw), 0.0)
  except ValueError:
    return None
