"""Retry logic for per-model generation attempts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from namegen.ai.errors import ProviderError

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def retry_with_backoff(func: Callable[[int], Awaitable[T]], *, max_attempts: int, delays: Sequence[float], label: str = "operation", sleep: Sleep = asyncio.sleep) -> T:
  """
  Execute ``func(attempt)`` until it succeeds or a non-retryable error occurs.

  Only ProviderError with a retryable kind triggers another attempt. The delay
  before attempt ``n + 1`` is ``delays[n - 1]``, clamped to the last entry.
  Delays default to 30s, 60s, 120s via settings.
  """
  if max_attempts < 1:
    raise ValueError("max_attempts must be at least 1.")

  for attempt in range(1, max_attempts + 1):
    try:
      return await func(attempt)
    except ProviderError as e:
      if not e.retryable:
        raise

      if attempt >= max_attempts:
        logger.error("Giving up on %s after %d/%d attempts. Error: %s", label, attempt, max_attempts, e)
        raise

      delay = _delay_for(attempt, delays)
      # Honour provider Retry-After hints when they ask for a longer pause.
      if e.retry_after is not None:
        delay = max(delay, e.retry_after)
      logger.warning("Retry attempt %d/%d needed for %s. Error: %s. Retrying in %.1fs...", attempt + 1, max_attempts, label, e, delay)
      await sleep(delay)

  raise RuntimeError(f"Retry loop for {label} exited without a result")


def _delay_for(attempt: int, delays: Sequence[float]) -> float:
  if not delays:
    return 0.0
  index = min(attempt - 1, len(delays) - 1)
  return float(delays[index])
