"""Per-model generation task: one (session, model) pair, with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from namegen.ai.backoff import retry_with_backoff
from namegen.ai.client import ModelClientAdapter
from namegen.ai.errors import ProviderError, ProviderErrorKind
from namegen.ai.prompts import PromptOptimizer
from namegen.cache.results import ResultCache
from namegen.jobs.models import GenerationSession, PerModelResult
from namegen.storage.sessions_repo import InvalidSessionTransitionError, SessionsRepository
from namegen.utils.ids import now_iso

logger = logging.getLogger(__name__)


class ModelGenerationTask:
  """
  Produce names for one model within one session.

  ``run_attempt`` is a single attempt. It returns the recorded result, or
  None when the session was cancelled (nothing is written in that case).
  Transient failures are recorded and re-raised as ProviderError so the
  retry policy can schedule another attempt; permanent failures are
  recorded and returned.
  """

  def __init__(
    self,
    *,
    session: GenerationSession,
    model_id: str,
    adapter: ModelClientAdapter,
    optimizer: PromptOptimizer,
    cache: ResultCache,
    sessions_repo: SessionsRepository,
    timeout_seconds: float = 120.0,
    names_per_model: int = 10,
  ) -> None:
    self._session = session
    self._model_id = model_id
    self._adapter = adapter
    self._optimizer = optimizer
    self._cache = cache
    self._sessions_repo = sessions_repo
    self._timeout_seconds = timeout_seconds
    self._names_per_model = names_per_model
    self._last_result: PerModelResult | None = None

  async def run_attempt(self, attempt: int) -> PerModelResult | None:
    session_id = self._session.session_id

    if await self._cache.is_cancelled(session_id):
      logger.info("Session %s cancelled; skipping %s", session_id, self._model_id)
      return None

    # A completed entry from an earlier dispatch of this session is reused as-is.
    cached = await self._cache.get_model_result(session_id, self._model_id)
    if cached is not None and cached.status == "completed":
      logger.info("Session %s: reusing cached result for %s", session_id, self._model_id)
      self._last_result = cached
      return cached

    if not await self._record_run(status="running", attempts=attempt, error=None, error_kind=None):
      return None
    await self._cache.put_model_result(session_id, PerModelResult(model_id=self._model_id, status="running", attempt=attempt))

    started = time.perf_counter()
    try:
      names = await self._generate()
    except ProviderError as exc:
      elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
      if await self._cache.is_cancelled(session_id):
        logger.info("Session %s cancelled; discarding %s failure", session_id, self._model_id)
        return None

      result = PerModelResult(model_id=self._model_id, status="failed", execution_time_ms=elapsed_ms, error=str(exc), error_kind=exc.kind.value, attempt=attempt, completed_at=now_iso())
      self._last_result = result
      await self._cache.put_model_result(session_id, result)
      await self._record_run(status="failed", attempts=attempt, execution_time_ms=elapsed_ms, names_generated=0, error=str(exc), error_kind=exc.kind.value)
      logger.warning("Session %s: %s attempt %d failed (%s)", session_id, self._model_id, attempt, exc.kind.value)

      if exc.retryable:
        raise
      return result

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    if await self._cache.is_cancelled(session_id):
      logger.info("Session %s cancelled; discarding %d names from %s", session_id, len(names), self._model_id)
      return None

    result = PerModelResult(model_id=self._model_id, status="completed", names=names, execution_time_ms=elapsed_ms, attempt=attempt, completed_at=now_iso())
    self._last_result = result
    await self._cache.put_model_result(session_id, result)
    await self._record_run(status="completed", attempts=attempt, execution_time_ms=elapsed_ms, names_generated=len(names), error=None, error_kind=None)
    logger.info("Session %s: %s generated %d names in %.0fms", session_id, self._model_id, len(names), elapsed_ms)
    return result

  async def _generate(self) -> list[str]:
    # A rate-limit cooldown is not a reason to give up; the adapter reports it as retryable.
    if not self._adapter.is_configured(self._model_id):
      raise ProviderError(ProviderErrorKind.UNAVAILABLE, "Model is not available.", model_id=self._model_id)

    session = self._session
    overrides = session.custom_parameters or {}
    count = int(overrides.get("count") or self._names_per_model)
    base_prompt = self._optimizer.build_base_prompt(session.business_description, count)
    prompt = self._optimizer.optimize(self._model_id, base_prompt, session.generation_mode, session.deep_thinking, count)
    params = self._optimizer.generation_params(self._model_id, session.generation_mode, session.deep_thinking, overrides, count)

    try:
      return await asyncio.wait_for(self._adapter.generate(self._model_id, prompt, params), timeout=self._timeout_seconds)
    except TimeoutError as exc:
      raise ProviderError(ProviderErrorKind.TIMEOUT, f"No response within {self._timeout_seconds:.0f}s.", model_id=self._model_id) from exc

  async def _record_run(self, **fields: object) -> bool:
    try:
      await self._sessions_repo.upsert_model_run(self._session.session_id, self._model_id, **fields)
    except InvalidSessionTransitionError as exc:
      # The session reached a terminal state underneath us (cancel or batch timeout).
      logger.info("Session %s closed; dropping %s run update: %s", self._session.session_id, self._model_id, exc)
      return False
    return True

  async def run(self, *, max_attempts: int = 3, delays: Sequence[float] = (30.0, 60.0, 120.0), sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> PerModelResult | None:
    """Run attempts until success, a permanent failure, cancellation or the attempt budget is spent."""
    label = f"{self._model_id} for session {self._session.session_id}"
    try:
      return await retry_with_backoff(self.run_attempt, max_attempts=max_attempts, delays=delays, label=label, sleep=sleep)
    except ProviderError:
      # Every attempt failed transiently; the last failure is already recorded.
      return self._last_result
