"""Batch coordinator: fan one session out across models and aggregate the results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from namegen.ai.client import ModelClientAdapter
from namegen.ai.errors import ProviderErrorKind
from namegen.ai.prompts import PromptOptimizer
from namegen.cache.results import ResultCache
from namegen.jobs.model_task import ModelGenerationTask
from namegen.jobs.models import GenerationSession, PerModelResult
from namegen.jobs.progress import AGGREGATION_PROGRESS, CACHE_HIT_PROGRESS, FANOUT_START, SessionProgressTracker
from namegen.storage.sessions_repo import InvalidSessionTransitionError, SessionNotFoundError, SessionsRepository

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No results generated from any model."
CANCELLED_MESSAGE = "Generation cancelled by user."


class BatchCoordinator:
  """
  Drive a session through pending -> processing -> completed/failed/cancelled.

  The coordinator is the only writer of session progress and terminal
  status. Per-model tasks run concurrently under a semaphore and report
  back in completion order.
  """

  def __init__(
    self,
    *,
    sessions_repo: SessionsRepository,
    cache: ResultCache,
    adapter: ModelClientAdapter,
    optimizer: PromptOptimizer,
    max_concurrency: int = 8,
    task_timeout_seconds: float = 120.0,
    batch_timeout_seconds: float = 300.0,
    max_attempts: int = 3,
    retry_delays: Sequence[float] = (30.0, 60.0, 120.0),
    names_per_model: int = 10,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._sessions_repo = sessions_repo
    self._cache = cache
    self._adapter = adapter
    self._optimizer = optimizer
    self._max_concurrency = max(max_concurrency, 1)
    self._task_timeout_seconds = task_timeout_seconds
    self._batch_timeout_seconds = batch_timeout_seconds
    self._max_attempts = max_attempts
    self._retry_delays = tuple(retry_delays)
    self._names_per_model = names_per_model
    self._sleep = sleep

  async def run(self, session_id: str) -> GenerationSession | None:
    """
    Process a pending session to a terminal status.

    Returns the final session, or None when the session was not pending
    (another run already claimed it, or it was cancelled before start).
    """
    if not await self._sessions_repo.claim_processing(session_id):
      session = await self._sessions_repo.get(session_id)
      current = session.status if session else "missing"
      logger.warning("Session %s not claimed for processing (status=%s); skipping duplicate run", session_id, current)
      return None

    logger.info("Session %s claimed for processing", session_id)
    try:
      return await self._process(session_id)
    except InvalidSessionTransitionError as exc:
      # Cancelled in the store underneath us; the stored terminal state wins.
      logger.warning("Session %s closed while processing: %s", session_id, exc)
      return await self._sessions_repo.get(session_id)
    except Exception as exc:
      logger.error("Session %s failed unexpectedly: %s", session_id, exc, exc_info=True)
      try:
        await self._sessions_repo.mark_failed(session_id, f"Generation failed: {exc}")
      except InvalidSessionTransitionError:
        logger.warning("Session %s already terminal; not marking failed", session_id)
      raise

  async def _process(self, session_id: str) -> GenerationSession:
    session = await self._sessions_repo.get(session_id)
    if session is None:
      raise SessionNotFoundError(session_id)

    models = list(session.requested_models)
    tracker = SessionProgressTracker(session_id=session_id, sessions_repo=self._sessions_repo, total_models=len(models))

    if await self._cache.is_cancelled(session_id):
      return await self._finish_cancelled(session, {}, {})

    cached = await self._cache.get_combined(session.business_description, session.generation_mode, session.deep_thinking, models)
    if cached is not None:
      return await self._finish_from_cache(session, tracker, cached.results, cached.result_count, cached.generated_at)

    await tracker.set_step(FANOUT_START, f"Generating names with {len(models)} models")
    results, outcomes, cancelled = await self._fan_out(session, models, tracker)

    if cancelled:
      return await self._finish_cancelled(session, results, outcomes)

    await tracker.set_step(AGGREGATION_PROGRESS, "Creating name suggestions")
    metadata = self._build_metadata(session, results, outcomes, source="ai_generation")

    if not results:
      logger.error("Session %s produced no names from %d models", session_id, len(models))
      return await self._sessions_repo.mark_failed(session_id, NO_RESULTS_MESSAGE, metadata=metadata)

    await self._cache.put_combined(session.business_description, session.generation_mode, session.deep_thinking, models, results)
    final = await self._sessions_repo.mark_completed(session_id, results, metadata)
    logger.info("Session %s completed: %d names from %d/%d models", session_id, metadata["total_names"], len(results), len(models))
    return final

  async def _fan_out(self, session: GenerationSession, models: list[str], tracker: SessionProgressTracker) -> tuple[dict[str, list[str]], dict[str, PerModelResult | None], bool]:
    session_id = session.session_id
    semaphore = asyncio.Semaphore(self._max_concurrency)

    async def run_model(model_id: str) -> PerModelResult | None:
      async with semaphore:
        # Models not yet launched never start once the batch is cancelled.
        if await self._cache.is_cancelled(session_id):
          return None
        task = ModelGenerationTask(
          session=session,
          model_id=model_id,
          adapter=self._adapter,
          optimizer=self._optimizer,
          cache=self._cache,
          sessions_repo=self._sessions_repo,
          timeout_seconds=self._task_timeout_seconds,
          names_per_model=self._names_per_model,
        )
        return await task.run(max_attempts=self._max_attempts, delays=self._retry_delays, sleep=self._sleep)

    tasks = {asyncio.create_task(run_model(model_id), name=f"{session_id}:{model_id}"): model_id for model_id in models}
    launch_order = {task: index for index, task in enumerate(tasks)}
    pending: set[asyncio.Task] = set(tasks)
    results: dict[str, list[str]] = {}
    outcomes: dict[str, PerModelResult | None] = {}
    cancelled = False
    loop = asyncio.get_running_loop()
    deadline = loop.time() + self._batch_timeout_seconds

    try:
      while pending:
        remaining = deadline - loop.time()
        if remaining <= 0:
          break

        done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        # Merged in completion order; ties within one wakeup keep request order.
        for finished in sorted(done, key=launch_order.__getitem__):
          model_id = tasks[finished]
          outcome = self._task_outcome(session_id, model_id, finished)

          # In-flight calls are left to finish once cancelled; their results are dropped.
          if cancelled or await self._cache.is_cancelled(session_id):
            logger.info("Session %s cancelled; discarding result from %s", session_id, model_id)
            cancelled = True
            continue

          outcomes[model_id] = outcome
          if outcome is not None and outcome.status == "completed" and outcome.names:
            results[model_id] = list(outcome.names)
          await tracker.model_finished(model_id)
    finally:
      for task in pending:
        task.cancel()
      if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    if pending and not cancelled:
      await self._abandon_timed_out(session_id, [tasks[task] for task in pending], outcomes)

    return results, outcomes, cancelled

  def _task_outcome(self, session_id: str, model_id: str, task: asyncio.Task) -> PerModelResult | None:
    exc = task.exception()
    if exc is None:
      return task.result()

    logger.error("Session %s: task for %s raised %s", session_id, model_id, exc, exc_info=exc)
    return PerModelResult(model_id=model_id, status="failed", error=str(exc) or type(exc).__name__, error_kind=ProviderErrorKind.SERVER_ERROR.value)

  async def _abandon_timed_out(self, session_id: str, model_ids: list[str], outcomes: dict[str, PerModelResult | None]) -> None:
    logger.warning("Session %s batch timeout after %.0fs; abandoning %s", session_id, self._batch_timeout_seconds, ", ".join(model_ids))
    message = f"Batch timed out after {self._batch_timeout_seconds:.0f}s."
    for model_id in model_ids:
      outcomes[model_id] = PerModelResult(model_id=model_id, status="failed", error=message, error_kind=ProviderErrorKind.TIMEOUT.value)
      await self._sessions_repo.upsert_model_run(session_id, model_id, status="failed", error=message, error_kind=ProviderErrorKind.TIMEOUT.value)

  async def _finish_from_cache(self, session: GenerationSession, tracker: SessionProgressTracker, results: dict[str, list[str]], result_count: int, generated_at: str) -> GenerationSession:
    session_id = session.session_id
    logger.info("Session %s served from combined cache (generated_at=%s)", session_id, generated_at)
    await tracker.set_step(CACHE_HIT_PROGRESS, "Using cached results")

    for model_id in session.requested_models:
      names = results.get(model_id, [])
      await self._sessions_repo.upsert_model_run(session_id, model_id, status="completed" if names else "failed", names_generated=len(names), execution_time_ms=0.0)

    metadata = {
      "source": "cache",
      "cached_at": generated_at,
      "models_processed": [model_id for model_id in session.requested_models if results.get(model_id)],
      "models_failed": [model_id for model_id in session.requested_models if not results.get(model_id)],
      "total_names": result_count,
      "total_execution_time_ms": 0.0,
      "success_rate": _success_rate(len([m for m in session.requested_models if results.get(m)]), len(session.requested_models)),
      "strategy": session.generation_strategy,
    }
    return await self._sessions_repo.mark_completed(session_id, results, metadata)

  async def _finish_cancelled(self, session: GenerationSession, results: dict[str, list[str]], outcomes: dict[str, PerModelResult | None]) -> GenerationSession:
    session_id = session.session_id
    for run in await self._sessions_repo.list_model_runs(session_id):
      if run.status in {"pending", "running"}:
        await self._sessions_repo.upsert_model_run(session_id, run.model_id, status="cancelled")

    metadata = self._build_metadata(session, results, outcomes, source="cancelled")
    logger.info("Session %s cancelled with %d partial model results", session_id, len(results))
    return await self._sessions_repo.mark_cancelled(session_id, results=results, reason=CANCELLED_MESSAGE, metadata=metadata)

  def _build_metadata(self, session: GenerationSession, results: dict[str, list[str]], outcomes: dict[str, PerModelResult | None], *, source: str) -> dict[str, Any]:
    models = session.requested_models
    failed = [model_id for model_id in models if model_id in outcomes and model_id not in results]
    total_ms = sum(outcome.execution_time_ms for outcome in outcomes.values() if outcome is not None)
    return {
      "source": source,
      "models_processed": list(results),
      "models_failed": failed,
      "total_names": sum(len(names) for names in results.values()),
      "total_execution_time_ms": round(total_ms, 2),
      "success_rate": _success_rate(len(results), len(models)),
      "strategy": session.generation_strategy,
    }


def _success_rate(succeeded: int, total: int) -> float:
  if total <= 0:
    return 0.0
  return round(succeeded / total * 100, 2)
