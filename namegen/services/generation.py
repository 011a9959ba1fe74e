"""Session lifecycle service: create, dispatch, inspect and cancel generation sessions."""

from __future__ import annotations

import logging

from namegen.ai.client import ModelClientAdapter
from namegen.api.models import CreateSessionRequest, ModelInfo, ModelRunStatusResponse, SessionCreateResponse, SessionDetailsResponse, StrategyInfo
from namegen.cache.results import ResultCache
from namegen.config import Settings
from namegen.jobs.models import GENERATION_MODES, GenerationSession, ModelRun, SessionSnapshot, SessionSpec
from namegen.services.tasks.interface import TaskEnqueuer, TaskPriority
from namegen.storage.sessions_repo import InvalidSessionTransitionError, SessionNotFoundError, SessionsRepository
from namegen.utils.ids import iso_ago, now_iso, parse_iso

logger = logging.getLogger(__name__)

STALE_SESSION_MESSAGE = "Generation did not finish in time and was abandoned."
CANCELLED_MESSAGE = "Generation cancelled by user."


class GenerationRequestError(ValueError):
  """Raised when a create request names unknown models, an empty description or a bad mode."""


def build_snapshot(session: GenerationSession) -> SessionSnapshot:
  """Project a session onto the polling read model."""
  return SessionSnapshot(
    session_id=session.session_id,
    status=session.status,
    progress_percentage=session.progress_percentage,
    current_step=session.current_step,
    results={model_id: list(names) for model_id, names in session.results.items()},
    error_message=session.error_message,
    duration_seconds=_duration_seconds(session),
    is_completed=session.status == "completed",
    has_failed=session.status == "failed",
    is_cancelled=session.status == "cancelled",
    updated_at=session.updated_at,
  )


def _duration_seconds(session: GenerationSession) -> int | None:
  if session.started_at is None:
    return None

  finished = session.completed_at or session.failed_at or session.cancelled_at
  end = parse_iso(finished or now_iso())
  return max(int((end - parse_iso(session.started_at)).total_seconds()), 0)


def _run_status(run: ModelRun) -> ModelRunStatusResponse:
  return ModelRunStatusResponse(**run.as_status_entry())


class GenerationService:
  """Front door for generation sessions; the batch coordinator does the work."""

  def __init__(self, *, settings: Settings, sessions_repo: SessionsRepository, cache: ResultCache, adapter: ModelClientAdapter, enqueuer: TaskEnqueuer) -> None:
    self._settings = settings
    self._sessions_repo = sessions_repo
    self._cache = cache
    self._adapter = adapter
    self._enqueuer = enqueuer

  def resolve_models(self, request: CreateSessionRequest) -> tuple[list[str], bool]:
    """Return the model set and effective deep-thinking flag for a request's strategy."""
    strategy = request.generation_strategy
    deep_thinking = request.deep_thinking

    if strategy == "quick":
      models = list(self._settings.quick_models)
    elif strategy == "comprehensive":
      models = self._adapter.enabled_models()
      deep_thinking = True
    else:
      models = list(request.models) or list(self._settings.default_models)

    models = list(dict.fromkeys(models))
    unknown = [model_id for model_id in models if model_id not in self._adapter.enabled_models()]
    if unknown:
      raise GenerationRequestError(f"Unknown or disabled model(s): {', '.join(unknown)}.")
    if not models:
      raise GenerationRequestError("At least one model must be requested.")
    return models, deep_thinking

  async def create_session(self, request: CreateSessionRequest) -> SessionCreateResponse:
    """Validate a request, persist a pending session and optionally dispatch it."""
    description = " ".join(request.business_description.split())
    if not description:
      raise GenerationRequestError("Business description must not be empty.")
    if request.generation_mode not in GENERATION_MODES:
      raise GenerationRequestError(f"Unsupported generation mode '{request.generation_mode}'.")

    models, deep_thinking = self.resolve_models(request)
    spec = SessionSpec(
      business_description=description,
      generation_mode=request.generation_mode,
      requested_models=models,
      deep_thinking=deep_thinking,
      generation_strategy=request.generation_strategy,
      custom_parameters=dict(request.custom_parameters),
    )
    session_id = await self._sessions_repo.create(spec)
    logger.info("Created session %s (strategy=%s models=%s deep=%s)", session_id, spec.generation_strategy, ",".join(models), deep_thinking)

    dispatched = False
    if request.auto_start:
      dispatched = await self.start_session(session_id, priority=request.priority)

    return SessionCreateResponse(session_id=session_id, status="pending", requested_models=models, generation_strategy=spec.generation_strategy, deep_thinking=deep_thinking, dispatched=dispatched)

  async def start_session(self, session_id: str, *, priority: TaskPriority = TaskPriority.NORMAL) -> bool:
    """Dispatch a pending session. Non-pending sessions are left alone."""
    session = await self._require(session_id)
    if session.status != "pending":
      logger.warning("Session %s not dispatched; status is %s", session_id, session.status)
      return False
    return await self._enqueuer.enqueue_session(session_id, priority=priority)

  async def get_status(self, session_id: str) -> SessionSnapshot:
    return build_snapshot(await self._require(session_id))

  async def get_details(self, session_id: str) -> SessionDetailsResponse:
    """Return the full session record together with per-model status."""
    session = await self._require(session_id)
    runs = await self._sessions_repo.list_model_runs(session_id)
    snapshot = build_snapshot(session)
    return SessionDetailsResponse(
      session_id=snapshot.session_id,
      status=snapshot.status,
      progress_percentage=snapshot.progress_percentage,
      current_step=snapshot.current_step,
      results=snapshot.results,
      error_message=snapshot.error_message,
      duration_seconds=snapshot.duration_seconds,
      is_completed=snapshot.is_completed,
      has_failed=snapshot.has_failed,
      is_cancelled=snapshot.is_cancelled,
      updated_at=snapshot.updated_at,
      business_description=session.business_description,
      generation_mode=session.generation_mode,
      deep_thinking=session.deep_thinking,
      generation_strategy=session.generation_strategy,
      requested_models=list(session.requested_models),
      per_model_status={run.model_id: _run_status(run) for run in runs},
      execution_metadata=dict(session.execution_metadata),
      created_at=session.created_at,
      started_at=session.started_at,
      completed_at=session.completed_at,
      failed_at=session.failed_at,
      cancelled_at=session.cancelled_at,
    )

  async def cancel_session(self, session_id: str) -> SessionSnapshot:
    """
    Request cancellation of a session.

    Pending sessions become cancelled immediately. Processing sessions get
    the cancellation flag; the coordinator finishes them as cancelled.
    Cancelling an already-cancelled session is a no-op.
    """
    session = await self._require(session_id)
    if session.status == "cancelled":
      return build_snapshot(session)
    if session.is_terminal:
      raise InvalidSessionTransitionError(session_id, session.status, "cancelled")

    flag_set = await self._cache.set_cancelled(session_id)

    for run in await self._sessions_repo.list_model_runs(session_id):
      if run.status in {"pending", "running"}:
        await self._sessions_repo.upsert_model_run(session_id, run.model_id, status="cancelled")

    # Without the shared flag nobody else would notice, so close the session here.
    if session.status == "pending" or not flag_set:
      if not flag_set:
        logger.error("Cancellation flag for session %s could not be written; cancelling in the store directly", session_id)
      await self._sessions_repo.mark_cancelled(session_id, results=session.results, reason=CANCELLED_MESSAGE)

    logger.info("Cancellation requested for session %s (was %s)", session_id, session.status)
    return build_snapshot(await self._require(session_id))

  def available_models(self) -> list[ModelInfo]:
    models: list[ModelInfo] = []
    for model_id in self._adapter.enabled_models():
      definition = self._adapter.definition(model_id)
      if definition is None:
        continue
      models.append(
        ModelInfo(
          id=model_id,
          name=definition.display_name,
          description=definition.description,
          provider=definition.provider,
          available=self._adapter.is_available(model_id),
          cooling_down=bool(self._adapter.rate_limit_state(model_id)["cooling_down"]),
        )
      )
    return models

  def available_strategies(self) -> list[StrategyInfo]:
    return [
      StrategyInfo(id="quick", name="Quick Generation", description="Fast results using reliable models.", models=list(self._settings.quick_models)),
      StrategyInfo(id="comprehensive", name="Comprehensive Generation", description="High-quality results from all models with deep thinking.", models=self._adapter.enabled_models()),
      StrategyInfo(id="parallel", name="Parallel Generation", description="Run the selected models side by side.", models=list(self._settings.default_models)),
      StrategyInfo(id="custom", name="Custom Generation", description="Tailored model selection and parameters.", models=[]),
    ]

  async def cleanup_old_sessions(self, days: int | None = None) -> int:
    """Delete terminal sessions older than the retention window."""
    retention = days if days is not None else self._settings.session_retention_days
    deleted = await self._sessions_repo.delete_older_than(retention)
    logger.info("Deleted %d sessions older than %d days", deleted, retention)
    return deleted

  async def fail_stale_sessions(self, max_age_seconds: float | None = None) -> int:
    """Mark processing sessions that stopped updating as failed."""
    # Anything older than two batch timeouts has lost its coordinator.
    max_age = max_age_seconds if max_age_seconds is not None else self._settings.batch_timeout_seconds * 2
    stale = await self._sessions_repo.find_stale(("processing",), iso_ago(seconds=max_age))
    failed = 0
    for session in stale:
      try:
        await self._sessions_repo.mark_failed(session.session_id, STALE_SESSION_MESSAGE)
      except InvalidSessionTransitionError:
        continue
      failed += 1
      logger.warning("Session %s marked failed after %.0fs without progress", session.session_id, max_age)
    return failed

  async def _require(self, session_id: str) -> GenerationSession:
    session = await self._sessions_repo.get(session_id)
    if session is None:
      raise SessionNotFoundError(session_id)
    return session
