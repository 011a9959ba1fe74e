"""In-process session repository used for development and tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from namegen.jobs.models import TERMINAL_STATUSES, GenerationSession, ModelRun, SessionSpec, SessionStatus
from namegen.storage.sessions_repo import MODEL_RUN_FIELDS, InvalidSessionTransitionError, SessionNotFoundError, SessionsRepository, check_transition, clamp_progress
from namegen.utils.ids import generate_session_id, iso_ago, now_iso


class InMemorySessionsRepository(SessionsRepository):
  """
  Keep sessions and model runs in dictionaries.

  Each session has its own asyncio.Lock so writes to one session are
  serialized while different sessions proceed independently. Reads return
  copies; callers never hold references into the store.
  """

  def __init__(self) -> None:
    self._sessions: dict[str, GenerationSession] = {}
    self._runs: dict[str, dict[str, ModelRun]] = {}
    self._locks: dict[str, asyncio.Lock] = {}

  def _lock_for(self, session_id: str) -> asyncio.Lock:
    lock = self._locks.get(session_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[session_id] = lock
    return lock

  def _require(self, session_id: str) -> GenerationSession:
    session = self._sessions.get(session_id)
    if session is None:
      raise SessionNotFoundError(session_id)
    return session

  async def create(self, spec: SessionSpec, *, session_id: str | None = None) -> str:
    session_id = session_id or generate_session_id()
    now = now_iso()
    models = list(dict.fromkeys(spec.requested_models))
    async with self._lock_for(session_id):
      if session_id in self._sessions:
        raise ValueError(f"Session '{session_id}' already exists.")

      self._sessions[session_id] = GenerationSession(
        session_id=session_id,
        business_description=spec.business_description,
        generation_mode=spec.generation_mode,
        deep_thinking=spec.deep_thinking,
        requested_models=models,
        generation_strategy=spec.generation_strategy,
        custom_parameters=dict(spec.custom_parameters),
        status="pending",
        created_at=now,
        updated_at=now,
      )
      self._runs[session_id] = {model_id: ModelRun(session_id=session_id, model_id=model_id, updated_at=now) for model_id in models}
    return session_id

  async def get(self, session_id: str) -> GenerationSession | None:
    session = self._sessions.get(session_id)
    if session is None:
      return None
    return copy.deepcopy(session)

  async def claim_processing(self, session_id: str, *, step: str = "Initializing AI models", progress: int = 10) -> bool:
    async with self._lock_for(session_id):
      session = self._require(session_id)
      if session.status != "pending":
        return False

      now = now_iso()
      session.status = "processing"
      session.started_at = now
      session.updated_at = now
      session.progress_percentage = clamp_progress(session.progress_percentage, progress)
      session.current_step = step
      return True

  async def update_progress(self, session_id: str, percent: int, step: str | None = None) -> GenerationSession:
    async with self._lock_for(session_id):
      session = self._require(session_id)
      if session.status != "processing":
        raise InvalidSessionTransitionError(session_id, session.status, "processing")

      session.progress_percentage = clamp_progress(session.progress_percentage, percent)
      if step is not None:
        session.current_step = step
      session.updated_at = now_iso()
      return copy.deepcopy(session)

  async def mark_completed(self, session_id: str, results: dict[str, list[str]], metadata: dict[str, Any]) -> GenerationSession:
    async with self._lock_for(session_id):
      session = self._require(session_id)
      check_transition(session_id, session.status, "completed")

      now = now_iso()
      session.status = "completed"
      session.results = copy.deepcopy(results)
      session.execution_metadata = {**session.execution_metadata, **metadata}
      session.progress_percentage = 100
      session.current_step = "Completed"
      session.completed_at = now
      session.updated_at = now
      return copy.deepcopy(session)

  async def mark_failed(self, session_id: str, error: str, *, metadata: dict[str, Any] | None = None) -> GenerationSession:
    async with self._lock_for(session_id):
      session = self._require(session_id)
      check_transition(session_id, session.status, "failed")

      now = now_iso()
      session.status = "failed"
      session.error_message = error
      session.current_step = "Failed"
      if metadata:
        session.execution_metadata = {**session.execution_metadata, **metadata}
      session.failed_at = now
      session.updated_at = now
      return copy.deepcopy(session)

  async def mark_cancelled(self, session_id: str, *, results: dict[str, list[str]] | None = None, reason: str | None = None, metadata: dict[str, Any] | None = None) -> GenerationSession:
    async with self._lock_for(session_id):
      session = self._require(session_id)
      check_transition(session_id, session.status, "cancelled")

      now = now_iso()
      session.status = "cancelled"
      if results:
        session.results = copy.deepcopy(results)
      if metadata:
        session.execution_metadata = {**session.execution_metadata, **metadata}
      session.error_message = reason
      session.current_step = "Cancelled"
      session.cancelled_at = now
      session.updated_at = now
      return copy.deepcopy(session)

  async def upsert_model_run(self, session_id: str, model_id: str, **fields: Any) -> ModelRun:
    unknown = set(fields) - MODEL_RUN_FIELDS
    if unknown:
      raise ValueError(f"Unknown model run fields: {sorted(unknown)}")

    async with self._lock_for(session_id):
      session = self._require(session_id)
      if session.status in TERMINAL_STATUSES:
        raise InvalidSessionTransitionError(session_id, session.status, f"model_run:{fields.get('status', 'update')}")

      runs = self._runs.setdefault(session_id, {})
      run = runs.get(model_id)
      if run is None:
        run = ModelRun(session_id=session_id, model_id=model_id)
        runs[model_id] = run

      for name, value in fields.items():
        setattr(run, name, value)
      run.updated_at = now_iso()
      return copy.deepcopy(run)

  async def list_model_runs(self, session_id: str) -> list[ModelRun]:
    self._require(session_id)
    return [copy.deepcopy(run) for run in self._runs.get(session_id, {}).values()]

  async def find_stale(self, statuses: tuple[SessionStatus, ...], older_than: str) -> list[GenerationSession]:
    return [copy.deepcopy(session) for session in self._sessions.values() if session.status in statuses and session.updated_at < older_than]

  async def delete_older_than(self, days: int) -> int:
    cutoff = iso_ago(days=days)
    expired = [session_id for session_id, session in self._sessions.items() if session.status in TERMINAL_STATUSES and session.updated_at < cutoff]
    for session_id in expired:
      self._sessions.pop(session_id, None)
      self._runs.pop(session_id, None)
      self._locks.pop(session_id, None)
    return len(expired)
