"""Postgres-backed repository for generation sessions using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from namegen.core.database import get_session_factory
from namegen.jobs.models import TERMINAL_STATUSES, GenerationSession, ModelRun, SessionSpec, SessionStatus
from namegen.schema.sessions import GenerationSessionRow, ModelRunRow
from namegen.storage.sessions_repo import MODEL_RUN_FIELDS, InvalidSessionTransitionError, SessionNotFoundError, SessionsRepository, check_transition, clamp_progress
from namegen.utils.ids import generate_session_id, iso_ago, now_iso


class PostgresSessionsRepository(SessionsRepository):
  """Persist sessions and model runs to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create(self, spec: SessionSpec, *, session_id: str | None = None) -> str:
    session_id = session_id or generate_session_id()
    now = now_iso()
    models = list(dict.fromkeys(spec.requested_models))
    async with self._session_factory() as session:
      session.add(
        GenerationSessionRow(
          session_id=session_id,
          business_description=spec.business_description,
          generation_mode=spec.generation_mode,
          deep_thinking=spec.deep_thinking,
          requested_models=models,
          generation_strategy=spec.generation_strategy,
          custom_parameters=dict(spec.custom_parameters),
          status="pending",
          progress_percentage=0,
          results={},
          execution_metadata={},
          created_at=now,
          updated_at=now,
        )
      )
      # Flush the parent first so the run rows satisfy the foreign key.
      await session.flush()
      for model_id in models:
        session.add(ModelRunRow(session_id=session_id, model_id=model_id, status="pending", attempts=0, names_generated=0, updated_at=now))
      await session.commit()
    return session_id

  async def get(self, session_id: str) -> GenerationSession | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationSessionRow, session_id)
      if row is None:
        return None
      return self._row_to_session(row)

  async def _lock_row(self, session: AsyncSession, session_id: str) -> GenerationSessionRow:
    stmt = select(GenerationSessionRow).where(GenerationSessionRow.session_id == session_id).with_for_update()
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
      raise SessionNotFoundError(session_id)
    return row

  async def claim_processing(self, session_id: str, *, step: str = "Initializing AI models", progress: int = 10) -> bool:
    now = now_iso()
    async with self._session_factory() as session:
      stmt = (
        update(GenerationSessionRow)
        .where(GenerationSessionRow.session_id == session_id, GenerationSessionRow.status == "pending")
        .values(status="processing", started_at=now, updated_at=now, progress_percentage=progress, current_step=step)
      )
      result = await session.execute(stmt)
      await session.commit()
      if result.rowcount == 1:
        return True

      if await session.get(GenerationSessionRow, session_id) is None:
        raise SessionNotFoundError(session_id)
      return False

  async def update_progress(self, session_id: str, percent: int, step: str | None = None) -> GenerationSession:
    async with self._session_factory() as session:
      row = await self._lock_row(session, session_id)
      if row.status != "processing":
        raise InvalidSessionTransitionError(session_id, row.status, "processing")

      row.progress_percentage = clamp_progress(row.progress_percentage, percent)
      if step is not None:
        row.current_step = step
      row.updated_at = now_iso()
      await session.commit()
      return self._row_to_session(row)

  async def mark_completed(self, session_id: str, results: dict[str, list[str]], metadata: dict[str, Any]) -> GenerationSession:
    async with self._session_factory() as session:
      row = await self._lock_row(session, session_id)
      check_transition(session_id, row.status, "completed")

      now = now_iso()
      row.status = "completed"
      row.results = results
      row.execution_metadata = {**(row.execution_metadata or {}), **metadata}
      row.progress_percentage = 100
      row.current_step = "Completed"
      row.completed_at = now
      row.updated_at = now
      await session.commit()
      return self._row_to_session(row)

  async def mark_failed(self, session_id: str, error: str, *, metadata: dict[str, Any] | None = None) -> GenerationSession:
    async with self._session_factory() as session:
      row = await self._lock_row(session, session_id)
      check_transition(session_id, row.status, "failed")

      now = now_iso()
      row.status = "failed"
      row.error_message = error
      row.current_step = "Failed"
      if metadata:
        row.execution_metadata = {**(row.execution_metadata or {}), **metadata}
      row.failed_at = now
      row.updated_at = now
      await session.commit()
      return self._row_to_session(row)

  async def mark_cancelled(self, session_id: str, *, results: dict[str, list[str]] | None = None, reason: str | None = None, metadata: dict[str, Any] | None = None) -> GenerationSession:
    async with self._session_factory() as session:
      row = await self._lock_row(session, session_id)
      check_transition(session_id, row.status, "cancelled")

      now = now_iso()
      row.status = "cancelled"
      if results:
        row.results = results
      if metadata:
        row.execution_metadata = {**(row.execution_metadata or {}), **metadata}
      row.error_message = reason
      row.current_step = "Cancelled"
      row.cancelled_at = now
      row.updated_at = now
      await session.commit()
      return self._row_to_session(row)

  async def upsert_model_run(self, session_id: str, model_id: str, **fields: Any) -> ModelRun:
    unknown = set(fields) - MODEL_RUN_FIELDS
    if unknown:
      raise ValueError(f"Unknown model run fields: {sorted(unknown)}")

    async with self._session_factory() as session:
      # Locking the parent row serializes run writes against terminal transitions.
      parent = await self._lock_row(session, session_id)
      if parent.status in TERMINAL_STATUSES:
        raise InvalidSessionTransitionError(session_id, parent.status, f"model_run:{fields.get('status', 'update')}")

      stmt = select(ModelRunRow).where(ModelRunRow.session_id == session_id, ModelRunRow.model_id == model_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        row = ModelRunRow(session_id=session_id, model_id=model_id, status="pending", attempts=0, names_generated=0)
        session.add(row)

      for name, value in fields.items():
        setattr(row, name, value)
      row.updated_at = now_iso()
      await session.commit()
      return self._row_to_run(row)

  async def list_model_runs(self, session_id: str) -> list[ModelRun]:
    async with self._session_factory() as session:
      if await session.get(GenerationSessionRow, session_id) is None:
        raise SessionNotFoundError(session_id)

      stmt = select(ModelRunRow).where(ModelRunRow.session_id == session_id).order_by(ModelRunRow.id)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._row_to_run(row) for row in rows]

  async def find_stale(self, statuses: tuple[SessionStatus, ...], older_than: str) -> list[GenerationSession]:
    async with self._session_factory() as session:
      stmt = select(GenerationSessionRow).where(GenerationSessionRow.status.in_(statuses), GenerationSessionRow.updated_at < older_than).order_by(GenerationSessionRow.updated_at)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._row_to_session(row) for row in rows]

  async def delete_older_than(self, days: int) -> int:
    cutoff = iso_ago(days=days)
    async with self._session_factory() as session:
      stmt = select(GenerationSessionRow.session_id).where(GenerationSessionRow.status.in_(tuple(TERMINAL_STATUSES)), GenerationSessionRow.updated_at < cutoff)
      session_ids = list((await session.execute(stmt)).scalars().all())
      if not session_ids:
        return 0

      # Delete children explicitly; sqlite does not enforce ON DELETE CASCADE by default.
      await session.execute(delete(ModelRunRow).where(ModelRunRow.session_id.in_(session_ids)))
      await session.execute(delete(GenerationSessionRow).where(GenerationSessionRow.session_id.in_(session_ids)))
      await session.commit()
      return len(session_ids)

  def _row_to_session(self, row: GenerationSessionRow) -> GenerationSession:
    return GenerationSession(
      session_id=row.session_id,
      business_description=row.business_description,
      generation_mode=row.generation_mode,  # type: ignore[arg-type]
      deep_thinking=bool(row.deep_thinking),
      requested_models=list(row.requested_models or []),
      generation_strategy=row.generation_strategy,  # type: ignore[arg-type]
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      custom_parameters=dict(row.custom_parameters or {}),
      progress_percentage=int(row.progress_percentage or 0),
      current_step=row.current_step,
      results={model_id: list(names) for model_id, names in (row.results or {}).items()},
      execution_metadata=dict(row.execution_metadata or {}),
      error_message=row.error_message,
      started_at=row.started_at,
      completed_at=row.completed_at,
      failed_at=row.failed_at,
      cancelled_at=row.cancelled_at,
    )

  def _row_to_run(self, row: ModelRunRow) -> ModelRun:
    return ModelRun(
      session_id=row.session_id,
      model_id=row.model_id,
      status=row.status,  # type: ignore[arg-type]
      attempts=int(row.attempts or 0),
      execution_time_ms=row.execution_time_ms,
      names_generated=int(row.names_generated or 0),
      error=row.error,
      error_kind=row.error_kind,
      updated_at=row.updated_at,
    )
