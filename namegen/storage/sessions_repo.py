"""Storage interfaces for generation sessions and their per-model runs."""

from __future__ import annotations

from typing import Any, Protocol

from namegen.jobs.models import GenerationSession, ModelRun, SessionSpec, SessionStatus


class SessionNotFoundError(LookupError):
  """Raised when a session id does not exist."""

  def __init__(self, session_id: str) -> None:
    super().__init__(f"Generation session '{session_id}' not found.")
    self.session_id = session_id


class InvalidSessionTransitionError(RuntimeError):
  """Raised when a write would move a session backwards or touch a terminal session."""

  def __init__(self, session_id: str, current: str, attempted: str) -> None:
    super().__init__(f"Session '{session_id}' cannot move from '{current}' to '{attempted}'.")
    self.session_id = session_id
    self.current = current
    self.attempted = attempted


MODEL_RUN_FIELDS = frozenset({"status", "attempts", "execution_time_ms", "names_generated", "error", "error_kind"})

# Allowed status transitions; every other move is rejected.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "pending": frozenset({"processing", "failed", "cancelled"}),
  "processing": frozenset({"completed", "failed", "cancelled"}),
  "completed": frozenset(),
  "failed": frozenset(),
  "cancelled": frozenset(),
}


def check_transition(session_id: str, current: str, target: str) -> None:
  if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
    raise InvalidSessionTransitionError(session_id, current, target)


def clamp_progress(current: int, requested: int) -> int:
  """Clamp to 0..100 and never move below the current value."""
  return max(current, min(max(int(requested), 0), 100))


class SessionsRepository(Protocol):
  """Repository contract for session persistence."""

  async def create(self, spec: SessionSpec, *, session_id: str | None = None) -> str:
    """Persist a pending session plus one pending model run per requested model."""

  async def get(self, session_id: str) -> GenerationSession | None:
    """Fetch a session by identifier."""

  async def claim_processing(self, session_id: str, *, step: str = "Initializing AI models", progress: int = 10) -> bool:
    """Atomically move pending to processing; return False when the session was not pending."""

  async def update_progress(self, session_id: str, percent: int, step: str | None = None) -> GenerationSession:
    """Record progress for a processing session. Progress never regresses."""

  async def mark_completed(self, session_id: str, results: dict[str, list[str]], metadata: dict[str, Any]) -> GenerationSession:
    """Finish a processing session successfully."""

  async def mark_failed(self, session_id: str, error: str, *, metadata: dict[str, Any] | None = None) -> GenerationSession:
    """Finish a session with an explicit failure message."""

  async def mark_cancelled(self, session_id: str, *, results: dict[str, list[str]] | None = None, reason: str | None = None, metadata: dict[str, Any] | None = None) -> GenerationSession:
    """Finish a session as cancelled, keeping any results accepted so far."""

  async def upsert_model_run(self, session_id: str, model_id: str, **fields: Any) -> ModelRun:
    """Create or update the run record for one (session, model) pair."""

  async def list_model_runs(self, session_id: str) -> list[ModelRun]:
    """Return run records in requested-model order."""

  async def find_stale(self, statuses: tuple[SessionStatus, ...], older_than: str) -> list[GenerationSession]:
    """Return sessions in the given statuses last updated before ``older_than``."""

  async def delete_older_than(self, days: int) -> int:
    """Delete terminal sessions older than ``days`` and return how many were removed."""
