"""Session progress tracking for the batch coordinator."""

from __future__ import annotations

import logging

from namegen.jobs.models import GenerationSession
from namegen.storage.sessions_repo import SessionsRepository

INITIAL_PROGRESS = 10
FANOUT_START = 20
FANOUT_SPAN = 60
CACHE_HIT_PROGRESS = 80
AGGREGATION_PROGRESS = 90

logger = logging.getLogger(__name__)


def fanout_progress(processed: int, total: int) -> int:
  """Map finished models onto the 20..80 band."""
  if total <= 0:
    return FANOUT_START + FANOUT_SPAN
  processed = min(max(processed, 0), total)
  return FANOUT_START + int(processed / total * FANOUT_SPAN)


class SessionProgressTracker:
  """
  Single writer for a session's progress while it is processing.

  Only the coordinator holds a tracker, so per-model tasks never race on
  the progress field. Percentages never decrease.
  """

  def __init__(self, *, session_id: str, sessions_repo: SessionsRepository, total_models: int) -> None:
    self._session_id = session_id
    self._sessions_repo = sessions_repo
    self._total_models = max(total_models, 0)
    self._processed = 0
    self._percent = INITIAL_PROGRESS

  async def set_step(self, percent: int, step: str) -> GenerationSession:
    """Record a named step without finishing a model."""
    self._percent = max(self._percent, percent)
    return await self._sessions_repo.update_progress(self._session_id, self._percent, step)

  async def model_finished(self, model_id: str) -> GenerationSession:
    """Advance progress after one model finished, in completion order."""
    self._processed = min(self._processed + 1, self._total_models)
    percent = fanout_progress(self._processed, self._total_models)
    logger.debug("Session %s: %s finished (%d/%d)", self._session_id, model_id, self._processed, self._total_models)
    return await self.set_step(percent, f"Processing with {model_id}")
