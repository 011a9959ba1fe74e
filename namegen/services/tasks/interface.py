from __future__ import annotations

from enum import Enum
from typing import Protocol


class TaskPriority(str, Enum):
  """Dispatch priority for background generation work."""

  HIGH = "high"
  NORMAL = "normal"
  LOW = "low"


class TaskEnqueuer(Protocol):
  """Interface for enqueuing background tasks."""

  async def enqueue_session(self, session_id: str, *, priority: TaskPriority = TaskPriority.NORMAL) -> bool:
    """Dispatch a session for processing. Returns False when it is already in flight."""
    ...

  async def shutdown(self) -> None:
    """Stop accepting work and wait for or cancel in-flight tasks."""
    ...
