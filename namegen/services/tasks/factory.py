from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from namegen.config import Settings
from namegen.services.tasks.interface import TaskEnqueuer
from namegen.services.tasks.local import LocalTaskEnqueuer


def get_task_enqueuer(settings: Settings, runner: Callable[[str], Awaitable[Any]]) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  # Session-level parallelism mirrors the per-session model fan-out bound.
  return LocalTaskEnqueuer(runner, workers=settings.max_concurrency)
