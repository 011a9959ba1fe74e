from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from namegen.services.tasks.interface import TaskEnqueuer, TaskPriority

logger = logging.getLogger(__name__)

_PRIORITY_ORDER = {TaskPriority.HIGH: 0, TaskPriority.NORMAL: 1, TaskPriority.LOW: 2}


class LocalTaskEnqueuer(TaskEnqueuer):
  """
  Run sessions in-process on a small pool of asyncio workers.

  Higher priority sessions are picked first; equal priorities run in FIFO
  order. A session already queued or running is not dispatched twice.
  """

  def __init__(self, runner: Callable[[str], Awaitable[Any]], *, workers: int = 4) -> None:
    self._runner = runner
    self._worker_count = max(workers, 1)
    self._queue: asyncio.PriorityQueue[tuple[int, int, str]] | None = None
    self._workers: list[asyncio.Task] = []
    self._counter = itertools.count()
    self._inflight: set[str] = set()

  def _ensure_workers(self) -> asyncio.PriorityQueue[tuple[int, int, str]]:
    # The queue and workers must be created inside the running event loop.
    if self._queue is None:
      self._queue = asyncio.PriorityQueue()
    if not self._workers:
      self._workers = [asyncio.create_task(self._worker(index), name=f"namegen-worker-{index}") for index in range(self._worker_count)]
    return self._queue

  async def enqueue_session(self, session_id: str, *, priority: TaskPriority = TaskPriority.NORMAL) -> bool:
    if session_id in self._inflight:
      logger.info("Session %s already dispatched; ignoring duplicate", session_id)
      return False

    queue = self._ensure_workers()
    self._inflight.add(session_id)
    await queue.put((_PRIORITY_ORDER[TaskPriority(priority)], next(self._counter), session_id))
    logger.info("Dispatched session %s locally (priority=%s)", session_id, TaskPriority(priority).value)
    return True

  def is_inflight(self, session_id: str) -> bool:
    return session_id in self._inflight

  async def _worker(self, index: int) -> None:
    assert self._queue is not None
    while True:
      _, _, session_id = await self._queue.get()
      try:
        await self._runner(session_id)
      except Exception as exc:  # noqa: BLE001
        # The coordinator already recorded the failure on the session.
        logger.error("Worker %d: session %s raised %s", index, session_id, exc, exc_info=True)
      finally:
        self._inflight.discard(session_id)
        self._queue.task_done()

  async def join(self) -> None:
    """Wait until every dispatched session has finished."""
    if self._queue is not None:
      await self._queue.join()

  async def shutdown(self) -> None:
    for worker in self._workers:
      worker.cancel()
    if self._workers:
      await asyncio.gather(*self._workers, return_exceptions=True)
    self._workers = []
    self._queue = None
    self._inflight.clear()
