"""Periodic housekeeping for sessions and the result cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from namegen.cache.backends import CacheBackend
from namegen.services.generation import GenerationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenanceReport:
  stale_sessions_failed: int
  sessions_deleted: int
  cache_entries_purged: int


async def run_maintenance_pass(service: GenerationService, cache_backend: CacheBackend) -> MaintenanceReport:
  """Fail abandoned sessions, apply the retention window and drop expired cache entries."""
  stale = await service.fail_stale_sessions()
  deleted = await service.cleanup_old_sessions()

  purged = 0
  # Redis expires keys on its own; only the in-process backend needs purging.
  purge_expired = getattr(cache_backend, "purge_expired", None)
  if purge_expired is not None:
    purged = await purge_expired()

  report = MaintenanceReport(stale_sessions_failed=stale, sessions_deleted=deleted, cache_entries_purged=purged)
  if stale or deleted or purged:
    logger.info("Maintenance pass: %d stale sessions failed, %d sessions deleted, %d cache entries purged", stale, deleted, purged)
  return report


async def maintenance_loop(
  service: GenerationService,
  cache_backend: CacheBackend,
  *,
  interval_seconds: float,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
  """Run maintenance passes forever; a failing pass is logged and retried next interval."""
  while True:
    try:
      await run_maintenance_pass(service, cache_backend)

    except Exception as exc:  # noqa: BLE001
      logger.error("Maintenance pass failed: %s", exc, exc_info=True)

    await sleep(interval_seconds)
