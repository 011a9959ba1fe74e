import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from namegen.api.deps import ServiceContainer, get_container, shutdown_container
from namegen.core.database import Base, dispose_engine, get_db_engine
from namegen.core.logging import initialize_logging
from namegen.jobs.maintenance import maintenance_loop

# Background maintenance task owned by the lifespan.
_MAINTENANCE_TASK: asyncio.Task[None] | None = None


def _log_maintenance_failure(task: asyncio.Task[None]) -> None:
  """Log an unexpected exit of the maintenance loop."""
  if task.cancelled():
    return
  exc = task.exception()
  if exc is not None:
    logging.getLogger("namegen.core.lifespan").error("Maintenance loop stopped: %s", exc, exc_info=exc)


def _start_maintenance(container: ServiceContainer) -> None:
  """Schedule stale-session, retention and cache sweeps on the running loop."""
  global _MAINTENANCE_TASK
  logger = logging.getLogger("namegen.core.lifespan")

  if _MAINTENANCE_TASK is not None or not container.settings.maintenance_enabled:
    return

  loop = asyncio.get_running_loop()
  _MAINTENANCE_TASK = loop.create_task(maintenance_loop(container.service, container.cache_backend, interval_seconds=container.settings.maintenance_interval_seconds))
  _MAINTENANCE_TASK.add_done_callback(_log_maintenance_failure)
  logger.info("Maintenance loop started (every %.0fs).", container.settings.maintenance_interval_seconds)


async def _stop_maintenance() -> None:
  global _MAINTENANCE_TASK
  if _MAINTENANCE_TASK is None:
    return

  _MAINTENANCE_TASK.cancel()
  await asyncio.gather(_MAINTENANCE_TASK, return_exceptions=True)
  _MAINTENANCE_TASK = None
  logging.getLogger("namegen.core.lifespan").info("Maintenance loop stopped.")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, storage and the service graph; tear them down on exit."""
  from namegen.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("namegen.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Fall back to stderr logging when the log directory is not writable.
    logging.basicConfig(level=logging.INFO)
    logger.warning("File logging unavailable; continuing with stderr logging.", exc_info=True)

  engine = get_db_engine()
  if engine is not None and settings.environment != "production":
    # Outside production the tables are created on startup; production ships its own DDL.
    import namegen.schema  # noqa: F401

    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured.")

  container = get_container()
  availability = container.adapter.availability()
  logger.info("Model availability: %s", ", ".join(f"{model_id}={'up' if up else 'down'}" for model_id, up in availability.items()))
  _start_maintenance(container)

  yield

  await _stop_maintenance()
  await shutdown_container()
  await dispose_engine()
  logger.info("Shutdown complete.")
