"""Shared FastAPI dependencies: the per-process service graph."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends

from namegen.ai.client import ModelClientAdapter, build_model_client_adapter
from namegen.ai.prompts import PromptOptimizer
from namegen.cache.backends import CacheBackend, build_cache_backend
from namegen.cache.results import ResultCache
from namegen.config import Settings, get_settings
from namegen.jobs.coordinator import BatchCoordinator
from namegen.services.generation import GenerationService
from namegen.services.tasks.factory import get_task_enqueuer
from namegen.services.tasks.interface import TaskEnqueuer
from namegen.storage.factory import get_sessions_repo
from namegen.storage.sessions_repo import SessionsRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
  """Long-lived collaborators wired once per process."""

  settings: Settings
  sessions_repo: SessionsRepository
  cache_backend: CacheBackend
  cache: ResultCache
  adapter: ModelClientAdapter
  optimizer: PromptOptimizer
  coordinator: BatchCoordinator
  enqueuer: TaskEnqueuer
  service: GenerationService


def build_container(
  settings: Settings,
  *,
  sessions_repo: SessionsRepository | None = None,
  cache_backend: CacheBackend | None = None,
  adapter: ModelClientAdapter | None = None,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ServiceContainer:
  """Wire repositories, cache, adapter, coordinator and dispatcher from settings."""
  sessions_repo = sessions_repo or get_sessions_repo(settings)
  cache_backend = cache_backend or build_cache_backend(settings.cache_backend, settings.redis_url)
  cache = ResultCache(
    cache_backend,
    model_result_ttl_seconds=settings.model_result_ttl_seconds,
    combined_result_ttl_seconds=settings.combined_result_ttl_seconds,
    cancel_flag_ttl_seconds=settings.cancel_flag_ttl_seconds,
  )
  adapter = adapter or build_model_client_adapter(settings)
  optimizer = PromptOptimizer()
  coordinator = BatchCoordinator(
    sessions_repo=sessions_repo,
    cache=cache,
    adapter=adapter,
    optimizer=optimizer,
    max_concurrency=settings.max_concurrency,
    task_timeout_seconds=settings.task_timeout_seconds,
    batch_timeout_seconds=settings.batch_timeout_seconds,
    max_attempts=settings.max_attempts,
    retry_delays=settings.retry_backoff_seconds,
    names_per_model=settings.names_per_model,
    sleep=sleep,
  )
  enqueuer = get_task_enqueuer(settings, coordinator.run)
  service = GenerationService(settings=settings, sessions_repo=sessions_repo, cache=cache, adapter=adapter, enqueuer=enqueuer)
  return ServiceContainer(
    settings=settings,
    sessions_repo=sessions_repo,
    cache_backend=cache_backend,
    cache=cache,
    adapter=adapter,
    optimizer=optimizer,
    coordinator=coordinator,
    enqueuer=enqueuer,
    service=service,
  )


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
  """Return the process-wide container, building it on first use."""
  global _container
  if _container is None:
    _container = build_container(get_settings())
    logger.info("Service container initialized (cache=%s, mock_providers=%s)", _container.settings.cache_backend, _container.settings.mock_providers)
  return _container


async def shutdown_container() -> None:
  """Stop background workers and close network clients."""
  global _container
  if _container is None:
    return

  await _container.enqueuer.shutdown()
  await _container.adapter.aclose()
  aclose = getattr(_container.cache_backend, "aclose", None)
  if aclose is not None:
    await aclose()
  _container = None


def get_generation_service(container: ServiceContainer = Depends(get_container)) -> GenerationService:  # noqa: B008
  return container.service
