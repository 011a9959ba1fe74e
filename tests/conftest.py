from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from namegen.ai.client import ModelClientAdapter
from namegen.ai.prompts import PromptOptimizer
from namegen.cache.backends import InMemoryCacheBackend
from namegen.cache.results import ResultCache
from namegen.jobs.coordinator import BatchCoordinator
from namegen.storage.memory_sessions_repo import InMemorySessionsRepository
from tests.fakes import TEST_REGISTRY, ScriptedProvider, SleepRecorder


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def provider() -> ScriptedProvider:
  return ScriptedProvider()


@pytest.fixture
def adapter(provider: ScriptedProvider) -> ModelClientAdapter:
  return ModelClientAdapter({name: provider for name in ("openai", "anthropic", "gemini", "xai")}, registry=TEST_REGISTRY)


@pytest.fixture
def sessions_repo() -> InMemorySessionsRepository:
  return InMemorySessionsRepository()


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
  return InMemoryCacheBackend()


@pytest.fixture
def result_cache(cache_backend: InMemoryCacheBackend) -> ResultCache:
  return ResultCache(cache_backend)


@pytest.fixture
def sleep() -> SleepRecorder:
  return SleepRecorder()


@pytest.fixture
def make_coordinator(sessions_repo, result_cache, adapter, sleep) -> Callable[..., BatchCoordinator]:
  def _make(**overrides: Any) -> BatchCoordinator:
    options: dict[str, Any] = {
      "sessions_repo": sessions_repo,
      "cache": result_cache,
      "adapter": adapter,
      "optimizer": PromptOptimizer(),
      "sleep": sleep,
    }
    options.update(overrides)
    return BatchCoordinator(**options)

  return _make
