from __future__ import annotations

import asyncio

import pytest

from namegen.api.deps import build_container
from namegen.cache.backends import InMemoryCacheBackend
from namegen.core import lifespan
from namegen.jobs.maintenance import MaintenanceReport, maintenance_loop, run_maintenance_pass
from namegen.jobs.models import SessionSpec
from namegen.services.generation import STALE_SESSION_MESSAGE, GenerationService
from namegen.storage.memory_sessions_repo import InMemorySessionsRepository
from namegen.utils.ids import iso_ago
from tests.fakes import FakeClock, make_settings


class StopLoop(Exception):
  pass


class CountingSleep:
  """Records loop intervals and stops the loop after a number of passes."""

  def __init__(self, passes: int) -> None:
    self.passes = passes
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)
    if len(self.delays) >= self.passes:
      raise StopLoop()
    await asyncio.sleep(0)


class NullEnqueuer:
  async def enqueue_session(self, session_id, *, priority=None) -> bool:
    return True

  async def shutdown(self) -> None:
    return None


async def _session(repo: InMemorySessionsRepository, *, status: str, age_seconds: float) -> str:
  session_id = await repo.create(SessionSpec(business_description="Artisanal coffee roastery", generation_mode="creative", requested_models=["gpt-4o"]))
  await repo.claim_processing(session_id)
  if status == "completed":
    await repo.mark_completed(session_id, {"gpt-4o": ["BeanLogic"]}, {})
  repo._sessions[session_id].updated_at = iso_ago(seconds=age_seconds)
  return session_id


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryCacheBackend:
  return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def service(sessions_repo, result_cache, adapter) -> GenerationService:
  return GenerationService(settings=make_settings(), sessions_repo=sessions_repo, cache=result_cache, adapter=adapter, enqueuer=NullEnqueuer())


@pytest.mark.anyio
async def test_pass_fails_stale_sessions_deletes_old_ones_and_purges_cache(service, sessions_repo, backend, clock):
  stale_id = await _session(sessions_repo, status="processing", age_seconds=3600)
  fresh_id = await _session(sessions_repo, status="processing", age_seconds=5)
  old_id = await _session(sessions_repo, status="completed", age_seconds=30 * 86400)
  await backend.put("cancel:session_gone", b"1", ttl_seconds=10)
  await backend.put("combined:abc", b"{}", ttl_seconds=600)
  clock.now = 11

  report = await run_maintenance_pass(service, backend)

  assert report == MaintenanceReport(stale_sessions_failed=1, sessions_deleted=1, cache_entries_purged=1)
  stale = await sessions_repo.get(stale_id)
  assert stale.status == "failed"
  assert stale.error_message == STALE_SESSION_MESSAGE
  assert (await sessions_repo.get(fresh_id)).status == "processing"
  assert await sessions_repo.get(old_id) is None
  assert await backend.get("combined:abc") == b"{}"


@pytest.mark.anyio
async def test_pass_skips_purge_for_backends_that_expire_keys(service, sessions_repo):
  class ExpiringBackend:
    async def get(self, key):
      return None

    async def put(self, key, value, ttl_seconds):
      return None

    async def delete(self, key):
      return None

  report = await run_maintenance_pass(service, ExpiringBackend())

  assert report.cache_entries_purged == 0


@pytest.mark.anyio
async def test_loop_repeats_and_survives_failing_pass(service, sessions_repo, backend, monkeypatch):
  calls = 0
  original = service.fail_stale_sessions

  async def flaky_fail_stale_sessions(max_age_seconds=None):
    nonlocal calls
    calls += 1
    if calls == 1:
      raise RuntimeError("database went away")
    return await original(max_age_seconds)

  monkeypatch.setattr(service, "fail_stale_sessions", flaky_fail_stale_sessions)
  stale_id = await _session(sessions_repo, status="processing", age_seconds=3600)
  sleep = CountingSleep(passes=2)

  with pytest.raises(StopLoop):
    await maintenance_loop(service, backend, interval_seconds=120.0, sleep=sleep)

  assert calls == 2
  assert sleep.delays == [120.0, 120.0]
  assert (await sessions_repo.get(stale_id)).status == "failed"


@pytest.mark.anyio
async def test_lifespan_starts_and_stops_maintenance():
  container = build_container(make_settings(mock_providers=True, maintenance_enabled=True, maintenance_interval_seconds=3600.0), sessions_repo=InMemorySessionsRepository())
  stale_id = await _session(container.sessions_repo, status="processing", age_seconds=3600)

  try:
    lifespan._start_maintenance(container)
    task = lifespan._MAINTENANCE_TASK
    assert task is not None

    for _ in range(50):
      if (await container.sessions_repo.get(stale_id)).status == "failed":
        break
      await asyncio.sleep(0.01)

    assert (await container.sessions_repo.get(stale_id)).status == "failed"
    assert not task.done()
  finally:
    await lifespan._stop_maintenance()
    await container.enqueuer.shutdown()

  assert lifespan._MAINTENANCE_TASK is None
  assert task.cancelled()


@pytest.mark.anyio
async def test_lifespan_leaves_maintenance_off_when_disabled():
  container = build_container(make_settings(mock_providers=True, maintenance_enabled=False), sessions_repo=InMemorySessionsRepository())

  lifespan._start_maintenance(container)

  assert lifespan._MAINTENANCE_TASK is None
