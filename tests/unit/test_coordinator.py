from __future__ import annotations

import asyncio

import httpx
import pytest

from namegen.ai.client import ModelClientAdapter
from namegen.ai.errors import ProviderError, ProviderErrorKind
from namegen.jobs.coordinator import CANCELLED_MESSAGE, NO_RESULTS_MESSAGE
from namegen.jobs.models import SessionSpec
from namegen.storage.memory_sessions_repo import InMemorySessionsRepository
from tests.fakes import TEST_REGISTRY, ClockSleep, FakeClock, Gate, ScriptedProvider

COFFEE = "Artisanal coffee roastery with a focus on single-origin beans"
GPT_NAMES = '["BeanLogic", "RoastHub", "CremaCore"]'
CLAUDE_NAMES = '["Origin & Ember", "Slow Pour Co."]'


async def _create(sessions_repo, models=("gpt-4o", "claude-3.5-sonnet"), description=COFFEE, **spec_overrides) -> str:
  spec = SessionSpec(business_description=description, generation_mode="creative", requested_models=list(models), **spec_overrides)
  return await sessions_repo.create(spec)


async def _eventually(predicate, *, attempts: int = 200) -> None:
  for _ in range(attempts):
    if await predicate():
      return
    await asyncio.sleep(0.01)
  raise AssertionError("condition not reached")


class RecordingSessionsRepository(InMemorySessionsRepository):
  def __init__(self) -> None:
    super().__init__()
    self.progress: list[int] = []

  async def update_progress(self, session_id, percent, step=None):
    session = await super().update_progress(session_id, percent, step)
    self.progress.append(session.progress_percentage)
    return session


@pytest.mark.anyio
async def test_two_models_complete_and_populate_cache(provider, sessions_repo, result_cache, make_coordinator):
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", CLAUDE_NAMES)
  session_id = await _create(sessions_repo)

  final = await make_coordinator().run(session_id)

  assert final.status == "completed"
  assert final.progress_percentage == 100
  assert final.results == {"gpt-4o": ["BeanLogic", "RoastHub", "CremaCore"], "claude-3.5-sonnet": ["Origin & Ember", "Slow Pour Co."]}
  assert final.execution_metadata["source"] == "ai_generation"
  assert final.execution_metadata["models_processed"] == ["gpt-4o", "claude-3.5-sonnet"]
  assert final.execution_metadata["total_names"] == 5
  assert final.execution_metadata["success_rate"] == 100.0

  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["gpt-4o"].status == "completed"
  assert runs["claude-3.5-sonnet"].names_generated == 2

  combined = await result_cache.get_combined(COFFEE, "creative", False, ["claude-3.5-sonnet", "gpt-4o"])
  assert combined is not None
  assert combined.result_count == 5


@pytest.mark.anyio
async def test_identical_request_is_served_from_cache(provider, sessions_repo, make_coordinator):
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", CLAUDE_NAMES)
  coordinator = make_coordinator()
  first = await coordinator.run(await _create(sessions_repo))
  calls_after_first = provider.call_count()

  second_id = await _create(sessions_repo, models=("claude-3.5-sonnet", "gpt-4o"), description=f"  {COFFEE.upper()} ")
  second = await coordinator.run(second_id)

  assert provider.call_count() == calls_after_first
  assert second.status == "completed"
  assert second.results == first.results
  assert second.execution_metadata["source"] == "cache"
  assert {run.status for run in await sessions_repo.list_model_runs(second_id)} == {"completed"}


@pytest.mark.anyio
async def test_concurrent_runs_process_session_once(provider, sessions_repo, make_coordinator):
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", CLAUDE_NAMES)
  session_id = await _create(sessions_repo)
  coordinator = make_coordinator()

  outcomes = await asyncio.gather(coordinator.run(session_id), coordinator.run(session_id))

  assert sum(outcome is None for outcome in outcomes) == 1
  assert provider.call_count("gpt-4o") == 1
  assert provider.call_count("claude-3.5-sonnet") == 1


@pytest.mark.anyio
async def test_partial_failure_still_completes(provider, sessions_repo, make_coordinator):
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", ProviderError(ProviderErrorKind.INVALID_CREDENTIALS, "invalid x-api-key"))
  session_id = await _create(sessions_repo)

  final = await make_coordinator().run(session_id)

  assert final.status == "completed"
  assert list(final.results) == ["gpt-4o"]
  assert final.execution_metadata["models_failed"] == ["claude-3.5-sonnet"]
  assert final.execution_metadata["success_rate"] == 50.0
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["claude-3.5-sonnet"].status == "failed"
  assert runs["claude-3.5-sonnet"].error_kind == "invalid_credentials"
  assert provider.call_count("claude-3.5-sonnet") == 1


@pytest.mark.anyio
async def test_transient_failure_is_retried_with_backoff(provider, sessions_repo, sleep, make_coordinator):
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", ProviderError(ProviderErrorKind.RATE_LIMITED, "429"), CLAUDE_NAMES)
  session_id = await _create(sessions_repo)

  final = await make_coordinator().run(session_id)

  assert final.status == "completed"
  assert set(final.results) == {"gpt-4o", "claude-3.5-sonnet"}
  assert sleep.delays == [30.0]
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["claude-3.5-sonnet"].attempts == 2


@pytest.mark.anyio
async def test_total_failure_marks_session_failed(provider, sessions_repo, result_cache, make_coordinator):
  provider.script("gpt-4o", ProviderError(ProviderErrorKind.MODEL_NOT_FOUND, "gone"))
  provider.script("claude-3.5-sonnet", ProviderError(ProviderErrorKind.FORBIDDEN, "nope"))
  session_id = await _create(sessions_repo)

  final = await make_coordinator().run(session_id)

  assert final.status == "failed"
  assert final.error_message == NO_RESULTS_MESSAGE
  assert final.results == {}
  assert final.failed_at is not None
  assert await result_cache.get_combined(COFFEE, "creative", False, ["gpt-4o", "claude-3.5-sonnet"]) is None


@pytest.mark.anyio
async def test_progress_is_monotonic(provider, result_cache, make_coordinator):
  repo = RecordingSessionsRepository()
  for model_id in ("gpt-4o", "claude-3.5-sonnet", "gemini-1.5-pro", "grok-beta"):
    provider.script(model_id, GPT_NAMES)
  session_id = await _create(repo, models=("gpt-4o", "claude-3.5-sonnet", "gemini-1.5-pro", "grok-beta"))

  final = await make_coordinator(sessions_repo=repo).run(session_id)

  assert final.progress_percentage == 100
  assert repo.progress == sorted(repo.progress)
  assert repo.progress[0] == 20
  assert 80 in repo.progress
  assert repo.progress[-1] == 90


@pytest.mark.anyio
async def test_cancel_flag_before_start_skips_providers(provider, sessions_repo, result_cache, make_coordinator):
  session_id = await _create(sessions_repo)
  await result_cache.set_cancelled(session_id)

  final = await make_coordinator().run(session_id)

  assert final.status == "cancelled"
  assert provider.call_count() == 0
  assert {run.status for run in await sessions_repo.list_model_runs(session_id)} == {"cancelled"}


@pytest.mark.anyio
async def test_cancellation_keeps_accepted_results_and_discards_late_ones(provider, sessions_repo, result_cache, make_coordinator):
  fast, slow = Gate(GPT_NAMES), Gate(CLAUDE_NAMES)
  provider.script("gpt-4o", fast)
  provider.script("claude-3.5-sonnet", slow)
  session_id = await _create(sessions_repo)

  run = asyncio.create_task(make_coordinator().run(session_id))
  await _eventually(lambda: _entered(slow))
  fast.release.set()

  async def gpt_accepted() -> bool:
    session = await sessions_repo.get(session_id)
    return session.progress_percentage >= 50

  await _eventually(gpt_accepted)
  await result_cache.set_cancelled(session_id)
  slow.release.set()
  final = await run

  assert final.status == "cancelled"
  assert final.error_message == CANCELLED_MESSAGE
  assert final.results == {"gpt-4o": ["BeanLogic", "RoastHub", "CremaCore"]}
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["gpt-4o"].status == "completed"
  assert runs["claude-3.5-sonnet"].status == "cancelled"
  assert await result_cache.get_combined(COFFEE, "creative", False, ["gpt-4o", "claude-3.5-sonnet"]) is None


async def _entered(gate: Gate) -> bool:
  return gate.entered.is_set()


@pytest.mark.anyio
async def test_batch_timeout_abandons_slow_models(provider, sessions_repo, make_coordinator):
  stuck = Gate()
  provider.script("gpt-4o", GPT_NAMES)
  provider.script("claude-3.5-sonnet", stuck)
  session_id = await _create(sessions_repo)

  final = await make_coordinator(batch_timeout_seconds=0.2).run(session_id)

  assert final.status == "completed"
  assert list(final.results) == ["gpt-4o"]
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["claude-3.5-sonnet"].status == "failed"
  assert runs["claude-3.5-sonnet"].error_kind == "timeout"


@pytest.mark.anyio
async def test_fan_out_respects_concurrency_limit(provider, sessions_repo, make_coordinator):
  models = ("gpt-4o", "gpt-4o-mini", "claude-3.5-sonnet", "gemini-1.5-pro", "grok-beta")
  active = 0
  peak = 0

  async def tracked(prompt, params):
    nonlocal active, peak
    active += 1
    peak = max(peak, active)
    await asyncio.sleep(0.02)
    active -= 1
    return GPT_NAMES

  for model_id in models:
    provider.script(model_id, tracked)
  session_id = await _create(sessions_repo, models=models)

  final = await make_coordinator(max_concurrency=2).run(session_id)

  assert final.status == "completed"
  assert len(final.results) == 5
  assert peak == 2


@pytest.mark.anyio
async def test_run_skips_session_that_is_not_pending(sessions_repo, make_coordinator):
  session_id = await _create(sessions_repo)
  await sessions_repo.mark_cancelled(session_id)

  assert await make_coordinator().run(session_id) is None


def _rate_limited(retry_after: str | None = None) -> httpx.HTTPStatusError:
  request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
  headers = {"retry-after": retry_after} if retry_after is not None else {}
  response = httpx.Response(429, request=request, headers=headers, text="rate limit exceeded")
  return httpx.HTTPStatusError("429 Too Many Requests", request=request, response=response)


def _clocked_adapter(provider: ScriptedProvider, clock: FakeClock) -> ModelClientAdapter:
  return ModelClientAdapter({name: provider for name in ("openai", "anthropic", "gemini", "xai")}, registry=TEST_REGISTRY, rate_limit_cooldown_seconds=60, clock=clock)


@pytest.mark.anyio
async def test_rate_limited_model_gets_every_attempt(provider, sessions_repo, make_coordinator):
  clock = FakeClock()
  sleep = ClockSleep(clock)
  provider.script("gpt-4o", _rate_limited())
  provider.script("claude-3.5-sonnet", CLAUDE_NAMES)
  session_id = await _create(sessions_repo)

  final = await make_coordinator(adapter=_clocked_adapter(provider, clock), sleep=sleep).run(session_id)

  assert provider.call_count("gpt-4o") == 3
  # Each wait covers the cooldown window opened by the previous 429.
  assert sleep.delays == [60.0, 60.0]
  assert final.status == "completed"
  assert list(final.results) == ["claude-3.5-sonnet"]
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["gpt-4o"].status == "failed"
  assert runs["gpt-4o"].error_kind == "rate_limited"
  assert runs["gpt-4o"].attempts == 3


@pytest.mark.anyio
async def test_rate_limit_retry_honours_retry_after(provider, sessions_repo, make_coordinator):
  clock = FakeClock()
  sleep = ClockSleep(clock)
  provider.script("gpt-4o", _rate_limited("90"), GPT_NAMES)
  session_id = await _create(sessions_repo, models=("gpt-4o",))

  final = await make_coordinator(adapter=_clocked_adapter(provider, clock), sleep=sleep).run(session_id)

  assert final.status == "completed"
  assert final.results == {"gpt-4o": ["BeanLogic", "RoastHub", "CremaCore"]}
  assert sleep.delays == [90.0]
  assert provider.call_count("gpt-4o") == 2


@pytest.mark.anyio
async def test_model_cooling_down_from_another_session_waits_and_retries(provider, sessions_repo, make_coordinator):
  clock = FakeClock()
  sleep = ClockSleep(clock)
  adapter = _clocked_adapter(provider, clock)
  adapter.record_rate_limit("gpt-4o")
  provider.script("gpt-4o", GPT_NAMES)
  session_id = await _create(sessions_repo, models=("gpt-4o",))

  final = await make_coordinator(adapter=adapter, sleep=sleep).run(session_id)

  assert final.status == "completed"
  assert sleep.delays == [60.0]
  # The cooled-down attempt never reached the provider.
  assert provider.call_count("gpt-4o") == 1


@pytest.mark.anyio
async def test_results_are_merged_in_completion_order(provider, sessions_repo, make_coordinator):
  slow = Gate(GPT_NAMES)
  provider.script("gpt-4o", slow)
  provider.script("claude-3.5-sonnet", CLAUDE_NAMES)
  session_id = await _create(sessions_repo)

  run = asyncio.create_task(make_coordinator().run(session_id))

  async def claude_accepted() -> bool:
    session = await sessions_repo.get(session_id)
    return session.progress_percentage >= 50

  await _eventually(claude_accepted)
  slow.release.set()
  final = await run

  assert list(final.results) == ["claude-3.5-sonnet", "gpt-4o"]
  assert final.execution_metadata["models_processed"] == ["claude-3.5-sonnet", "gpt-4o"]


@pytest.mark.anyio
async def test_cancellation_lets_in_flight_calls_finish_and_drops_them(provider, sessions_repo, result_cache, make_coordinator):
  fast, mid, slow = Gate(GPT_NAMES), Gate(CLAUDE_NAMES), Gate('["LateBloom"]')
  provider.script("gpt-4o", fast)
  provider.script("claude-3.5-sonnet", mid)
  provider.script("gemini-1.5-pro", slow)
  session_id = await _create(sessions_repo, models=("gpt-4o", "claude-3.5-sonnet", "gemini-1.5-pro"))

  run = asyncio.create_task(make_coordinator().run(session_id))
  for gate in (fast, mid, slow):
    await _eventually(lambda gate=gate: _entered(gate))
  fast.release.set()

  async def gpt_accepted() -> bool:
    session = await sessions_repo.get(session_id)
    return session.progress_percentage > 20

  await _eventually(gpt_accepted)
  await result_cache.set_cancelled(session_id)
  mid.release.set()
  await asyncio.sleep(0.05)

  assert mid.finished is True
  assert not run.done()

  slow.release.set()
  final = await run

  assert slow.finished is True
  assert final.status == "cancelled"
  assert final.results == {"gpt-4o": ["BeanLogic", "RoastHub", "CremaCore"]}
  runs = {run.model_id: run for run in await sessions_repo.list_model_runs(session_id)}
  assert runs["claude-3.5-sonnet"].status == "cancelled"
  assert runs["gemini-1.5-pro"].status == "cancelled"
