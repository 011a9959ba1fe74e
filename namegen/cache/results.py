"""Typed result cache for per-model and combined generation results."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import msgspec

from namegen.cache.backends import CacheBackend
from namegen.cache.keys import cancel_key, combined_key, normalize_models, per_model_key
from namegen.jobs.models import CombinedEntry, PerModelResult
from namegen.utils.ids import now_iso

logger = logging.getLogger(__name__)

_CANCEL_MARKER = b"1"


class ResultCache:
  """
  Short-lived store of per-model and per-combination results.

  Reads that fail are logged and reported as a miss. Writes that fail are
  logged and swallowed so generation proceeds un-cached.
  """

  def __init__(self, backend: CacheBackend, *, model_result_ttl_seconds: int = 600, combined_result_ttl_seconds: int = 86400, cancel_flag_ttl_seconds: int = 3600) -> None:
    self._backend = backend
    self._model_ttl = model_result_ttl_seconds
    self._combined_ttl = combined_result_ttl_seconds
    self._cancel_ttl = cancel_flag_ttl_seconds
    self._model_decoder = msgspec.json.Decoder(PerModelResult)
    self._combined_decoder = msgspec.json.Decoder(CombinedEntry)

  async def _read(self, key: str) -> bytes | None:
    try:
      return await self._backend.get(key)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Cache read failed for %s: %s", key, exc)
      return None

  async def _write(self, key: str, value: bytes, ttl_seconds: int) -> bool:
    try:
      await self._backend.put(key, value, ttl_seconds)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Cache write failed for %s: %s", key, exc)
      return False
    return True

  async def get_model_result(self, session_id: str, model_id: str) -> PerModelResult | None:
    """Return the latest attempt's result, or None when absent or expired."""
    key = per_model_key(session_id, model_id)
    raw = await self._read(key)
    if raw is None:
      return None

    try:
      return self._model_decoder.decode(raw)
    except msgspec.DecodeError as exc:
      logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
      return None

  async def put_model_result(self, session_id: str, result: PerModelResult) -> bool:
    """Store one attempt's result, superseding any earlier attempt."""
    return await self._write(per_model_key(session_id, result.model_id), msgspec.json.encode(result), self._model_ttl)

  async def get_combined(self, description: str, mode: str, deep_thinking: bool, models: Iterable[str]) -> CombinedEntry | None:
    key = combined_key(description, mode, deep_thinking, models)
    raw = await self._read(key)
    if raw is None:
      return None

    try:
      return self._combined_decoder.decode(raw)
    except msgspec.DecodeError as exc:
      logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
      return None

  async def put_combined(self, description: str, mode: str, deep_thinking: bool, models: Iterable[str], results: dict[str, list[str]]) -> bool:
    """Store the merged result for a request shape."""
    model_list = normalize_models(models)
    entry = CombinedEntry(results=results, models=model_list, generated_at=now_iso(), result_count=sum(len(names) for names in results.values()))
    key = combined_key(description, mode, deep_thinking, model_list)
    return await self._write(key, msgspec.json.encode(entry), self._combined_ttl)

  async def set_cancelled(self, session_id: str) -> bool:
    """Raise the batch cancellation flag for a session."""
    return await self._write(cancel_key(session_id), _CANCEL_MARKER, self._cancel_ttl)

  async def is_cancelled(self, session_id: str) -> bool:
    return await self._read(cancel_key(session_id)) is not None

  async def clear_cancelled(self, session_id: str) -> None:
    try:
      await self._backend.delete(cancel_key(session_id))
    except Exception as exc:  # noqa: BLE001
      logger.warning("Cache delete failed for session %s: %s", session_id, exc)
