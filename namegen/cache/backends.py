"""Key-value cache backends with per-entry TTL."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from redis import asyncio as redis_asyncio

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
  """Minimal async key-value store with expiry."""

  async def get(self, key: str) -> bytes | None:
    """Return the stored value, or None when absent or expired."""

  async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
    """Store a value that expires after ``ttl_seconds``."""

  async def delete(self, key: str) -> None:
    """Remove a key if present."""


class InMemoryCacheBackend:
  """Process-local cache used for development and tests."""

  def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
    self._clock = clock
    self._entries: dict[str, tuple[bytes, float]] = {}
    self._lock = asyncio.Lock()

  async def get(self, key: str) -> bytes | None:
    async with self._lock:
      entry = self._entries.get(key)
      if entry is None:
        return None

      value, expires_at = entry
      if expires_at <= self._clock():
        del self._entries[key]
        return None

      return value

  async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
    async with self._lock:
      self._entries[key] = (value, self._clock() + ttl_seconds)

  async def delete(self, key: str) -> None:
    async with self._lock:
      self._entries.pop(key, None)

  async def purge_expired(self) -> int:
    """Drop expired entries and return how many were removed."""
    async with self._lock:
      now = self._clock()
      expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
      for key in expired:
        del self._entries[key]
      return len(expired)


class RedisCacheBackend:
  """Redis-backed cache shared across workers."""

  def __init__(self, client: redis_asyncio.Redis, *, namespace: str = "namegen") -> None:
    self._client = client
    self._namespace = namespace

  @classmethod
  def from_url(cls, url: str, *, namespace: str = "namegen") -> RedisCacheBackend:
    client = redis_asyncio.Redis.from_url(url, socket_timeout=2.0, socket_connect_timeout=2.0)
    return cls(client, namespace=namespace)

  def _key(self, key: str) -> str:
    return f"{self._namespace}:{key}"

  async def get(self, key: str) -> bytes | None:
    return await self._client.get(self._key(key))

  async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
    await self._client.set(self._key(key), value, ex=ttl_seconds)

  async def delete(self, key: str) -> None:
    await self._client.delete(self._key(key))

  async def aclose(self) -> None:
    await self._client.aclose()


def build_cache_backend(backend: str, redis_url: str | None = None) -> CacheBackend:
  """Return the configured cache backend."""
  if backend == "redis":
    if not redis_url:
      raise ValueError("NAMEGEN_REDIS_URL must be set when NAMEGEN_CACHE_BACKEND is 'redis'.")
    return RedisCacheBackend.from_url(redis_url)
  return InMemoryCacheBackend()
