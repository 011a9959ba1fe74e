from __future__ import annotations

import logging

from namegen.config import Settings
from namegen.storage.memory_sessions_repo import InMemorySessionsRepository
from namegen.storage.postgres_sessions_repo import PostgresSessionsRepository
from namegen.storage.sessions_repo import SessionsRepository

logger = logging.getLogger(__name__)


def get_sessions_repo(settings: Settings) -> SessionsRepository:
  """Return the active sessions repository."""

  # Postgres when a DSN is configured; in-process storage otherwise.
  if settings.pg_dsn:
    return PostgresSessionsRepository()

  if settings.environment == "production":
    raise ValueError("NAMEGEN_PG_DSN must be set to enable Postgres persistence in production.")

  logger.warning("NAMEGEN_PG_DSN not set; sessions are stored in memory and lost on restart")
  return InMemorySessionsRepository()
