from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from namegen.config import get_settings


class Base(DeclarativeBase):
  pass


engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def database_url(raw: str | None = None) -> str | None:
  """Build the SQLAlchemy database URL, forcing the asyncpg driver for Postgres DSNs."""
  dsn = raw if raw is not None else get_settings().pg_dsn
  if dsn and dsn.startswith("postgresql://"):
    dsn = dsn.replace("postgresql://", "postgresql+asyncpg://", 1)

  return dsn


def get_db_engine() -> AsyncEngine | None:
  global engine
  settings = get_settings()
  url = database_url()
  if engine is None and url:
    connect_args = {"timeout": settings.pg_connect_timeout} if url.startswith("postgresql+asyncpg://") else {}
    engine = create_async_engine(url, echo=settings.debug, pool_pre_ping=True, connect_args=connect_args)
  return engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return SessionLocal


async def dispose_engine() -> None:
  """Close pooled connections on shutdown."""
  global engine, SessionLocal
  if engine is not None:
    await engine.dispose()
  engine = None
  SessionLocal = None
