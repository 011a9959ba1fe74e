"""Identifier and timestamp utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def generate_session_id() -> str:
  """Return a new generation session identifier."""
  return f"session_{uuid.uuid4()}"


def now_iso() -> str:
  """Return the current UTC time as an ISO-8601 string."""
  return datetime.now(UTC).strftime(_DATE_FORMAT)


def parse_iso(value: str) -> datetime:
  """Parse a timestamp produced by now_iso."""
  return datetime.fromisoformat(value.replace("Z", "+00:00"))


def iso_ago(*, days: float = 0, seconds: float = 0) -> str:
  """Return the UTC time ``days``/``seconds`` in the past in now_iso format."""
  return (datetime.now(UTC) - timedelta(days=days, seconds=seconds)).strftime(_DATE_FORMAT)
