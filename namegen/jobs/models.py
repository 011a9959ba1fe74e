"""Domain models for multi-model name generation sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, get_args

import msgspec

SessionStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
GenerationMode = Literal["creative", "professional", "brandable", "tech-focused"]
GenerationStrategy = Literal["parallel", "quick", "comprehensive", "custom"]
ModelRunStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
ResultStatus = Literal["running", "completed", "failed", "cancelled"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
GENERATION_MODES: tuple[str, ...] = get_args(GenerationMode)


@dataclass(frozen=True)
class SessionSpec:
  """Caller-supplied shape of a generation request."""

  business_description: str
  generation_mode: GenerationMode
  requested_models: list[str]
  deep_thinking: bool = False
  generation_strategy: GenerationStrategy = "parallel"
  custom_parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationSession:
  """Represents one user-initiated request to generate names across models."""

  session_id: str
  business_description: str
  generation_mode: GenerationMode
  deep_thinking: bool
  requested_models: list[str]
  generation_strategy: GenerationStrategy
  status: SessionStatus
  created_at: str
  updated_at: str
  custom_parameters: dict[str, Any] = field(default_factory=dict)
  progress_percentage: int = 0
  current_step: str | None = None
  results: dict[str, list[str]] = field(default_factory=dict)
  execution_metadata: dict[str, Any] = field(default_factory=dict)
  error_message: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  failed_at: str | None = None
  cancelled_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass
class ModelRun:
  """Status record for one (session, model) pair."""

  session_id: str
  model_id: str
  status: ModelRunStatus = "pending"
  attempts: int = 0
  execution_time_ms: float | None = None
  names_generated: int = 0
  error: str | None = None
  error_kind: str | None = None
  updated_at: str | None = None

  def as_status_entry(self) -> dict[str, Any]:
    """Return the observability view of this run."""
    return {"status": self.status, "execution_time_ms": self.execution_time_ms, "names_generated": self.names_generated, "attempts": self.attempts, "error": self.error}


@dataclass(frozen=True)
class SessionSnapshot:
  """Read model polled by UI layers."""

  session_id: str
  status: SessionStatus
  progress_percentage: int
  current_step: str | None
  results: dict[str, list[str]]
  error_message: str | None
  duration_seconds: int | None
  is_completed: bool
  has_failed: bool
  is_cancelled: bool
  updated_at: str


class PerModelResult(msgspec.Struct, kw_only=True):
  """Outcome of one generation attempt, stored in the result cache."""

  model_id: str
  status: ResultStatus
  names: list[str] = []
  execution_time_ms: float = 0.0
  error: str | None = None
  error_kind: str | None = None
  attempt: int = 1
  completed_at: str | None = None

  @property
  def names_generated(self) -> int:
    return len(self.names)


class CombinedEntry(msgspec.Struct, kw_only=True):
  """Merged results for a full request shape, stored in the result cache."""

  results: dict[str, list[str]]
  models: list[str]
  generated_at: str
  result_count: int
