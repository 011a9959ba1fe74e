from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from namegen.jobs.models import GenerationMode, GenerationStrategy, ModelRunStatus, SessionStatus
from namegen.services.tasks.interface import TaskPriority

MAX_DESCRIPTION_CHARS = 2000
MAX_MODELS_PER_SESSION = 10


class CreateSessionRequest(BaseModel):
  """Request payload for a multi-model name generation session."""

  business_description: StrictStr = Field(min_length=1, max_length=MAX_DESCRIPTION_CHARS, description="What the business does.")
  generation_mode: GenerationMode = "creative"
  deep_thinking: bool = False
  models: list[StrictStr] = Field(default_factory=list, max_length=MAX_MODELS_PER_SESSION, description="Model ids; duplicates are dropped, order is kept.")
  generation_strategy: GenerationStrategy = "parallel"
  custom_parameters: dict[str, Any] = Field(default_factory=dict)
  auto_start: bool = Field(default=True, description="Dispatch the session immediately after creation.")
  priority: TaskPriority = TaskPriority.NORMAL
  model_config = ConfigDict(extra="forbid")

  @field_validator("business_description")
  @classmethod
  def validate_description(cls, value: str) -> str:
    """Reject whitespace-only descriptions."""
    stripped = value.strip()
    if not stripped:
      raise ValueError("Business description must not be blank.")
    return stripped

  @field_validator("models")
  @classmethod
  def dedupe_models(cls, models: list[str]) -> list[str]:
    return list(dict.fromkeys(model.strip() for model in models if model.strip()))


class StartSessionRequest(BaseModel):
  priority: TaskPriority = TaskPriority.NORMAL
  model_config = ConfigDict(extra="forbid")


class SessionCreateResponse(BaseModel):
  """Response returned after a session is created."""

  session_id: StrictStr
  status: SessionStatus
  requested_models: list[str]
  generation_strategy: GenerationStrategy
  deep_thinking: bool
  dispatched: bool = False


class SessionStatusResponse(BaseModel):
  """Polling payload for a generation session."""

  session_id: StrictStr
  status: SessionStatus
  progress_percentage: int
  current_step: str | None = None
  results: dict[str, list[str]] = Field(default_factory=dict)
  error_message: str | None = None
  duration_seconds: int | None = None
  is_completed: bool = False
  has_failed: bool = False
  is_cancelled: bool = False
  updated_at: str


class ModelRunStatusResponse(BaseModel):
  status: ModelRunStatus
  execution_time_ms: float | None = None
  names_generated: int = 0
  attempts: int = 0
  error: str | None = None


class SessionDetailsResponse(SessionStatusResponse):
  """Full session view including per-model status."""

  business_description: str
  generation_mode: GenerationMode
  deep_thinking: bool
  generation_strategy: GenerationStrategy
  requested_models: list[str]
  per_model_status: dict[str, ModelRunStatusResponse] = Field(default_factory=dict)
  execution_metadata: dict[str, Any] = Field(default_factory=dict)
  created_at: str
  started_at: str | None = None
  completed_at: str | None = None
  failed_at: str | None = None
  cancelled_at: str | None = None


class ModelInfo(BaseModel):
  id: StrictStr
  name: StrictStr
  description: StrictStr
  provider: StrictStr
  available: bool
  cooling_down: bool = False


class StrategyInfo(BaseModel):
  id: GenerationStrategy
  name: StrictStr
  description: StrictStr
  models: list[str] = Field(default_factory=list)


class CatalogResponse(BaseModel):
  models: list[ModelInfo]
  strategies: list[StrategyInfo]
