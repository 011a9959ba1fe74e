from __future__ import annotations

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from namegen.core.database import Base

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class GenerationSessionRow(Base):
  __tablename__ = "generation_sessions"
  __table_args__ = (Index("ix_generation_sessions_status_updated", "status", "updated_at"),)

  session_id: Mapped[str] = mapped_column(String, primary_key=True)
  business_description: Mapped[str] = mapped_column(Text, nullable=False)
  generation_mode: Mapped[str] = mapped_column(String, nullable=False)
  deep_thinking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  requested_models: Mapped[list] = mapped_column(JSONType, nullable=False)
  generation_strategy: Mapped[str] = mapped_column(String, nullable=False)
  custom_parameters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_step: Mapped[str | None] = mapped_column(String, nullable=True)
  results: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
  execution_metadata: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
  failed_at: Mapped[str | None] = mapped_column(String, nullable=True)
  cancelled_at: Mapped[str | None] = mapped_column(String, nullable=True)


class ModelRunRow(Base):
  __tablename__ = "generation_model_runs"
  __table_args__ = (UniqueConstraint("session_id", "model_id", name="ux_generation_model_runs_session_model"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  session_id: Mapped[str] = mapped_column(ForeignKey("generation_sessions.session_id", ondelete="CASCADE"), nullable=False, index=True)
  model_id: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  execution_time_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
  names_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_kind: Mapped[str | None] = mapped_column(String, nullable=True)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
