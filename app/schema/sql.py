from __future__ import annotations

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class App(Base):
  __tablename__ = "apps"

  app_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  subtitle: Mapped[str | None] = mapped_column(String, nullable=True)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  category: Mapped[str | None] = mapped_column(String, nullable=True)
  style_guide: Mapped[str | None] = mapped_column(Text, nullable=True)
  icon_storage_id: Mapped[str | None] = mapped_column(String, nullable=True)
  cover_image_storage_id: Mapped[str | None] = mapped_column(String, nullable=True)
  cover_video_storage_id: Mapped[str | None] = mapped_column(String, nullable=True)
  concept_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class AppScreen(Base):
  __tablename__ = "app_screens"
  __table_args__ = (Index("ix_app_screens_app_position", "app_id", "position"),)

  screen_id: Mapped[str] = mapped_column(String, primary_key=True)
  app_id: Mapped[str] = mapped_column(ForeignKey("apps.app_id", ondelete="CASCADE"), nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  name: Mapped[str] = mapped_column(String, nullable=False)
  storage_id: Mapped[str] = mapped_column(String, nullable=False)
  width: Mapped[int] = mapped_column(Integer, nullable=False)
  height: Mapped[int] = mapped_column(Integer, nullable=False)
  size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class AppGenerationJob(Base):
  __tablename__ = "app_generation_jobs"
  __table_args__ = (Index("ix_app_generation_jobs_status_updated", "status", "updated_at"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  app_id: Mapped[str] = mapped_column(ForeignKey("apps.app_id", ondelete="CASCADE"), nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  current_step: Mapped[str] = mapped_column(String, nullable=False)
  progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  screens_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  screens_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  failed_screens: Mapped[list[dict] | None] = mapped_column(JSONB, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class MediaGenerationJob(Base):
  __tablename__ = "media_generation_jobs"
  __table_args__ = (Index("ix_media_generation_jobs_status_updated", "status", "updated_at"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  app_id: Mapped[str] = mapped_column(ForeignKey("apps.app_id", ondelete="CASCADE"), nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class ConceptGenerationJob(Base):
  __tablename__ = "concept_generation_jobs"
  __table_args__ = (Index("ix_concept_generation_jobs_status_updated", "status", "updated_at"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  requested_count: Mapped[int] = mapped_column(Integer, nullable=False)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class AppConcept(Base):
  __tablename__ = "app_concepts"
  __table_args__ = (Index("ix_app_concepts_job_position", "job_id", "position"),)

  concept_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("concept_generation_jobs.job_id", ondelete="CASCADE"), nullable=False)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  descriptor_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  icon_storage_id: Mapped[str | None] = mapped_column(String, nullable=True)
  cover_image_storage_id: Mapped[str | None] = mapped_column(String, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
