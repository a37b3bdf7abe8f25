"""Postgres-backed repository for apps and their screens."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update

from app.core.database import require_session_factory
from app.schema.sql import App, AppScreen
from app.storage.artifacts_repo import AppRecord, ArtifactsRepository, ScreenRecord
from app.utils.time import now_iso


class PostgresArtifactsRepository(ArtifactsRepository):
  """Persist app artifacts to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_app(self, record: AppRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        App(
          app_id=record.app_id,
          owner_id=record.owner_id,
          name=record.name,
          subtitle=record.subtitle,
          description=record.description,
          category=record.category,
          style_guide=record.style_guide,
          icon_storage_id=record.icon_storage_id,
          cover_image_storage_id=record.cover_image_storage_id,
          cover_video_storage_id=record.cover_video_storage_id,
          concept_id=record.concept_id,
          created_at=record.created_at,
          updated_at=record.updated_at,
        )
      )
      await session.commit()

  async def get_app(self, app_id: str) -> AppRecord | None:
    async with self._session_factory() as session:
      row = await session.get(App, app_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_app(  # pylint: disable=too-many-arguments
    self,
    app_id: str,
    *,
    name: str | None = None,
    subtitle: str | None = None,
    description: str | None = None,
    category: str | None = None,
    style_guide: str | None = None,
    icon_storage_id: str | None = None,
    cover_image_storage_id: str | None = None,
    cover_video_storage_id: str | None = None,
  ) -> AppRecord | None:
    fields = {
      "name": name,
      "subtitle": subtitle,
      "description": description,
      "category": category,
      "style_guide": style_guide,
      "icon_storage_id": icon_storage_id,
      "cover_image_storage_id": cover_image_storage_id,
      "cover_video_storage_id": cover_video_storage_id,
    }
    values: dict[str, Any] = {key: value for key, value in fields.items() if value is not None}
    values["updated_at"] = now_iso()
    stmt = update(App).where(App.app_id == app_id).values(**values).returning(App).execution_options(synchronize_session=False)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def add_screen(self, record: ScreenRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        AppScreen(
          screen_id=record.screen_id,
          app_id=record.app_id,
          position=record.position,
          name=record.name,
          storage_id=record.storage_id,
          width=record.width,
          height=record.height,
          size_bytes=record.size_bytes,
          created_at=record.created_at,
        )
      )
      await session.commit()

  async def list_screens(self, app_id: str) -> list[ScreenRecord]:
    async with self._session_factory() as session:
      stmt = select(AppScreen).where(AppScreen.app_id == app_id).order_by(AppScreen.position.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [
        ScreenRecord(screen_id=row.screen_id, app_id=row.app_id, position=row.position, name=row.name, storage_id=row.storage_id, width=row.width, height=row.height, size_bytes=row.size_bytes, created_at=row.created_at)
        for row in rows
      ]

  def _model_to_record(self, row: App) -> AppRecord:
    return AppRecord(
      app_id=row.app_id,
      owner_id=row.owner_id,
      name=row.name,
      description=row.description,
      created_at=row.created_at,
      updated_at=row.updated_at,
      subtitle=row.subtitle,
      category=row.category,
      style_guide=row.style_guide,
      icon_storage_id=row.icon_storage_id,
      cover_image_storage_id=row.cover_image_storage_id,
      cover_video_storage_id=row.cover_video_storage_id,
      concept_id=row.concept_id,
    )
