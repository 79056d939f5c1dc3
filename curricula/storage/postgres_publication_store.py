"""Postgres-backed publication store using SQLAlchemy."""

from __future__ import annotations

import datetime
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curricula.core.database import dispose_engine, get_session_factory
from curricula.publishing.rules import AssetSnapshot, LessonSnapshot, LessonStatus, ProgramStatus
from curricula.schema.content import Lesson, LessonAsset, Program, Term
from curricula.storage.publication_store import ContentIntegrityError, LessonState, PublicationStore, PublicationTransaction


class PostgresPublicationTransaction(PublicationTransaction):
  """Runs publication reads and conditional writes on one open session transaction."""

  def __init__(self, session: AsyncSession) -> None:
    self._session = session

  async def claim_due_lessons(self, *, now: datetime.datetime, limit: int) -> list[str]:
    stmt = (
      select(Lesson.id)
      .where(Lesson.status == LessonStatus.SCHEDULED.value, Lesson.publish_at.is_not(None), Lesson.publish_at <= now)
      .order_by(Lesson.publish_at, Lesson.id)
      .limit(limit)
      .with_for_update(skip_locked=True, of=Lesson)
    )
    result = await self._session.execute(stmt)
    return [str(row) for row in result.scalars().all()]

  async def load_lesson(self, lesson_id: str, *, skip_locked: bool) -> LessonState | None:
    stmt = select(Lesson).where(Lesson.id == lesson_id).with_for_update(skip_locked=skip_locked, of=Lesson)
    lesson = (await self._session.execute(stmt)).scalar_one_or_none()
    if lesson is None:
      return None

    # Resolve the ownership chain without locking the parents.
    term_row = (await self._session.execute(select(Term.program_id).where(Term.id == lesson.term_id))).first()
    if term_row is None:
      raise ContentIntegrityError(lesson.id, f"term {lesson.term_id} not found")
    program_id = str(term_row[0])
    program_row = (await self._session.execute(select(Program.status, Program.published_at).where(Program.id == program_id))).first()
    if program_row is None:
      raise ContentIntegrityError(lesson.id, f"program {program_id} not found")
    program_status, program_published_at = program_row

    asset_rows = (await self._session.execute(select(LessonAsset.language, LessonAsset.variant, LessonAsset.asset_type).where(LessonAsset.lesson_id == lesson.id))).all()
    assets = tuple(AssetSnapshot(language=language, variant=variant, asset_type=asset_type) for language, variant, asset_type in asset_rows)
    snapshot = LessonSnapshot(lesson_id=lesson.id, status=lesson.status, content_language_primary=lesson.content_language_primary, assets=assets, program_status=program_status, publish_at=lesson.publish_at)
    return LessonState(
      lesson_id=lesson.id,
      term_id=lesson.term_id,
      program_id=program_id,
      status=lesson.status,
      program_status=program_status,
      publish_at=lesson.publish_at,
      published_at=lesson.published_at,
      program_published_at=program_published_at,
      snapshot=snapshot,
    )

  async def transition_lesson(self, lesson_id: str, *, expected_status: str, status: str, publish_at: datetime.datetime | None, published_at: datetime.datetime | None) -> int:
    values: dict[str, object] = {"status": status, "publish_at": publish_at, "updated_at": func.now()}
    if published_at is not None:
      # First publish wins; later publishes keep the original instant.
      values["published_at"] = func.coalesce(Lesson.published_at, published_at)
    stmt = update(Lesson).where(Lesson.id == lesson_id, Lesson.status == expected_status).values(**values).execution_options(synchronize_session=False)
    result = await self._session.execute(stmt)
    return int(result.rowcount or 0)

  async def publish_program(self, program_id: str, *, published_at: datetime.datetime) -> int:
    stmt = (
      update(Program)
      .where(Program.id == program_id, Program.status != ProgramStatus.PUBLISHED.value)
      .values(status=ProgramStatus.PUBLISHED.value, published_at=func.coalesce(Program.published_at, published_at), updated_at=func.now())
      .execution_options(synchronize_session=False)
    )
    result = await self._session.execute(stmt)
    return int(result.rowcount or 0)


class PostgresPublicationStore(PublicationStore):
  """Opens one SQLAlchemy transaction per unit of publication work."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  @asynccontextmanager
  async def transaction(self) -> AsyncIterator[PostgresPublicationTransaction]:
    async with self._session_factory() as session:
      # session.begin() commits on clean exit and rolls back when the block raises.
      async with session.begin():
        yield PostgresPublicationTransaction(session)

  async def ping(self) -> None:
    async with self._session_factory() as session:
      await session.execute(text("SELECT 1"))

  async def close(self) -> None:
    await dispose_engine()
