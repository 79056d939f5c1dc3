"""Public catalog queries and response shaping.

Only published programs that hold at least one published lesson are visible, and only their published lessons
are shown. Program pages are keyset-paginated over (publish instant desc, id desc) so inserts between page
requests never duplicate or skip entries.
"""

from __future__ import annotations

import base64
import binascii
import datetime
import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from curricula.api.models import AssetsByLanguage, CatalogLesson, CatalogProgram, CatalogTerm
from curricula.publishing.rules import AssetType, LessonStatus, ProgramStatus
from curricula.schema.content import Lesson, Program, ProgramTopic, Term, Topic

DEFAULT_PAGE_SIZE = 20


class InvalidCursorError(ValueError):
  """Raised when a pagination cursor cannot be decoded."""


@dataclass(frozen=True)
class CatalogCursor:
  sort_at: datetime.datetime
  program_id: str

  def encode(self) -> str:
    raw = json.dumps({"t": self.sort_at.isoformat(), "id": self.program_id}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

  @classmethod
  def decode(cls, token: str) -> CatalogCursor:
    padded = token + "=" * (-len(token) % 4)
    try:
      payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
      return cls(sort_at=datetime.datetime.fromisoformat(payload["t"]), program_id=str(payload["id"]))
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
      raise InvalidCursorError("Invalid cursor") from exc


def clamp_page_size(limit: int | None, max_page_size: int) -> int:
  if limit is None:
    return min(DEFAULT_PAGE_SIZE, max_page_size)
  return max(1, min(limit, max_page_size))


def group_assets(assets: Iterable[Any], asset_type: AssetType) -> AssetsByLanguage:
  """Reshape asset rows of one type into {language: {variant: url}}."""
  grouped: AssetsByLanguage = {}
  for asset in assets:
    if asset.asset_type != asset_type.value:
      continue
    grouped.setdefault(asset.language, {})[asset.variant] = asset.url
  return grouped


def shape_lesson(lesson: Lesson) -> CatalogLesson:
  return CatalogLesson(
    id=lesson.id,
    term_id=lesson.term_id,
    lesson_number=lesson.lesson_number,
    title=lesson.title,
    content_type=lesson.content_type,
    duration_ms=lesson.duration_ms,
    is_paid=lesson.is_paid,
    content_language_primary=lesson.content_language_primary,
    content_languages_available=list(lesson.content_languages_available),
    content_urls_by_language=dict(lesson.content_urls_by_language or {}),
    subtitle_languages=list(lesson.subtitle_languages or []),
    subtitle_urls_by_language=dict(lesson.subtitle_urls_by_language or {}),
    published_at=lesson.published_at,
    assets={"thumbnails": group_assets(lesson.assets, AssetType.THUMBNAIL)},
  )


def shape_program(program: Program) -> CatalogProgram:
  terms = []
  for term in sorted(program.terms, key=lambda item: item.term_number):
    lessons = [shape_lesson(lesson) for lesson in sorted(term.lessons, key=lambda item: item.lesson_number) if lesson.status == LessonStatus.PUBLISHED.value]
    terms.append(CatalogTerm(id=term.id, term_number=term.term_number, title=term.title, lessons=lessons))
  return CatalogProgram(
    id=program.id,
    title=program.title,
    description=program.description,
    language_primary=program.language_primary,
    languages_available=list(program.languages_available),
    published_at=program.published_at,
    topics=sorted(link.topic.name for link in program.topics),
    assets={"posters": group_assets(program.assets, AssetType.POSTER)},
    terms=terms,
  )


def _sort_key():  # noqa: ANN202
  return func.coalesce(Program.published_at, Program.created_at)


def _visible_programs():  # noqa: ANN202
  has_published_lesson = Program.terms.any(Term.lessons.any(Lesson.status == LessonStatus.PUBLISHED.value))
  return (
    select(Program)
    .where(Program.status == ProgramStatus.PUBLISHED.value, has_published_lesson)
    .options(selectinload(Program.topics), selectinload(Program.assets), selectinload(Program.terms).selectinload(Term.lessons).selectinload(Lesson.assets))
  )


async def list_catalog_programs(session: AsyncSession, *, language: str | None, topic: str | None, cursor: str | None, limit: int) -> tuple[list[CatalogProgram], str | None]:
  """Return one page of visible programs and the cursor for the next page."""
  sort_key = _sort_key()
  stmt = _visible_programs().add_columns(sort_key.label("sort_at")).order_by(sort_key.desc(), Program.id.desc()).limit(limit + 1)
  if language:
    stmt = stmt.where(Program.language_primary == language)
  if topic:
    stmt = stmt.where(Program.topics.any(ProgramTopic.topic.has(Topic.name == topic)))
  if cursor:
    after = CatalogCursor.decode(cursor)
    stmt = stmt.where(or_(sort_key < after.sort_at, and_(sort_key == after.sort_at, Program.id < after.program_id)))

  rows = (await session.execute(stmt)).unique().all()
  page = rows[:limit]
  next_cursor = None
  if len(rows) > limit and page:
    last_program, last_sort_at = page[-1]
    next_cursor = CatalogCursor(sort_at=last_sort_at, program_id=last_program.id).encode()
  return [shape_program(program) for program, _sort_at in page], next_cursor


async def get_catalog_program(session: AsyncSession, program_id: str) -> CatalogProgram | None:
  stmt = _visible_programs().where(Program.id == program_id)
  program = (await session.execute(stmt)).scalars().unique().one_or_none()
  if program is None:
    return None
  return shape_program(program)


async def get_catalog_lesson(session: AsyncSession, lesson_id: str) -> CatalogLesson | None:
  stmt = select(Lesson).where(Lesson.id == lesson_id, Lesson.status == LessonStatus.PUBLISHED.value).options(selectinload(Lesson.assets))
  lesson = (await session.execute(stmt)).scalar_one_or_none()
  if lesson is None:
    return None
  return shape_lesson(lesson)
