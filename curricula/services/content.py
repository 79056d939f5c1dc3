"""Authoring CRUD for programs, terms, lessons, assets and topics.

Status changes are not handled here; they go through `curricula.services.publishing` so the publication rules
apply on every path.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from curricula.api.models import AssetCreateRequest, LessonCreateRequest, ProgramCreateRequest, ProgramUpdateRequest, TermCreateRequest
from curricula.schema.content import Lesson, LessonAsset, Program, ProgramAsset, ProgramTopic, Term, Topic

logger = logging.getLogger(__name__)


class ContentValidationError(ValueError):
  """Raised when an edit would break a content invariant."""


def _require_primary_in_available(primary: str, available: list[str], label: str) -> None:
  if primary not in available:
    raise ContentValidationError(f"{label} must be in available languages")


def _program_summary_options() -> tuple[Any, ...]:
  return (selectinload(Program.topics), selectinload(Program.assets))


async def list_programs(session: AsyncSession, *, status: str | None = None, language: str | None = None, topic: str | None = None) -> list[Program]:
  stmt = select(Program).options(*_program_summary_options()).order_by(Program.created_at.desc(), Program.id.desc())
  if status:
    stmt = stmt.where(Program.status == status)
  if language:
    stmt = stmt.where(Program.language_primary == language)
  if topic:
    stmt = stmt.where(Program.topics.any(ProgramTopic.topic.has(Topic.name == topic)))
  result = await session.execute(stmt)
  return list(result.scalars().unique().all())


async def get_program(session: AsyncSession, program_id: str, *, with_terms: bool = False) -> Program | None:
  stmt = select(Program).where(Program.id == program_id).options(*_program_summary_options()).execution_options(populate_existing=True)
  if with_terms:
    stmt = stmt.options(selectinload(Program.terms).selectinload(Term.lessons).selectinload(Lesson.assets))
  result = await session.execute(stmt)
  return result.scalars().unique().one_or_none()


async def create_program(session: AsyncSession, request: ProgramCreateRequest) -> Program:
  program = Program(title=request.title, description=request.description, language_primary=request.language_primary, languages_available=list(request.languages_available))
  program.topics = [ProgramTopic(topic_id=topic_id) for topic_id in dict.fromkeys(request.topic_ids)]
  session.add(program)
  await session.commit()
  logger.info("Program created program_id=%s topics=%d", program.id, len(request.topic_ids))
  created = await get_program(session, program.id)
  if created is None:
    raise RuntimeError(f"Program {program.id} missing after create")
  return created


async def update_program(session: AsyncSession, program_id: str, request: ProgramUpdateRequest) -> Program | None:
  program = await get_program(session, program_id)
  if program is None:
    return None

  changes = request.model_dump(exclude_unset=True, exclude={"topic_ids"})
  primary = changes.get("language_primary", program.language_primary)
  available = changes.get("languages_available", program.languages_available)
  _require_primary_in_available(primary, list(available), "Primary language")

  for key, value in changes.items():
    setattr(program, key, value)

  # Topics are replaced wholesale when supplied.
  if request.topic_ids is not None:
    await session.execute(delete(ProgramTopic).where(ProgramTopic.program_id == program_id))
    session.add_all(ProgramTopic(program_id=program_id, topic_id=topic_id) for topic_id in dict.fromkeys(request.topic_ids))

  await session.commit()
  logger.info("Program updated program_id=%s fields=%s", program_id, sorted(changes))
  return await get_program(session, program_id)


async def add_program_asset(session: AsyncSession, program_id: str, request: AssetCreateRequest) -> ProgramAsset | None:
  """Attach an asset, replacing any existing one for the same language, variant and type."""
  if await session.get(Program, program_id) is None:
    return None
  await session.execute(
    delete(ProgramAsset).where(ProgramAsset.program_id == program_id, ProgramAsset.language == request.language, ProgramAsset.variant == request.variant.value, ProgramAsset.asset_type == request.asset_type.value)
  )
  asset = ProgramAsset(program_id=program_id, language=request.language, variant=request.variant.value, asset_type=request.asset_type.value, url=request.url)
  session.add(asset)
  await session.commit()
  return asset


async def delete_program_asset(session: AsyncSession, program_id: str, asset_id: str) -> bool:
  result = await session.execute(delete(ProgramAsset).where(ProgramAsset.id == asset_id, ProgramAsset.program_id == program_id))
  await session.commit()
  return bool(result.rowcount)


async def create_term(session: AsyncSession, program_id: str, request: TermCreateRequest) -> Term | None:
  if await session.get(Program, program_id) is None:
    return None
  term = Term(program_id=program_id, term_number=request.term_number, title=request.title)
  session.add(term)
  await session.commit()
  logger.info("Term created term_id=%s program_id=%s term_number=%d", term.id, program_id, request.term_number)
  return term


async def get_lesson(session: AsyncSession, lesson_id: str) -> Lesson | None:
  stmt = select(Lesson).where(Lesson.id == lesson_id).options(selectinload(Lesson.assets)).execution_options(populate_existing=True)
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def create_lesson(session: AsyncSession, term_id: str, request: LessonCreateRequest) -> Lesson | None:
  if await session.get(Term, term_id) is None:
    return None
  lesson = Lesson(term_id=term_id, **request.model_dump())
  session.add(lesson)
  await session.commit()
  logger.info("Lesson created lesson_id=%s term_id=%s lesson_number=%d", lesson.id, term_id, request.lesson_number)
  return await get_lesson(session, lesson.id)


async def update_lesson_content(session: AsyncSession, lesson_id: str, changes: dict[str, Any]) -> Lesson | None:
  """Apply content edits; never touches status, publish_at or published_at."""
  lesson = await get_lesson(session, lesson_id)
  if lesson is None:
    return None
  if not changes:
    return lesson

  primary = changes.get("content_language_primary", lesson.content_language_primary)
  available = changes.get("content_languages_available", lesson.content_languages_available)
  _require_primary_in_available(primary, list(available), "Primary content language")

  for key, value in changes.items():
    setattr(lesson, key, value)
  await session.commit()
  logger.info("Lesson updated lesson_id=%s fields=%s", lesson_id, sorted(changes))
  return await get_lesson(session, lesson_id)


async def add_lesson_asset(session: AsyncSession, lesson_id: str, request: AssetCreateRequest) -> LessonAsset | None:
  """Attach an asset, replacing any existing one for the same language, variant and type."""
  if await session.get(Lesson, lesson_id) is None:
    return None
  await session.execute(
    delete(LessonAsset).where(LessonAsset.lesson_id == lesson_id, LessonAsset.language == request.language, LessonAsset.variant == request.variant.value, LessonAsset.asset_type == request.asset_type.value)
  )
  asset = LessonAsset(lesson_id=lesson_id, language=request.language, variant=request.variant.value, asset_type=request.asset_type.value, url=request.url)
  session.add(asset)
  await session.commit()
  return asset


async def delete_lesson_asset(session: AsyncSession, lesson_id: str, asset_id: str) -> bool:
  result = await session.execute(delete(LessonAsset).where(LessonAsset.id == asset_id, LessonAsset.lesson_id == lesson_id))
  await session.commit()
  return bool(result.rowcount)


async def list_topics(session: AsyncSession) -> list[Topic]:
  result = await session.execute(select(Topic).order_by(Topic.name))
  return list(result.scalars().all())


async def create_topic(session: AsyncSession, name: str) -> Topic:
  topic = Topic(name=name.strip())
  session.add(topic)
  await session.commit()
  return topic
