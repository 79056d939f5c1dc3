"""Demo content for a fresh database.

Creates topics and two programs whose lessons cover every publication state the scheduler has to handle:
published lessons, a due scheduled lesson with full thumbnails, a due scheduled lesson missing its landscape
thumbnail, and a due lesson inside a draft program so the first publish cascades to the program.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curricula.publishing.rules import AssetType, AssetVariant, LessonStatus, ProgramStatus
from curricula.schema.content import Lesson, LessonAsset, Program, ProgramAsset, ProgramTopic, Term, Topic

logger = logging.getLogger(__name__)

DEMO_TOPICS: tuple[str, ...] = ("Technology", "Education", "Health")
TELUGU_PROGRAM_TITLE = "Telugu Language Learning"
HINDI_PROGRAM_TITLE = "Hindi Learning Program"
DEFAULT_SCHEDULE_OFFSET = datetime.timedelta(minutes=-5)

_PLACEHOLDER = "https://via.placeholder.com"
_MEDIA = "https://example.com"


@dataclass(frozen=True)
class SeedSummary:
  programs: int
  terms: int
  lessons: int
  scheduled: int


def _posters(language: str, label: str) -> list[ProgramAsset]:
  return [
    ProgramAsset(language=language, variant=AssetVariant.PORTRAIT.value, asset_type=AssetType.POSTER.value, url=f"{_PLACEHOLDER}/300x400?text={label}+Portrait"),
    ProgramAsset(language=language, variant=AssetVariant.LANDSCAPE.value, asset_type=AssetType.POSTER.value, url=f"{_PLACEHOLDER}/600x300?text={label}+Landscape"),
  ]


def _thumbnails(language: str, label: str, variants: tuple[AssetVariant, ...] = (AssetVariant.PORTRAIT, AssetVariant.LANDSCAPE)) -> list[LessonAsset]:
  sizes = {AssetVariant.PORTRAIT: "300x400", AssetVariant.LANDSCAPE: "600x300", AssetVariant.SQUARE: "400x400", AssetVariant.BANNER: "1200x300"}
  return [LessonAsset(language=language, variant=variant.value, asset_type=AssetType.THUMBNAIL.value, url=f"{_PLACEHOLDER}/{sizes[variant]}?text={label}+{variant.value.title()}") for variant in variants]


def _lesson(number: int, title: str, *, language: str, slug: str, content_type: str = "video", languages: tuple[str, ...] | None = None, **fields) -> Lesson:
  available = list(languages or (language,))
  extension = "mp4" if content_type == "video" else "html"
  return Lesson(
    lesson_number=number,
    title=title,
    content_type=content_type,
    content_language_primary=language,
    content_languages_available=available,
    content_urls_by_language={code: f"{_MEDIA}/{content_type}/{code}/{slug}.{extension}" for code in available},
    subtitle_languages=fields.pop("subtitle_languages", []),
    subtitle_urls_by_language=fields.pop("subtitle_urls_by_language", {}),
    **fields,
  )


def build_demo_programs(topics: dict[str, Topic], *, now: datetime.datetime, schedule_offset: datetime.timedelta = DEFAULT_SCHEDULE_OFFSET) -> list[Program]:
  """Build the demo object graph without touching the database.

  Scheduled lessons get ``publish_at = now + schedule_offset``; a negative offset makes them due on the next
  scheduler cycle.
  """
  publish_at = now + schedule_offset
  published = {"status": LessonStatus.PUBLISHED.value, "published_at": now}
  scheduled = {"status": LessonStatus.SCHEDULED.value, "publish_at": publish_at}

  telugu_basics = Term(term_number=1, title="Basics")
  telugu_basics.lessons = [
    _lesson(
      1,
      "Introduction to Telugu",
      language="te",
      slug="intro",
      languages=("te", "en"),
      duration_ms=300000,
      subtitle_languages=["te", "en"],
      subtitle_urls_by_language={"te": f"{_MEDIA}/subtitles/te/intro.vtt", "en": f"{_MEDIA}/subtitles/en/intro.vtt"},
      assets=_thumbnails("te", "Lesson+1"),
      **published,
    ),
    _lesson(2, "Telugu Alphabets", language="te", slug="alphabets", duration_ms=420000, is_paid=True, subtitle_languages=["te"], assets=_thumbnails("te", "Lesson+2"), **published),
    _lesson(3, "Basic Grammar", language="te", slug="grammar", content_type="article", languages=("te", "en"), assets=_thumbnails("te", "Lesson+3"), **published),
    _lesson(4, "Common Phrases", language="te", slug="phrases", duration_ms=360000, subtitle_languages=["te"], assets=_thumbnails("te", "Lesson+4"), **scheduled),
    # Stays scheduled: the scheduler defers it until a landscape thumbnail is added.
    _lesson(5, "Everyday Conversations", language="te", slug="conversations", duration_ms=390000, assets=_thumbnails("te", "Lesson+5", (AssetVariant.PORTRAIT,)), **scheduled),
  ]
  telugu = Program(
    title=TELUGU_PROGRAM_TITLE,
    description="Complete course to learn Telugu language",
    language_primary="te",
    languages_available=["te", "en"],
    status=ProgramStatus.PUBLISHED.value,
    published_at=now,
    topics=[ProgramTopic(topic=topics["Education"]), ProgramTopic(topic=topics["Technology"])],
    assets=_posters("te", "Telugu") + _posters("en", "English"),
    terms=[telugu_basics],
  )

  hindi_intro = Term(term_number=1, title="Introduction")
  hindi_intro.lessons = [
    _lesson(1, "Hindi Basics", language="hi", slug="basics", duration_ms=280000, assets=_thumbnails("hi", "Lesson+6"), **scheduled),
    _lesson(2, "Hindi Vocabulary", language="hi", slug="vocabulary", content_type="article", is_paid=True, assets=_thumbnails("hi", "Lesson+7"), status=LessonStatus.DRAFT.value),
  ]
  # Draft until its first lesson publishes.
  hindi = Program(
    title=HINDI_PROGRAM_TITLE,
    description="Learn Hindi from scratch",
    language_primary="hi",
    languages_available=["hi"],
    status=ProgramStatus.DRAFT.value,
    topics=[ProgramTopic(topic=topics["Education"])],
    assets=_posters("hi", "Hindi"),
    terms=[hindi_intro],
  )
  return [telugu, hindi]


async def _ensure_topics(session: AsyncSession, names: tuple[str, ...]) -> dict[str, Topic]:
  result = await session.execute(select(Topic).where(Topic.name.in_(names)))
  topics = {topic.name: topic for topic in result.scalars().all()}
  for name in names:
    if name not in topics:
      topics[name] = Topic(name=name)
      session.add(topics[name])
  return topics


async def seed_demo_content(session: AsyncSession, *, now: datetime.datetime, schedule_offset: datetime.timedelta = DEFAULT_SCHEDULE_OFFSET) -> SeedSummary | None:
  """Insert the demo content once; returns None when it is already present."""
  existing = await session.execute(select(Program.id).where(Program.title.in_((TELUGU_PROGRAM_TITLE, HINDI_PROGRAM_TITLE))).limit(1))
  if existing.first() is not None:
    logger.info("Demo content already present; skipping seed.")
    return None

  topics = await _ensure_topics(session, DEMO_TOPICS)
  programs = build_demo_programs(topics, now=now, schedule_offset=schedule_offset)
  lessons = [lesson for program in programs for term in program.terms for lesson in term.lessons]
  summary = SeedSummary(
    programs=len(programs),
    terms=sum(len(program.terms) for program in programs),
    lessons=len(lessons),
    scheduled=sum(1 for lesson in lessons if lesson.status == LessonStatus.SCHEDULED.value),
  )
  session.add_all(programs)
  await session.commit()

  logger.info("Demo content seeded programs=%s terms=%s lessons=%s scheduled=%s publish_at=%s", summary.programs, summary.terms, summary.lessons, summary.scheduled, (now + schedule_offset).isoformat())
  return summary
