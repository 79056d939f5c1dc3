from __future__ import annotations

import datetime

from sqlalchemy import ARRAY, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from curricula.core.database import Base
from curricula.publishing.rules import AssetType, AssetVariant, LessonStatus, ProgramStatus
from curricula.utils.ids import generate_id


def _in_values(column: str, enum_cls: type) -> str:
  """Render a CHECK clause restricting a text column to the enum's values."""
  values = ", ".join(f"'{member.value}'" for member in enum_cls)
  return f"{column} IN ({values})"


class Topic(Base):
  __tablename__ = "topics"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ProgramTopic(Base):
  __tablename__ = "program_topics"

  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), primary_key=True)
  topic_id: Mapped[str] = mapped_column(ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True)

  topic: Mapped[Topic] = relationship("Topic", lazy="joined")


class Program(Base):
  __tablename__ = "programs"
  __table_args__ = (CheckConstraint(_in_values("status", ProgramStatus), name="ck_programs_status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  language_primary: Mapped[str] = mapped_column(String, nullable=False)
  languages_available: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default=ProgramStatus.DRAFT.value, server_default=ProgramStatus.DRAFT.value, index=True)
  published_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

  terms: Mapped[list[Term]] = relationship("Term", back_populates="program", cascade="all, delete-orphan", order_by="Term.term_number")
  assets: Mapped[list[ProgramAsset]] = relationship("ProgramAsset", back_populates="program", cascade="all, delete-orphan")
  topics: Mapped[list[ProgramTopic]] = relationship("ProgramTopic", cascade="all, delete-orphan")


class Term(Base):
  __tablename__ = "terms"
  __table_args__ = (UniqueConstraint("program_id", "term_number", name="ux_terms_program_term_number"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
  term_number: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  program: Mapped[Program] = relationship("Program", back_populates="terms")
  lessons: Mapped[list[Lesson]] = relationship("Lesson", back_populates="term", cascade="all, delete-orphan", order_by="Lesson.lesson_number")


class Lesson(Base):
  __tablename__ = "lessons"
  __table_args__ = (
    UniqueConstraint("term_id", "lesson_number", name="ux_lessons_term_lesson_number"),
    CheckConstraint(_in_values("status", LessonStatus), name="ck_lessons_status"),
    CheckConstraint("(status = 'scheduled') = (publish_at IS NOT NULL)", name="ck_lessons_publish_at_iff_scheduled"),
    Index("ix_lessons_status_publish_at", "status", "publish_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  term_id: Mapped[str] = mapped_column(ForeignKey("terms.id", ondelete="CASCADE"), nullable=False, index=True)
  lesson_number: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  content_type: Mapped[str] = mapped_column(String, nullable=False)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, server_default="false")
  content_language_primary: Mapped[str] = mapped_column(String, nullable=False)
  content_languages_available: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False)
  content_urls_by_language: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  subtitle_languages: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
  subtitle_urls_by_language: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  status: Mapped[str] = mapped_column(String, nullable=False, default=LessonStatus.DRAFT.value, server_default=LessonStatus.DRAFT.value)
  publish_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  published_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

  term: Mapped[Term] = relationship("Term", back_populates="lessons")
  assets: Mapped[list[LessonAsset]] = relationship("LessonAsset", back_populates="lesson", cascade="all, delete-orphan")


class LessonAsset(Base):
  __tablename__ = "lesson_assets"
  __table_args__ = (
    UniqueConstraint("lesson_id", "language", "variant", "asset_type", name="ux_lesson_assets_lesson_language_variant_type"),
    CheckConstraint(_in_values("variant", AssetVariant), name="ck_lesson_assets_variant"),
    CheckConstraint(_in_values("asset_type", AssetType), name="ck_lesson_assets_asset_type"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  language: Mapped[str] = mapped_column(String, nullable=False)
  variant: Mapped[str] = mapped_column(String, nullable=False)
  asset_type: Mapped[str] = mapped_column(String, nullable=False)
  url: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  lesson: Mapped[Lesson] = relationship("Lesson", back_populates="assets")


class ProgramAsset(Base):
  __tablename__ = "program_assets"
  __table_args__ = (
    UniqueConstraint("program_id", "language", "variant", "asset_type", name="ux_program_assets_program_language_variant_type"),
    CheckConstraint(_in_values("variant", AssetVariant), name="ck_program_assets_variant"),
    CheckConstraint(_in_values("asset_type", AssetType), name="ck_program_assets_asset_type"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
  language: Mapped[str] = mapped_column(String, nullable=False)
  variant: Mapped[str] = mapped_column(String, nullable=False)
  asset_type: Mapped[str] = mapped_column(String, nullable=False)
  url: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  program: Mapped[Program] = relationship("Program", back_populates="assets")
