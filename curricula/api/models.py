from __future__ import annotations

import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator
from pydantic.alias_generators import to_camel

from curricula.publishing.rules import AssetType, AssetVariant, LessonStatus


class ApiModel(BaseModel):
  """Base model that speaks camelCase on the wire and accepts snake_case too."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RequestModel(ApiModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


def _check_primary_language(primary: str | None, available: list[str] | None, label: str) -> None:
  if primary is not None and available is not None and primary not in available:
    raise ValueError(f"{label} must be in available languages")


class AssetCreateRequest(RequestModel):
  language: StrictStr = Field(min_length=2, max_length=16, examples=["te"])
  variant: AssetVariant
  asset_type: AssetType
  url: StrictStr = Field(min_length=1, max_length=2048)


class AssetResponse(ApiModel):
  id: str
  language: str
  variant: str
  asset_type: str
  url: str


class TopicCreateRequest(RequestModel):
  name: StrictStr = Field(min_length=1, max_length=120)


class TopicResponse(ApiModel):
  id: str
  name: str


class ProgramCreateRequest(RequestModel):
  title: StrictStr = Field(min_length=1, max_length=300)
  description: StrictStr | None = None
  language_primary: StrictStr = Field(min_length=2, max_length=16)
  languages_available: list[StrictStr] = Field(min_length=1)
  topic_ids: list[StrictStr] = Field(default_factory=list)

  @model_validator(mode="after")
  def primary_in_available(self) -> ProgramCreateRequest:
    _check_primary_language(self.language_primary, self.languages_available, "Primary language")
    return self


class ProgramUpdateRequest(RequestModel):
  title: StrictStr | None = Field(default=None, min_length=1, max_length=300)
  description: StrictStr | None = None
  language_primary: StrictStr | None = Field(default=None, min_length=2, max_length=16)
  languages_available: list[StrictStr] | None = Field(default=None, min_length=1)
  topic_ids: list[StrictStr] | None = None

  @model_validator(mode="after")
  def primary_in_available(self) -> ProgramUpdateRequest:
    _check_primary_language(self.language_primary, self.languages_available, "Primary language")
    return self


class TermCreateRequest(RequestModel):
  term_number: int = Field(ge=1)
  title: StrictStr | None = None


class LessonCreateRequest(RequestModel):
  lesson_number: int = Field(ge=1)
  title: StrictStr = Field(min_length=1, max_length=300)
  content_type: Literal["video", "article"]
  duration_ms: int | None = Field(default=None, ge=0)
  is_paid: bool = False
  content_language_primary: StrictStr = Field(min_length=2, max_length=16)
  content_languages_available: list[StrictStr] = Field(min_length=1)
  content_urls_by_language: dict[str, str] = Field(default_factory=dict)
  subtitle_languages: list[StrictStr] = Field(default_factory=list)
  subtitle_urls_by_language: dict[str, str] = Field(default_factory=dict)

  @model_validator(mode="after")
  def primary_in_available(self) -> LessonCreateRequest:
    _check_primary_language(self.content_language_primary, self.content_languages_available, "Primary content language")
    return self


class LessonUpdateRequest(RequestModel):
  """Content edits; `status` (with `publishAt` when scheduling) is routed through the publication rules."""

  title: StrictStr | None = Field(default=None, min_length=1, max_length=300)
  content_type: Literal["video", "article"] | None = None
  duration_ms: int | None = Field(default=None, ge=0)
  is_paid: bool | None = None
  content_language_primary: StrictStr | None = Field(default=None, min_length=2, max_length=16)
  content_languages_available: list[StrictStr] | None = Field(default=None, min_length=1)
  content_urls_by_language: dict[str, str] | None = None
  subtitle_languages: list[StrictStr] | None = None
  subtitle_urls_by_language: dict[str, str] | None = None
  status: LessonStatus | None = None
  publish_at: datetime.datetime | None = None

  @model_validator(mode="after")
  def primary_in_available(self) -> LessonUpdateRequest:
    _check_primary_language(self.content_language_primary, self.content_languages_available, "Primary content language")
    return self

  def content_changes(self) -> dict[str, Any]:
    return self.model_dump(exclude_unset=True, exclude={"status", "publish_at"})


class ScheduleLessonRequest(RequestModel):
  publish_at: datetime.datetime


class LessonResponse(ApiModel):
  id: str
  term_id: str
  lesson_number: int
  title: str
  content_type: str
  duration_ms: int | None = None
  is_paid: bool
  content_language_primary: str
  content_languages_available: list[str]
  content_urls_by_language: dict[str, str]
  subtitle_languages: list[str]
  subtitle_urls_by_language: dict[str, str]
  status: str
  publish_at: datetime.datetime | None = None
  published_at: datetime.datetime | None = None
  created_at: datetime.datetime | None = None
  updated_at: datetime.datetime | None = None
  assets: list[AssetResponse] = Field(default_factory=list)


class TermResponse(ApiModel):
  id: str
  program_id: str
  term_number: int
  title: str | None = None
  lessons: list[LessonResponse] = Field(default_factory=list)


class ProgramResponse(ApiModel):
  id: str
  title: str
  description: str | None = None
  language_primary: str
  languages_available: list[str]
  status: str
  published_at: datetime.datetime | None = None
  created_at: datetime.datetime | None = None
  updated_at: datetime.datetime | None = None
  topics: list[TopicResponse] = Field(default_factory=list)
  assets: list[AssetResponse] = Field(default_factory=list)


class ProgramDetailResponse(ProgramResponse):
  terms: list[TermResponse] = Field(default_factory=list)


class LessonTransitionResponse(ApiModel):
  lesson: LessonResponse
  changed: bool
  program_published: bool = False


class DeletedResponse(ApiModel):
  success: bool = True


AssetsByLanguage = dict[str, dict[str, str]]


class CatalogLesson(ApiModel):
  id: str
  term_id: str
  lesson_number: int
  title: str
  content_type: str
  duration_ms: int | None = None
  is_paid: bool
  content_language_primary: str
  content_languages_available: list[str]
  content_urls_by_language: dict[str, str]
  subtitle_languages: list[str]
  subtitle_urls_by_language: dict[str, str]
  published_at: datetime.datetime | None = None
  assets: dict[str, AssetsByLanguage]


class CatalogTerm(ApiModel):
  id: str
  term_number: int
  title: str | None = None
  lessons: list[CatalogLesson]


class CatalogProgram(ApiModel):
  id: str
  title: str
  description: str | None = None
  language_primary: str
  languages_available: list[str]
  published_at: datetime.datetime | None = None
  topics: list[str]
  assets: dict[str, AssetsByLanguage]
  terms: list[CatalogTerm]


class CatalogProgramPage(ApiModel):
  programs: list[CatalogProgram]
  next_cursor: str | None = None


class HealthResponse(ApiModel):
  status: str
  database: str


def lesson_response(lesson: Any) -> LessonResponse:
  return LessonResponse.model_validate(lesson)


def _program_fields(program: Any) -> dict[str, Any]:
  # Program topics are stored as link rows; flatten them to topic entries.
  return {
    "id": program.id,
    "title": program.title,
    "description": program.description,
    "language_primary": program.language_primary,
    "languages_available": list(program.languages_available),
    "status": program.status,
    "published_at": program.published_at,
    "created_at": program.created_at,
    "updated_at": program.updated_at,
    "topics": [TopicResponse.model_validate(link.topic) for link in program.topics],
    "assets": [AssetResponse.model_validate(asset) for asset in program.assets],
  }


def program_response(program: Any) -> ProgramResponse:
  return ProgramResponse(**_program_fields(program))


def program_detail_response(program: Any) -> ProgramDetailResponse:
  return ProgramDetailResponse(**_program_fields(program), terms=[TermResponse.model_validate(term) for term in program.terms])
