"""Publication rules for lessons and their owning programs.

How/Why:
  - Every entry point into `published` (manual publish, scheduled publish) calls `evaluate_transition`
    so the asset-completeness rule is enforced identically everywhere.
  - The functions here work on snapshots only. They never touch the database, which lets the
    authoring API and the scheduler share them and lets tests exercise them without fixtures.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum


class LessonStatus(str, Enum):
  DRAFT = "draft"
  SCHEDULED = "scheduled"
  PUBLISHED = "published"
  ARCHIVED = "archived"


class ProgramStatus(str, Enum):
  DRAFT = "draft"
  PUBLISHED = "published"
  ARCHIVED = "archived"


class AssetType(str, Enum):
  POSTER = "poster"
  THUMBNAIL = "thumbnail"


class AssetVariant(str, Enum):
  PORTRAIT = "portrait"
  LANDSCAPE = "landscape"
  SQUARE = "square"
  BANNER = "banner"


class DenyReason(str, Enum):
  """Stable reason codes surfaced to API callers and operator logs."""

  MISSING_REQUIRED_ASSETS = "MISSING_REQUIRED_ASSETS"
  INVALID_SCHEDULE_INSTANT = "INVALID_SCHEDULE_INSTANT"


REQUIRED_THUMBNAIL_VARIANTS: tuple[AssetVariant, ...] = (AssetVariant.PORTRAIT, AssetVariant.LANDSCAPE)


@dataclass(frozen=True)
class AssetSnapshot:
  """The attributes of one asset that the publication rules look at."""

  language: str
  variant: str
  asset_type: str


@dataclass(frozen=True)
class LessonSnapshot:
  """Point-in-time view of a lesson, its assets and (optionally) its program status."""

  lesson_id: str
  status: str
  content_language_primary: str
  assets: tuple[AssetSnapshot, ...] = field(default_factory=tuple)
  program_status: str | None = None
  publish_at: datetime.datetime | None = None


@dataclass(frozen=True)
class PublicationDecision:
  """Result of evaluating a transition: allowed, or denied with a reason."""

  allowed: bool
  reason: DenyReason | None = None
  cascade_program: bool = False

  @classmethod
  def allow(cls, *, cascade_program: bool = False) -> PublicationDecision:
    return cls(allowed=True, reason=None, cascade_program=cascade_program)

  @classmethod
  def deny(cls, reason: DenyReason) -> PublicationDecision:
    return cls(allowed=False, reason=reason, cascade_program=False)


def _value(raw: str | Enum) -> str:
  return raw.value if isinstance(raw, Enum) else str(raw)


def missing_thumbnail_variants(snapshot: LessonSnapshot) -> tuple[AssetVariant, ...]:
  """Return the required thumbnail variants the lesson lacks in its primary language."""
  present = {_value(asset.variant) for asset in snapshot.assets if _value(asset.asset_type) == AssetType.THUMBNAIL.value and asset.language == snapshot.content_language_primary}
  return tuple(variant for variant in REQUIRED_THUMBNAIL_VARIANTS if variant.value not in present)


def has_required_thumbnails(snapshot: LessonSnapshot) -> bool:
  """True when the lesson owns portrait and landscape thumbnails in its primary language."""
  return not missing_thumbnail_variants(snapshot)


def requires_program_cascade(program_status: str | None) -> bool:
  """True when a lesson publish must also publish its program.

  Unknown program status means the caller did not load the program, so no cascade is implied.
  An already-published program is left untouched, which keeps repeated evaluation a no-op.
  """
  if program_status is None:
    return False
  return _value(program_status) != ProgramStatus.PUBLISHED.value


def _as_utc(value: datetime.datetime) -> datetime.datetime:
  if value.tzinfo is None:
    return value.replace(tzinfo=datetime.UTC)
  return value


def evaluate_transition(snapshot: LessonSnapshot, target: LessonStatus | str | None = None, *, publish_at: datetime.datetime | None = None, now: datetime.datetime | None = None) -> PublicationDecision:
  """Decide whether `snapshot` may move to `target`.

  Args:
    snapshot: Lesson state including its assets and, when known, the owning program status.
    target: Desired status. ``None`` re-validates the snapshot's current status.
    publish_at: Publish instant for a transition to ``scheduled``. Falls back to ``snapshot.publish_at``.
    now: Reference instant for schedule validation. Required when scheduling.

  Returns:
    PublicationDecision describing the outcome and whether the program must cascade to published.
  """
  resolved = LessonStatus(target if target is not None else snapshot.status)

  if resolved is LessonStatus.PUBLISHED:
    # Assets are validated at the moment of transition, never retroactively.
    if not has_required_thumbnails(snapshot):
      return PublicationDecision.deny(DenyReason.MISSING_REQUIRED_ASSETS)
    return PublicationDecision.allow(cascade_program=requires_program_cascade(snapshot.program_status))

  if resolved is LessonStatus.SCHEDULED:
    # Assets may still be added before the publish instant; they are checked at publish time.
    instant = publish_at if publish_at is not None else snapshot.publish_at
    if instant is None or now is None:
      return PublicationDecision.deny(DenyReason.INVALID_SCHEDULE_INSTANT)
    if _as_utc(instant) < _as_utc(now):
      return PublicationDecision.deny(DenyReason.INVALID_SCHEDULE_INSTANT)
    return PublicationDecision.allow()

  # Archiving and returning to draft never re-validate assets.
  return PublicationDecision.allow()
