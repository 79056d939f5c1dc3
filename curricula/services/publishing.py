"""Manual lesson status transitions (publish now, schedule, archive, back to draft).

Every transition runs in a single store transaction, waits for the lesson row lock, asks the publication rules,
and writes with the same conditional update the scheduler uses. Manual and scheduled publishing therefore cannot
interleave into a double publish or a publish without thumbnails.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, replace

from curricula.publishing.rules import AssetVariant, DenyReason, LessonStatus, PublicationDecision, evaluate_transition, missing_thumbnail_variants
from curricula.storage.publication_store import LessonState, PublicationStore, PublicationTransaction

logger = logging.getLogger(__name__)


class LessonNotFoundError(LookupError):
  """Raised when the lesson does not exist."""

  def __init__(self, lesson_id: str) -> None:
    super().__init__(f"Lesson {lesson_id} not found")
    self.lesson_id = lesson_id


class PublicationDeniedError(ValueError):
  """Raised when the publication rules reject a manual transition."""

  def __init__(self, reason: DenyReason, *, missing_variants: tuple[AssetVariant, ...] = ()) -> None:
    super().__init__(reason.value)
    self.reason = reason
    self.missing_variants = missing_variants


class ConcurrentTransitionError(RuntimeError):
  """Raised when the lesson changed between the locked read and the conditional write."""

  def __init__(self, lesson_id: str) -> None:
    super().__init__(f"Lesson {lesson_id} was modified concurrently")
    self.lesson_id = lesson_id


@dataclass(frozen=True)
class TransitionResult:
  lesson_id: str
  status: str
  changed: bool
  program_id: str
  program_published: bool = False
  publish_at: datetime.datetime | None = None


async def _load_for_update(tx: PublicationTransaction, lesson_id: str) -> LessonState:
  state = await tx.load_lesson(lesson_id, skip_locked=False)
  if state is None:
    raise LessonNotFoundError(lesson_id)
  return state


async def _write(tx: PublicationTransaction, state: LessonState, *, status: LessonStatus, publish_at: datetime.datetime | None = None, published_at: datetime.datetime | None = None) -> None:
  changed = await tx.transition_lesson(state.lesson_id, expected_status=state.status, status=status.value, publish_at=publish_at, published_at=published_at)
  if changed == 0:
    raise ConcurrentTransitionError(state.lesson_id)


async def publish_lesson_now(store: PublicationStore, lesson_id: str, *, now: datetime.datetime) -> TransitionResult:
  """Publish a lesson immediately, cascading to its program when needed."""
  async with store.transaction() as tx:
    state = await _load_for_update(tx, lesson_id)
    if state.status == LessonStatus.PUBLISHED.value:
      return TransitionResult(lesson_id=lesson_id, status=state.status, changed=False, program_id=state.program_id)

    decision = evaluate_transition(state.snapshot, LessonStatus.PUBLISHED, now=now)
    if not decision.allowed:
      missing = missing_thumbnail_variants(state.snapshot)
      logger.info("Manual publish denied lesson_id=%s reason=%s missing=%s", lesson_id, decision.reason, ",".join(variant.value for variant in missing))
      raise PublicationDeniedError(decision.reason or DenyReason.MISSING_REQUIRED_ASSETS, missing_variants=missing)

    await _write(tx, state, status=LessonStatus.PUBLISHED, published_at=now)
    program_published = False
    if decision.cascade_program:
      program_published = await tx.publish_program(state.program_id, published_at=now) > 0

  logger.info("Lesson published manually lesson_id=%s program_id=%s program_published=%s", lesson_id, state.program_id, program_published)
  return TransitionResult(lesson_id=lesson_id, status=LessonStatus.PUBLISHED.value, changed=True, program_id=state.program_id, program_published=program_published)


async def schedule_lesson(store: PublicationStore, lesson_id: str, *, publish_at: datetime.datetime | None, now: datetime.datetime) -> TransitionResult:
  """Schedule a lesson for publication at `publish_at` (present or future)."""
  async with store.transaction() as tx:
    state = await _load_for_update(tx, lesson_id)
    decision = evaluate_transition(state.snapshot, LessonStatus.SCHEDULED, publish_at=publish_at, now=now)
    if not decision.allowed or publish_at is None:
      raise PublicationDeniedError(decision.reason or DenyReason.INVALID_SCHEDULE_INSTANT)

    await _write(tx, state, status=LessonStatus.SCHEDULED, publish_at=publish_at)

  logger.info("Lesson scheduled lesson_id=%s publish_at=%s previous_status=%s", lesson_id, publish_at.isoformat(), state.status)
  return TransitionResult(lesson_id=lesson_id, status=LessonStatus.SCHEDULED.value, changed=True, program_id=state.program_id, publish_at=publish_at)


async def _move_without_validation(store: PublicationStore, lesson_id: str, target: LessonStatus, *, now: datetime.datetime) -> TransitionResult:
  async with store.transaction() as tx:
    state = await _load_for_update(tx, lesson_id)
    if state.status == target.value:
      return TransitionResult(lesson_id=lesson_id, status=state.status, changed=False, program_id=state.program_id)

    decision = evaluate_transition(state.snapshot, target, now=now)
    if not decision.allowed:
      logger.info("Status change denied lesson_id=%s to=%s reason=%s", lesson_id, target.value, decision.reason)
      raise PublicationDeniedError(decision.reason or DenyReason.INVALID_SCHEDULE_INSTANT)
    await _write(tx, state, status=target)

  logger.info("Lesson status changed lesson_id=%s from=%s to=%s", lesson_id, state.status, target.value)
  return TransitionResult(lesson_id=lesson_id, status=target.value, changed=True, program_id=state.program_id)


async def archive_lesson(store: PublicationStore, lesson_id: str, *, now: datetime.datetime) -> TransitionResult:
  return await _move_without_validation(store, lesson_id, LessonStatus.ARCHIVED, now=now)


async def revert_lesson_to_draft(store: PublicationStore, lesson_id: str, *, now: datetime.datetime) -> TransitionResult:
  return await _move_without_validation(store, lesson_id, LessonStatus.DRAFT, now=now)


async def apply_lesson_status(store: PublicationStore, lesson_id: str, status: LessonStatus, *, publish_at: datetime.datetime | None, now: datetime.datetime) -> TransitionResult:
  """Route a requested status through the matching transition."""
  if status is LessonStatus.PUBLISHED:
    return await publish_lesson_now(store, lesson_id, now=now)
  if status is LessonStatus.SCHEDULED:
    return await schedule_lesson(store, lesson_id, publish_at=publish_at, now=now)
  if status is LessonStatus.ARCHIVED:
    return await archive_lesson(store, lesson_id, now=now)
  return await revert_lesson_to_draft(store, lesson_id, now=now)


async def check_lesson_status_change(store: PublicationStore, lesson_id: str, status: LessonStatus, *, publish_at: datetime.datetime | None, now: datetime.datetime, content_language_primary: str | None = None) -> None:
  """Raise when `status` would be denied for the lesson as it will look after a pending content edit.

  Runs before any content is written so a denied status leaves the lesson untouched. The transition itself still
  re-validates under the row lock.
  """
  async with store.transaction() as tx:
    state = await _load_for_update(tx, lesson_id)
  if status is LessonStatus.PUBLISHED and state.status == LessonStatus.PUBLISHED.value:
    return

  snapshot = replace(state.snapshot, content_language_primary=content_language_primary or state.snapshot.content_language_primary)
  decision = evaluate_transition(snapshot, status, publish_at=publish_at, now=now)
  if status is LessonStatus.SCHEDULED and publish_at is None:
    decision = PublicationDecision.deny(DenyReason.INVALID_SCHEDULE_INSTANT)
  if decision.allowed:
    return

  missing = missing_thumbnail_variants(snapshot) if status is LessonStatus.PUBLISHED else ()
  logger.info("Status change rejected before content update lesson_id=%s status=%s reason=%s", lesson_id, status.value, decision.reason)
  raise PublicationDeniedError(decision.reason or DenyReason.MISSING_REQUIRED_ASSETS, missing_variants=missing)
