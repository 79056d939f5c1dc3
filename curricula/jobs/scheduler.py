"""Scheduled-publish loop that promotes due lessons to published.

How/Why:
  - Candidates are claimed with FOR UPDATE SKIP LOCKED so concurrent scheduler processes never pick the same row.
  - Each lesson is published in its own transaction, re-checked under its row lock, and written with a
    conditional update, so a lost race becomes a no-op instead of a double publish.
  - The program cascade runs inside the same transaction as the lesson write; both commit or neither does.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable
from datetime import UTC

from curricula.config import SchedulerSettings
from curricula.jobs.models import CycleReport, ItemOutcome, ItemResult
from curricula.publishing.rules import LessonStatus, evaluate_transition, missing_thumbnail_variants
from curricula.storage.publication_store import ContentIntegrityError, PublicationStore
from curricula.utils.db_retry import classify_db_failure

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
  return datetime.datetime.now(UTC)


class ScheduledLessonPublisher:
  """Runs claim-evaluate-publish cycles against a publication store."""

  def __init__(self, *, store: PublicationStore, settings: SchedulerSettings, clock: Clock = utc_now) -> None:
    self._store = store
    self._settings = settings
    self._clock = clock
    self._logger = logging.getLogger(__name__)

  async def run_cycle(self, now: datetime.datetime | None = None) -> CycleReport:
    """Claim due lessons and publish each one that passes the publication rules."""
    cycle_now = now or self._clock()
    started = time.monotonic()
    report = CycleReport(started_at=cycle_now)

    # Claim step: a short transaction that only reads ids.
    try:
      async with self._store.transaction() as tx:
        lesson_ids = await tx.claim_due_lessons(now=cycle_now, limit=self._settings.batch_size)
    except Exception as exc:  # noqa: BLE001
      classification = classify_db_failure(exc)
      report.error = f"{classification.category}: {exc}"
      report.duration_ms = int((time.monotonic() - started) * 1000)
      self._logger.error("Scheduler claim failed category=%s sqlstate=%s retryable=%s reason=%s", classification.category, classification.sqlstate or "none", classification.retryable, classification.reason, exc_info=True)
      return report

    report.found = len(lesson_ids)
    for lesson_id in lesson_ids:
      report.results.append(await self._process_lesson(lesson_id, cycle_now))

    report.duration_ms = int((time.monotonic() - started) * 1000)
    self._logger.info(
      "Scheduler cycle complete found=%d published=%d skipped=%d skip_reasons=%s failed=%d programs_published=%d duration_ms=%d",
      report.found,
      report.published,
      report.skipped,
      report.skip_reasons(),
      report.failed,
      report.programs_published,
      report.duration_ms,
    )
    return report

  async def _process_lesson(self, lesson_id: str, now: datetime.datetime) -> ItemResult:
    """Publish one claimed lesson in its own transaction."""
    try:
      async with self._store.transaction() as tx:
        try:
          state = await tx.load_lesson(lesson_id, skip_locked=True)
        except ContentIntegrityError as exc:
          self._logger.error("Scheduled lesson has a broken ownership chain lesson_id=%s detail=%s", lesson_id, exc.detail)
          return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.INTEGRITY_FAULT, detail=exc.detail)

        # Another claimant holds the row, or it changed since the claim.
        if state is None or state.status != LessonStatus.SCHEDULED.value:
          self._logger.debug("Scheduled lesson already handled lesson_id=%s", lesson_id)
          return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.ALREADY_HANDLED)

        decision = evaluate_transition(state.snapshot, LessonStatus.PUBLISHED, now=now)
        if not decision.allowed:
          missing = ",".join(variant.value for variant in missing_thumbnail_variants(state.snapshot))
          self._log_missing_assets(lesson_id, state.publish_at, missing, now)
          return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.MISSING_ASSETS, program_id=state.program_id, detail=decision.reason.value if decision.reason else None)

        changed = await tx.transition_lesson(lesson_id, expected_status=LessonStatus.SCHEDULED.value, status=LessonStatus.PUBLISHED.value, publish_at=None, published_at=now)
        if changed == 0:
          return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.ALREADY_HANDLED)

        program_published = False
        if decision.cascade_program:
          program_published = await tx.publish_program(state.program_id, published_at=now) > 0

      self._logger.info("Published scheduled lesson lesson_id=%s program_id=%s program_published=%s", lesson_id, state.program_id, program_published)
      return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.PUBLISHED, program_id=state.program_id, program_published=program_published)
    except Exception as exc:  # noqa: BLE001
      classification = classify_db_failure(exc)
      self._logger.error(
        "Scheduled publish failed lesson_id=%s category=%s sqlstate=%s retryable=%s reason=%s",
        lesson_id,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        classification.reason,
        exc_info=not classification.retryable,
      )
      return ItemResult(lesson_id=lesson_id, outcome=ItemOutcome.FAILED, detail=classification.category)

  def _log_missing_assets(self, lesson_id: str, publish_at: datetime.datetime | None, missing: str, now: datetime.datetime) -> None:
    overdue_seconds = (now - publish_at).total_seconds() if publish_at is not None else 0.0
    if overdue_seconds > self._settings.stale_schedule_alert_seconds:
      self._logger.warning("Scheduled lesson is stale and still missing thumbnails lesson_id=%s missing=%s overdue_seconds=%d", lesson_id, missing, int(overdue_seconds))
      return
    self._logger.info("Scheduled lesson skipped, missing thumbnails lesson_id=%s missing=%s", lesson_id, missing)

  async def run_forever(self, stop_event: asyncio.Event) -> None:
    """Run cycles until `stop_event` is set; an in-flight cycle always completes."""
    self._logger.info("Scheduler started poll_interval_seconds=%s batch_size=%d", self._settings.poll_interval_seconds, self._settings.batch_size)
    while not stop_event.is_set():
      await self.run_cycle()
      try:
        await asyncio.wait_for(stop_event.wait(), timeout=self._settings.poll_interval_seconds)
      except TimeoutError:
        continue
    self._logger.info("Scheduler stopped")
