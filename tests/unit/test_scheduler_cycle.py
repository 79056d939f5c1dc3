from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging
from datetime import UTC

import pytest
from curricula.jobs.models import ItemOutcome
from curricula.jobs.scheduler import ScheduledLessonPublisher
from curricula.publishing.rules import LessonStatus, ProgramStatus
from sqlalchemy.exc import OperationalError

T0 = datetime.datetime(2025, 1, 15, 10, 0, tzinfo=UTC)


def _publisher(store, settings, now: datetime.datetime = T0) -> ScheduledLessonPublisher:
  return ScheduledLessonPublisher(store=store, settings=settings, clock=lambda: now)


@pytest.mark.anyio
async def test_due_lesson_is_published_and_program_cascades(telugu_program, scheduler_settings):
  store = telugu_program
  store.add_required_thumbnails("lesson-te", "te")

  report = await _publisher(store, scheduler_settings).run_cycle(T0 + datetime.timedelta(minutes=1))

  lesson = store.lessons["lesson-te"]
  program = store.programs["prog-te"]
  assert report.found == 1
  assert report.published == 1
  assert report.programs_published == 1
  assert lesson.status == LessonStatus.PUBLISHED.value
  assert lesson.publish_at is None
  assert lesson.published_at == T0 + datetime.timedelta(minutes=1)
  assert program.status == ProgramStatus.PUBLISHED.value
  assert program.published_at == T0 + datetime.timedelta(minutes=1)


@pytest.mark.anyio
async def test_publish_instant_equal_to_now_is_due(telugu_program, scheduler_settings):
  telugu_program.add_required_thumbnails("lesson-te", "te")
  report = await _publisher(telugu_program, scheduler_settings).run_cycle(T0)
  assert report.published == 1


@pytest.mark.anyio
async def test_future_lessons_are_not_claimed(telugu_program, scheduler_settings):
  telugu_program.add_required_thumbnails("lesson-te", "te")
  report = await _publisher(telugu_program, scheduler_settings).run_cycle(T0 - datetime.timedelta(seconds=1))
  assert report.found == 0
  assert telugu_program.lessons["lesson-te"].status == LessonStatus.SCHEDULED.value


@pytest.mark.anyio
async def test_second_cycle_is_a_noop(telugu_program, scheduler_settings):
  telugu_program.add_required_thumbnails("lesson-te", "te")
  publisher = _publisher(telugu_program, scheduler_settings)

  await publisher.run_cycle(T0)
  second = await publisher.run_cycle(T0 + datetime.timedelta(minutes=5))

  assert second.found == 0
  assert telugu_program.publish_log == ["lesson-te"]
  assert telugu_program.lessons["lesson-te"].published_at == T0


@pytest.mark.anyio
async def test_program_published_at_is_set_only_once(store, scheduler_settings):
  first_publish = T0 - datetime.timedelta(days=30)
  store.add_program("prog", status=ProgramStatus.ARCHIVED.value, published_at=first_publish)
  store.add_term("term", "prog")
  store.add_lesson("lesson", "term", status=LessonStatus.SCHEDULED.value, publish_at=T0)
  store.add_required_thumbnails("lesson", "te")

  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  assert report.programs_published == 1
  assert store.programs["prog"].status == ProgramStatus.PUBLISHED.value
  assert store.programs["prog"].published_at == first_publish


@pytest.mark.anyio
async def test_published_program_is_not_touched(store, scheduler_settings):
  store.add_program("prog", status=ProgramStatus.PUBLISHED.value, published_at=T0 - datetime.timedelta(days=1))
  store.add_term("term", "prog")
  store.add_lesson("lesson", "term", status=LessonStatus.SCHEDULED.value, publish_at=T0)
  store.add_required_thumbnails("lesson", "te")

  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  assert report.published == 1
  assert report.programs_published == 0
  assert report.results[0].program_published is False


@pytest.mark.anyio
async def test_missing_assets_defer_publication_until_added(telugu_program, scheduler_settings):
  store = telugu_program
  store.add_thumbnail("lesson-te", "te", "portrait")
  publisher = _publisher(store, scheduler_settings)

  first = await publisher.run_cycle(T0)
  assert first.skipped == 1
  assert first.skip_reasons() == {"missing_assets": 1}
  assert first.results[0].detail == "MISSING_REQUIRED_ASSETS"
  assert store.lessons["lesson-te"].status == LessonStatus.SCHEDULED.value
  assert store.programs["prog-te"].status == ProgramStatus.DRAFT.value

  store.add_thumbnail("lesson-te", "te", "landscape")
  second = await publisher.run_cycle(T0 + datetime.timedelta(minutes=1))
  assert second.published == 1
  assert store.lessons["lesson-te"].status == LessonStatus.PUBLISHED.value


@pytest.mark.anyio
async def test_telugu_program_end_to_end(store, scheduler_settings):
  # Draft program, one term, two Telugu lessons; only the complete one goes live.
  store.add_program("prog-te")
  store.add_term("term-1", "prog-te")
  store.add_lesson("lesson-1", "term-1", status=LessonStatus.SCHEDULED.value, publish_at=T0)
  store.add_lesson("lesson-2", "term-1", status=LessonStatus.SCHEDULED.value, publish_at=T0 + datetime.timedelta(minutes=2))
  store.add_required_thumbnails("lesson-1", "te")
  store.add_thumbnail("lesson-2", "en", "portrait")
  store.add_thumbnail("lesson-2", "en", "landscape")

  report = await _publisher(store, scheduler_settings).run_cycle(T0 + datetime.timedelta(minutes=5))

  outcomes = {result.lesson_id: result.outcome for result in report.results}
  assert outcomes == {"lesson-1": ItemOutcome.PUBLISHED, "lesson-2": ItemOutcome.MISSING_ASSETS}
  assert store.programs["prog-te"].status == ProgramStatus.PUBLISHED.value
  assert store.lessons["lesson-2"].status == LessonStatus.SCHEDULED.value


@pytest.mark.anyio
async def test_claim_order_and_batch_limit(store, scheduler_settings):
  settings = dataclasses.replace(scheduler_settings, batch_size=2)
  store.add_program("prog")
  store.add_term("term", "prog")
  for index, offset in enumerate((3, 1, 2)):
    lesson_id = f"lesson-{index}"
    store.add_lesson(lesson_id, "term", status=LessonStatus.SCHEDULED.value, publish_at=T0 - datetime.timedelta(minutes=offset))
    store.add_required_thumbnails(lesson_id, "te")

  report = await _publisher(store, settings).run_cycle(T0)

  assert [result.lesson_id for result in report.results] == ["lesson-0", "lesson-2"]
  assert store.lessons["lesson-1"].status == LessonStatus.SCHEDULED.value


@pytest.mark.anyio
async def test_concurrent_schedulers_publish_exactly_once(store, scheduler_settings):
  store.add_program("prog")
  store.add_term("term", "prog")
  for index in range(5):
    lesson_id = f"lesson-{index}"
    store.add_lesson(lesson_id, "term", status=LessonStatus.SCHEDULED.value, publish_at=T0)
    store.add_required_thumbnails(lesson_id, "te")

  first, second = await asyncio.gather(_publisher(store, scheduler_settings).run_cycle(T0), _publisher(store, scheduler_settings).run_cycle(T0))

  assert sorted(store.publish_log) == [f"lesson-{index}" for index in range(5)]
  assert first.published + second.published == 5
  assert first.programs_published + second.programs_published == 1
  assert first.failed == second.failed == 0


@pytest.mark.anyio
async def test_row_locked_by_another_session_is_skipped(telugu_program, scheduler_settings):
  telugu_program.add_required_thumbnails("lesson-te", "te")
  outsider = telugu_program.hold_lock("lesson-te")

  report = await _publisher(telugu_program, scheduler_settings).run_cycle(T0)
  assert report.found == 0
  assert telugu_program.lessons["lesson-te"].status == LessonStatus.SCHEDULED.value

  telugu_program.release(outsider)
  report = await _publisher(telugu_program, scheduler_settings).run_cycle(T0)
  assert report.published == 1


@pytest.mark.anyio
async def test_lesson_changed_after_claim_is_already_handled(telugu_program, scheduler_settings, monkeypatch):
  store = telugu_program
  store.add_required_thumbnails("lesson-te", "te")
  original_transaction = store.transaction
  opened = {"count": 0}

  # An editor archives the lesson between the claim and the per-lesson transaction.
  def _transaction():
    if opened["count"] == 1:
      store.lessons["lesson-te"].status = LessonStatus.ARCHIVED.value
      store.lessons["lesson-te"].publish_at = None
    opened["count"] += 1
    return original_transaction()

  monkeypatch.setattr(store, "transaction", _transaction)
  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  assert report.found == 1
  assert report.results[0].outcome is ItemOutcome.ALREADY_HANDLED
  assert store.publish_log == []


@pytest.mark.anyio
async def test_broken_ownership_chain_is_reported_and_batch_continues(store, scheduler_settings):
  store.add_program("prog")
  store.add_term("term", "prog")
  store.add_lesson("orphan", "missing-term", status=LessonStatus.SCHEDULED.value, publish_at=T0 - datetime.timedelta(minutes=1))
  store.add_lesson("lesson", "term", status=LessonStatus.SCHEDULED.value, publish_at=T0)
  store.add_required_thumbnails("orphan", "te")
  store.add_required_thumbnails("lesson", "te")

  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  outcomes = {result.lesson_id: result.outcome for result in report.results}
  assert outcomes == {"orphan": ItemOutcome.INTEGRITY_FAULT, "lesson": ItemOutcome.PUBLISHED}
  assert report.skip_reasons() == {"integrity_fault": 1}
  assert store.lessons["orphan"].status == LessonStatus.SCHEDULED.value


@pytest.mark.anyio
async def test_item_failure_rolls_back_and_batch_continues(store, scheduler_settings):
  store.add_program("prog")
  store.add_term("term", "prog")
  for lesson_id in ("lesson-a", "lesson-b"):
    store.add_lesson(lesson_id, "term", status=LessonStatus.SCHEDULED.value, publish_at=T0)
    store.add_required_thumbnails(lesson_id, "te")
  store.fail_on_transition.add("lesson-a")

  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  outcomes = {result.lesson_id: result for result in report.results}
  assert outcomes["lesson-a"].outcome is ItemOutcome.FAILED
  assert outcomes["lesson-a"].detail == "connectivity_error"
  assert outcomes["lesson-b"].outcome is ItemOutcome.PUBLISHED
  assert store.lessons["lesson-a"].status == LessonStatus.SCHEDULED.value


@pytest.mark.anyio
async def test_cascade_failure_rolls_back_lesson_publish(telugu_program, scheduler_settings):
  store = telugu_program
  store.add_required_thumbnails("lesson-te", "te")
  store.fail_on_program.add("prog-te")

  report = await _publisher(store, scheduler_settings).run_cycle(T0)

  assert report.failed == 1
  assert store.lessons["lesson-te"].status == LessonStatus.SCHEDULED.value
  assert store.lessons["lesson-te"].published_at is None
  assert store.programs["prog-te"].status == ProgramStatus.DRAFT.value
  assert store.publish_log == []


@pytest.mark.anyio
async def test_claim_failure_is_reported_not_raised(telugu_program, scheduler_settings):
  telugu_program.fail_claim = OperationalError("SELECT", {}, Exception("could not connect to server: Connection refused"))

  report = await _publisher(telugu_program, scheduler_settings).run_cycle(T0)

  assert report.found == 0
  assert report.error is not None
  assert report.error.startswith("connectivity_error")


@pytest.mark.anyio
async def test_stale_schedule_missing_assets_logs_warning(telugu_program, scheduler_settings, caplog):
  publisher = _publisher(telugu_program, scheduler_settings)
  stale_now = T0 + datetime.timedelta(seconds=scheduler_settings.stale_schedule_alert_seconds + 60)

  with caplog.at_level(logging.INFO, logger="curricula.jobs.scheduler"):
    await publisher.run_cycle(T0 + datetime.timedelta(minutes=1))
    assert not [record for record in caplog.records if record.levelno == logging.WARNING]
    await publisher.run_cycle(stale_now)

  warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
  assert len(warnings) == 1
  assert "lesson_id=lesson-te" in warnings[0].getMessage()
  assert "missing=portrait,landscape" in warnings[0].getMessage()


@pytest.mark.anyio
async def test_cycle_summary_is_logged(telugu_program, scheduler_settings, caplog):
  telugu_program.add_required_thumbnails("lesson-te", "te")
  with caplog.at_level(logging.INFO, logger="curricula.jobs.scheduler"):
    await _publisher(telugu_program, scheduler_settings).run_cycle(T0)
  summaries = [record.getMessage() for record in caplog.records if record.getMessage().startswith("Scheduler cycle complete")]
  assert len(summaries) == 1
  assert "found=1 published=1 skipped=0" in summaries[0]
  assert "programs_published=1" in summaries[0]
