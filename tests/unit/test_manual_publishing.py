"""Unit tests for the manual lesson transitions."""

from __future__ import annotations

import asyncio
import datetime
from datetime import UTC

import pytest
from curricula.jobs.scheduler import ScheduledLessonPublisher
from curricula.publishing.rules import AssetVariant, DenyReason, LessonStatus, ProgramStatus, PublicationDecision
from curricula.services import publishing as publishing_service
from curricula.services.publishing import (
  ConcurrentTransitionError,
  LessonNotFoundError,
  PublicationDeniedError,
  apply_lesson_status,
  archive_lesson,
  check_lesson_status_change,
  publish_lesson_now,
  revert_lesson_to_draft,
  schedule_lesson,
)

NOW = datetime.datetime(2025, 1, 15, 10, 0, tzinfo=UTC)


@pytest.fixture
def draft_lesson(store):
  store.add_program("prog")
  store.add_term("term", "prog")
  store.add_lesson("lesson", "term", language="te")
  return store


@pytest.mark.anyio
async def test_publish_now_cascades_program(draft_lesson):
  draft_lesson.add_required_thumbnails("lesson", "te")

  result = await publish_lesson_now(draft_lesson, "lesson", now=NOW)

  assert result.changed is True
  assert result.program_published is True
  assert draft_lesson.lessons["lesson"].status == LessonStatus.PUBLISHED.value
  assert draft_lesson.lessons["lesson"].published_at == NOW
  assert draft_lesson.programs["prog"].status == ProgramStatus.PUBLISHED.value
  assert draft_lesson.programs["prog"].published_at == NOW


@pytest.mark.anyio
async def test_publish_now_denied_without_thumbnails(draft_lesson):
  draft_lesson.add_thumbnail("lesson", "te", "landscape")

  with pytest.raises(PublicationDeniedError) as excinfo:
    await publish_lesson_now(draft_lesson, "lesson", now=NOW)

  assert excinfo.value.reason is DenyReason.MISSING_REQUIRED_ASSETS
  assert excinfo.value.missing_variants == (AssetVariant.PORTRAIT,)
  assert draft_lesson.lessons["lesson"].status == LessonStatus.DRAFT.value
  assert draft_lesson.programs["prog"].status == ProgramStatus.DRAFT.value


@pytest.mark.anyio
async def test_publish_now_is_a_noop_for_published_lesson(draft_lesson):
  draft_lesson.lessons["lesson"].status = LessonStatus.PUBLISHED.value
  draft_lesson.lessons["lesson"].published_at = NOW - datetime.timedelta(days=2)

  result = await publish_lesson_now(draft_lesson, "lesson", now=NOW)

  assert result.changed is False
  assert draft_lesson.lessons["lesson"].published_at == NOW - datetime.timedelta(days=2)
  assert draft_lesson.publish_log == []


@pytest.mark.anyio
async def test_republish_keeps_first_published_at(draft_lesson):
  first = NOW - datetime.timedelta(days=10)
  draft_lesson.lessons["lesson"].status = LessonStatus.ARCHIVED.value
  draft_lesson.lessons["lesson"].published_at = first
  draft_lesson.add_required_thumbnails("lesson", "te")

  await publish_lesson_now(draft_lesson, "lesson", now=NOW)

  assert draft_lesson.lessons["lesson"].status == LessonStatus.PUBLISHED.value
  assert draft_lesson.lessons["lesson"].published_at == first


@pytest.mark.anyio
async def test_unknown_lesson_raises_not_found(store):
  with pytest.raises(LessonNotFoundError):
    await publish_lesson_now(store, "missing", now=NOW)
  with pytest.raises(LessonNotFoundError):
    await archive_lesson(store, "missing", now=NOW)


@pytest.mark.anyio
async def test_schedule_without_assets_then_scheduler_defers(draft_lesson, scheduler_settings):
  publish_at = NOW + datetime.timedelta(hours=1)

  result = await schedule_lesson(draft_lesson, "lesson", publish_at=publish_at, now=NOW)

  assert result.status == LessonStatus.SCHEDULED.value
  assert draft_lesson.lessons["lesson"].publish_at == publish_at
  report = await ScheduledLessonPublisher(store=draft_lesson, settings=scheduler_settings).run_cycle(publish_at)
  assert report.skip_reasons() == {"missing_assets": 1}


@pytest.mark.anyio
async def test_schedule_in_the_past_is_rejected(draft_lesson):
  with pytest.raises(PublicationDeniedError) as excinfo:
    await schedule_lesson(draft_lesson, "lesson", publish_at=NOW - datetime.timedelta(minutes=1), now=NOW)
  assert excinfo.value.reason is DenyReason.INVALID_SCHEDULE_INSTANT
  assert draft_lesson.lessons["lesson"].status == LessonStatus.DRAFT.value


@pytest.mark.anyio
async def test_reschedule_moves_publish_instant(draft_lesson):
  await schedule_lesson(draft_lesson, "lesson", publish_at=NOW + datetime.timedelta(hours=1), now=NOW)
  await schedule_lesson(draft_lesson, "lesson", publish_at=NOW + datetime.timedelta(hours=3), now=NOW)
  assert draft_lesson.lessons["lesson"].publish_at == NOW + datetime.timedelta(hours=3)


@pytest.mark.anyio
async def test_archive_clears_schedule_and_skips_validation(draft_lesson):
  await schedule_lesson(draft_lesson, "lesson", publish_at=NOW + datetime.timedelta(hours=1), now=NOW)

  result = await archive_lesson(draft_lesson, "lesson", now=NOW)

  assert result.changed is True
  assert draft_lesson.lessons["lesson"].status == LessonStatus.ARCHIVED.value
  assert draft_lesson.lessons["lesson"].publish_at is None


@pytest.mark.anyio
async def test_archive_twice_reports_unchanged(draft_lesson):
  await archive_lesson(draft_lesson, "lesson", now=NOW)
  result = await archive_lesson(draft_lesson, "lesson", now=NOW)
  assert result.changed is False


@pytest.mark.anyio
async def test_revert_published_lesson_to_draft_keeps_program_published(draft_lesson):
  draft_lesson.add_required_thumbnails("lesson", "te")
  await publish_lesson_now(draft_lesson, "lesson", now=NOW)

  result = await revert_lesson_to_draft(draft_lesson, "lesson", now=NOW)

  assert result.status == LessonStatus.DRAFT.value
  assert draft_lesson.programs["prog"].status == ProgramStatus.PUBLISHED.value


@pytest.mark.anyio
async def test_manual_publish_waits_for_row_lock(draft_lesson):
  draft_lesson.add_required_thumbnails("lesson", "te")
  outsider = draft_lesson.hold_lock("lesson")

  task = asyncio.create_task(publish_lesson_now(draft_lesson, "lesson", now=NOW))
  await asyncio.sleep(0.01)
  assert not task.done()

  draft_lesson.release(outsider)
  result = await asyncio.wait_for(task, timeout=1)
  assert result.changed is True


@pytest.mark.anyio
async def test_lost_conditional_write_raises_conflict(draft_lesson, monkeypatch):
  draft_lesson.add_required_thumbnails("lesson", "te")
  original_transaction = draft_lesson.transaction

  def _transaction():
    context = original_transaction()

    class _Racing:
      async def __aenter__(self):
        tx = await context.__aenter__()

        async def _lost(*_args, **_kwargs):
          return 0

        tx.transition_lesson = _lost
        return tx

      async def __aexit__(self, *exc_info):
        return await context.__aexit__(*exc_info)

    return _Racing()

  monkeypatch.setattr(draft_lesson, "transaction", _transaction)
  with pytest.raises(ConcurrentTransitionError):
    await publish_lesson_now(draft_lesson, "lesson", now=NOW)


@pytest.mark.anyio
async def test_apply_lesson_status_routes_each_target(draft_lesson):
  draft_lesson.add_required_thumbnails("lesson", "te")

  scheduled = await apply_lesson_status(draft_lesson, "lesson", LessonStatus.SCHEDULED, publish_at=NOW + datetime.timedelta(minutes=5), now=NOW)
  published = await apply_lesson_status(draft_lesson, "lesson", LessonStatus.PUBLISHED, publish_at=None, now=NOW)
  archived = await apply_lesson_status(draft_lesson, "lesson", LessonStatus.ARCHIVED, publish_at=None, now=NOW)
  drafted = await apply_lesson_status(draft_lesson, "lesson", LessonStatus.DRAFT, publish_at=None, now=NOW)

  assert [scheduled.status, published.status, archived.status, drafted.status] == ["scheduled", "published", "archived", "draft"]
  assert draft_lesson.lessons["lesson"].publish_at is None


@pytest.mark.anyio
async def test_denied_archive_leaves_lesson_untouched(draft_lesson, monkeypatch):
  monkeypatch.setattr(publishing_service, "evaluate_transition", lambda *_args, **_kwargs: PublicationDecision.deny(DenyReason.MISSING_REQUIRED_ASSETS))

  with pytest.raises(PublicationDeniedError) as excinfo:
    await archive_lesson(draft_lesson, "lesson", now=NOW)

  assert excinfo.value.reason is DenyReason.MISSING_REQUIRED_ASSETS
  assert draft_lesson.lessons["lesson"].status == LessonStatus.DRAFT.value
  assert draft_lesson.lock_owner("lesson") is None


@pytest.mark.anyio
async def test_status_check_uses_pending_primary_language(draft_lesson):
  draft_lesson.add_required_thumbnails("lesson", "te")

  await check_lesson_status_change(draft_lesson, "lesson", LessonStatus.PUBLISHED, publish_at=None, now=NOW)
  with pytest.raises(PublicationDeniedError) as excinfo:
    await check_lesson_status_change(draft_lesson, "lesson", LessonStatus.PUBLISHED, publish_at=None, now=NOW, content_language_primary="en")

  assert excinfo.value.missing_variants == (AssetVariant.PORTRAIT, AssetVariant.LANDSCAPE)
  assert draft_lesson.lessons["lesson"].status == LessonStatus.DRAFT.value


@pytest.mark.anyio
async def test_status_check_rejects_schedule_without_instant(draft_lesson):
  draft_lesson.lessons["lesson"].status = LessonStatus.SCHEDULED.value
  draft_lesson.lessons["lesson"].publish_at = NOW + datetime.timedelta(days=1)

  with pytest.raises(PublicationDeniedError) as excinfo:
    await check_lesson_status_change(draft_lesson, "lesson", LessonStatus.SCHEDULED, publish_at=None, now=NOW)

  assert excinfo.value.reason is DenyReason.INVALID_SCHEDULE_INSTANT


@pytest.mark.anyio
async def test_status_check_allows_republish_and_reports_unknown_lesson(draft_lesson):
  draft_lesson.lessons["lesson"].status = LessonStatus.PUBLISHED.value

  await check_lesson_status_change(draft_lesson, "lesson", LessonStatus.PUBLISHED, publish_at=None, now=NOW)
  with pytest.raises(LessonNotFoundError):
    await check_lesson_status_change(draft_lesson, "missing", LessonStatus.ARCHIVED, publish_at=None, now=NOW)
