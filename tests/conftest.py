"""Shared fixtures: an in-memory publication store that mimics row locks and SKIP LOCKED claims."""

from __future__ import annotations

import asyncio
import datetime
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC
from typing import Any

import pytest

# Ensure required settings are available before importing the app.
os.environ.setdefault("CURRICULA_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("CURRICULA_JWT_SECRET", "test-secret-key-with-enough-length-32b")

from curricula.config import SchedulerSettings  # noqa: E402
from curricula.publishing.rules import AssetSnapshot, LessonSnapshot, LessonStatus, ProgramStatus  # noqa: E402
from curricula.storage.publication_store import ContentIntegrityError, LessonState  # noqa: E402

T0 = datetime.datetime(2025, 1, 15, 10, 0, tzinfo=UTC)


@dataclass
class FakeProgram:
  status: str = ProgramStatus.DRAFT.value
  published_at: datetime.datetime | None = None


@dataclass
class FakeLesson:
  term_id: str
  content_language_primary: str
  status: str = LessonStatus.DRAFT.value
  publish_at: datetime.datetime | None = None
  published_at: datetime.datetime | None = None
  assets: list[AssetSnapshot] = field(default_factory=list)


class InMemoryTransaction:
  """Buffers writes until commit; row locks are held until the transaction ends."""

  def __init__(self, store: InMemoryPublicationStore) -> None:
    self._store = store
    self.locked: set[str] = set()
    self.pending_lessons: dict[str, dict[str, Any]] = {}
    self.pending_programs: dict[str, dict[str, Any]] = {}

  async def claim_due_lessons(self, *, now: datetime.datetime, limit: int) -> list[str]:
    await asyncio.sleep(0)
    if self._store.fail_claim is not None:
      raise self._store.fail_claim
    due = sorted(
      ((lesson.publish_at, lesson_id) for lesson_id, lesson in self._store.lessons.items() if lesson.status == LessonStatus.SCHEDULED.value and lesson.publish_at is not None and lesson.publish_at <= now),
    )
    claimed: list[str] = []
    for _publish_at, lesson_id in due:
      if len(claimed) >= limit:
        break
      # SKIP LOCKED: rows held by other transactions are invisible to this claim.
      if self._store.lock_owner(lesson_id) not in (None, self):
        continue
      self._store.acquire(lesson_id, self)
      claimed.append(lesson_id)
    return claimed

  async def load_lesson(self, lesson_id: str, *, skip_locked: bool) -> LessonState | None:
    await asyncio.sleep(0)
    if lesson_id not in self._store.lessons:
      return None
    owner = self._store.lock_owner(lesson_id)
    if owner not in (None, self):
      if skip_locked:
        return None
      await self._store.wait_for_unlock(lesson_id)
    self._store.acquire(lesson_id, self)

    lesson = self._store.lessons.get(lesson_id)
    if lesson is None:
      return None
    program_id = self._store.terms.get(lesson.term_id)
    if program_id is None:
      raise ContentIntegrityError(lesson_id, f"term {lesson.term_id} not found")
    program = self._store.programs.get(program_id)
    if program is None:
      raise ContentIntegrityError(lesson_id, f"program {program_id} not found")

    snapshot = LessonSnapshot(lesson_id=lesson_id, status=lesson.status, content_language_primary=lesson.content_language_primary, assets=tuple(lesson.assets), program_status=program.status, publish_at=lesson.publish_at)
    return LessonState(
      lesson_id=lesson_id,
      term_id=lesson.term_id,
      program_id=program_id,
      status=lesson.status,
      program_status=program.status,
      publish_at=lesson.publish_at,
      published_at=lesson.published_at,
      program_published_at=program.published_at,
      snapshot=snapshot,
    )

  async def transition_lesson(self, lesson_id: str, *, expected_status: str, status: str, publish_at: datetime.datetime | None, published_at: datetime.datetime | None) -> int:
    await asyncio.sleep(0)
    if lesson_id in self._store.fail_on_transition:
      raise ConnectionError("connection reset by peer")
    lesson = self._store.lessons.get(lesson_id)
    current = self.pending_lessons.get(lesson_id, {}).get("status", lesson.status if lesson else None)
    if lesson is None or current != expected_status:
      return 0
    changes: dict[str, Any] = {"status": status, "publish_at": publish_at}
    if published_at is not None and lesson.published_at is None:
      changes["published_at"] = published_at
    self.pending_lessons.setdefault(lesson_id, {}).update(changes)
    return 1

  async def publish_program(self, program_id: str, *, published_at: datetime.datetime) -> int:
    await asyncio.sleep(0)
    if program_id in self._store.fail_on_program:
      raise ConnectionError("server closed the connection unexpectedly")
    # An UPDATE waits for a concurrent writer of the same row, then re-reads committed state.
    while self._store.program_locks.get(program_id) not in (None, self):
      await self._store.wait_for_release()
    program = self._store.programs.get(program_id)
    current = self.pending_programs.get(program_id, {}).get("status", program.status if program else None)
    if program is None or current == ProgramStatus.PUBLISHED.value:
      return 0
    self._store.program_locks[program_id] = self
    changes: dict[str, Any] = {"status": ProgramStatus.PUBLISHED.value}
    if program.published_at is None:
      changes["published_at"] = published_at
    self.pending_programs.setdefault(program_id, {}).update(changes)
    return 1

  def commit(self) -> None:
    for lesson_id, changes in self.pending_lessons.items():
      lesson = self._store.lessons[lesson_id]
      for key, value in changes.items():
        setattr(lesson, key, value)
      if changes.get("status") == LessonStatus.PUBLISHED.value:
        self._store.publish_log.append(lesson_id)
    for program_id, changes in self.pending_programs.items():
      program = self._store.programs[program_id]
      for key, value in changes.items():
        setattr(program, key, value)


class InMemoryPublicationStore:
  """Publication store double with commit/rollback and per-row locks."""

  def __init__(self) -> None:
    self.programs: dict[str, FakeProgram] = {}
    self.terms: dict[str, str] = {}
    self.lessons: dict[str, FakeLesson] = {}
    self.publish_log: list[str] = []
    self.fail_claim: Exception | None = None
    self.fail_on_transition: set[str] = set()
    self.fail_on_program: set[str] = set()
    self.ping_error: Exception | None = None
    self.closed = False
    self.transactions_opened = 0
    self.program_locks: dict[str, InMemoryTransaction] = {}
    self._locks: dict[str, InMemoryTransaction] = {}
    self._released = asyncio.Event()

  # Seeding helpers
  def add_program(self, program_id: str, *, status: str = ProgramStatus.DRAFT.value, published_at: datetime.datetime | None = None) -> None:
    self.programs[program_id] = FakeProgram(status=status, published_at=published_at)

  def add_term(self, term_id: str, program_id: str) -> None:
    self.terms[term_id] = program_id

  def add_lesson(self, lesson_id: str, term_id: str, *, language: str = "te", status: str = LessonStatus.DRAFT.value, publish_at: datetime.datetime | None = None, published_at: datetime.datetime | None = None) -> FakeLesson:
    lesson = FakeLesson(term_id=term_id, content_language_primary=language, status=status, publish_at=publish_at, published_at=published_at)
    self.lessons[lesson_id] = lesson
    return lesson

  def add_thumbnail(self, lesson_id: str, language: str, variant: str) -> None:
    self.lessons[lesson_id].assets.append(AssetSnapshot(language=language, variant=variant, asset_type="thumbnail"))

  def add_required_thumbnails(self, lesson_id: str, language: str) -> None:
    self.add_thumbnail(lesson_id, language, "portrait")
    self.add_thumbnail(lesson_id, language, "landscape")

  # Lock bookkeeping
  def lock_owner(self, lesson_id: str) -> InMemoryTransaction | None:
    return self._locks.get(lesson_id)

  def acquire(self, lesson_id: str, tx: InMemoryTransaction) -> None:
    self._locks[lesson_id] = tx
    tx.locked.add(lesson_id)

  def hold_lock(self, lesson_id: str) -> InMemoryTransaction:
    """Simulate another session holding the row lock."""
    outsider = InMemoryTransaction(self)
    self.acquire(lesson_id, outsider)
    return outsider

  def release(self, tx: InMemoryTransaction) -> None:
    for lesson_id in tx.locked:
      if self._locks.get(lesson_id) is tx:
        del self._locks[lesson_id]
    tx.locked.clear()
    for program_id in [program_id for program_id, owner in self.program_locks.items() if owner is tx]:
      del self.program_locks[program_id]
    self._released.set()
    self._released = asyncio.Event()

  async def wait_for_release(self) -> None:
    await self._released.wait()

  async def wait_for_unlock(self, lesson_id: str) -> None:
    while self._locks.get(lesson_id) is not None:
      await self.wait_for_release()

  @asynccontextmanager
  async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
    self.transactions_opened += 1
    tx = InMemoryTransaction(self)
    try:
      yield tx
    except BaseException:
      # Rollback: discard buffered writes.
      self.release(tx)
      raise
    tx.commit()
    self.release(tx)

  async def ping(self) -> None:
    if self.ping_error is not None:
      raise self.ping_error

  async def close(self) -> None:
    self.closed = True


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def store() -> InMemoryPublicationStore:
  return InMemoryPublicationStore()


@pytest.fixture
def scheduler_settings(tmp_path: Any) -> SchedulerSettings:
  return SchedulerSettings(
    environment="test",
    debug=False,
    log_dir=str(tmp_path),
    log_max_bytes=1_000_000,
    log_backup_count=1,
    poll_interval_seconds=0.01,
    batch_size=100,
    stale_schedule_alert_seconds=3600,
  )


@pytest.fixture
def telugu_program(store: InMemoryPublicationStore) -> InMemoryPublicationStore:
  """A draft program with one term and a Telugu lesson scheduled at T0."""
  store.add_program("prog-te")
  store.add_term("term-1", "prog-te")
  store.add_lesson("lesson-te", "term-1", language="te", status=LessonStatus.SCHEDULED.value, publish_at=T0)
  return store
