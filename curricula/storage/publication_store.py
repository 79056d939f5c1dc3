"""Storage interfaces for lesson publication state."""

from __future__ import annotations

import datetime
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Protocol

from curricula.publishing.rules import LessonSnapshot


class ContentIntegrityError(RuntimeError):
  """Raised when a lesson's ownership chain (term, program) cannot be resolved."""

  def __init__(self, lesson_id: str, detail: str) -> None:
    super().__init__(f"Lesson {lesson_id}: {detail}")
    self.lesson_id = lesson_id
    self.detail = detail


@dataclass(frozen=True)
class LessonState:
  """Locked view of a lesson used to drive one status transition."""

  lesson_id: str
  term_id: str
  program_id: str
  status: str
  program_status: str
  publish_at: datetime.datetime | None
  published_at: datetime.datetime | None
  program_published_at: datetime.datetime | None
  snapshot: LessonSnapshot


class PublicationTransaction(Protocol):
  """Operations available inside one store transaction."""

  async def claim_due_lessons(self, *, now: datetime.datetime, limit: int) -> list[str]:
    """Return ids of scheduled lessons with publish_at <= now, skipping rows locked elsewhere."""

  async def load_lesson(self, lesson_id: str, *, skip_locked: bool) -> LessonState | None:
    """Lock and read one lesson with its assets and program status.

    Returns None when the lesson does not exist or, with `skip_locked`, is held by another transaction.
    """

  async def transition_lesson(self, lesson_id: str, *, expected_status: str, status: str, publish_at: datetime.datetime | None, published_at: datetime.datetime | None) -> int:
    """Set the lesson status only if it still equals `expected_status`; return rows changed.

    `published_at` only fills an empty column, so the first publish instant is kept.
    """

  async def publish_program(self, program_id: str, *, published_at: datetime.datetime) -> int:
    """Publish the program only if it is not already published; return rows changed."""


class PublicationStore(Protocol):
  """Transactional content store used by the scheduler and manual transitions."""

  def transaction(self) -> AbstractAsyncContextManager[PublicationTransaction]:
    """Open a transaction that commits on exit and rolls back on error."""

  async def ping(self) -> None:
    """Raise when the store cannot be reached."""

  async def close(self) -> None:
    """Release pooled resources."""
