"""Domain models for scheduled-publish cycles."""

from __future__ import annotations

import datetime
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum


class ItemOutcome(str, Enum):
  PUBLISHED = "published"
  ALREADY_HANDLED = "already_handled"
  MISSING_ASSETS = "missing_assets"
  INTEGRITY_FAULT = "integrity_fault"
  FAILED = "failed"


SKIP_OUTCOMES = frozenset({ItemOutcome.ALREADY_HANDLED, ItemOutcome.MISSING_ASSETS, ItemOutcome.INTEGRITY_FAULT})


@dataclass(frozen=True)
class ItemResult:
  """What happened to one claimed lesson."""

  lesson_id: str
  outcome: ItemOutcome
  program_id: str | None = None
  program_published: bool = False
  detail: str | None = None


@dataclass
class CycleReport:
  """Summary of one scheduler cycle."""

  started_at: datetime.datetime
  found: int = 0
  results: list[ItemResult] = field(default_factory=list)
  error: str | None = None
  duration_ms: int = 0

  def count(self, outcome: ItemOutcome) -> int:
    return sum(1 for result in self.results if result.outcome is outcome)

  @property
  def published(self) -> int:
    return self.count(ItemOutcome.PUBLISHED)

  @property
  def failed(self) -> int:
    return self.count(ItemOutcome.FAILED)

  @property
  def skipped(self) -> int:
    return sum(1 for result in self.results if result.outcome in SKIP_OUTCOMES)

  @property
  def programs_published(self) -> int:
    return sum(1 for result in self.results if result.program_published)

  def skip_reasons(self) -> dict[str, int]:
    counts = Counter(result.outcome.value for result in self.results if result.outcome in SKIP_OUTCOMES)
    return dict(sorted(counts.items()))
