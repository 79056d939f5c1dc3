"""Seed a fresh database with demo topics, programs, terms and lessons."""

from __future__ import annotations

import argparse
import asyncio
import datetime
import logging
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports work when invoked directly.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from curricula.core.database import dispose_engine, get_session_factory
from curricula.services.seed import DEFAULT_SCHEDULE_OFFSET, seed_demo_content

logger = logging.getLogger("scripts.seed")


async def _seed(*, schedule_offset: datetime.timedelta) -> None:
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database session factory unavailable (CURRICULA_PG_DSN missing).")

  try:
    async with session_factory() as session:
      summary = await seed_demo_content(session, now=datetime.datetime.now(datetime.UTC), schedule_offset=schedule_offset)
  finally:
    await dispose_engine()

  if summary is not None:
    logger.info("Seeding complete: %s programs, %s terms, %s lessons (%s scheduled).", summary.programs, summary.terms, summary.lessons, summary.scheduled)


def main() -> None:
  parser = argparse.ArgumentParser(description="Seed demo content so the catalog and the scheduler have data to work on.")
  parser.add_argument("--dsn", type=str, default=(os.getenv("CURRICULA_PG_DSN") or "").strip(), help="Target PostgreSQL DSN (defaults to CURRICULA_PG_DSN).")
  parser.add_argument(
    "--schedule-offset-minutes",
    type=int,
    default=int(DEFAULT_SCHEDULE_OFFSET.total_seconds() // 60),
    help="Minutes from now for scheduled lessons; negative values make them due on the next scheduler cycle.",
  )
  args = parser.parse_args()

  logging.basicConfig(level=logging.INFO)
  if args.dsn:
    os.environ["CURRICULA_PG_DSN"] = args.dsn
  asyncio.run(_seed(schedule_offset=datetime.timedelta(minutes=args.schedule_offset_minutes)))


if __name__ == "__main__":
  main()
