"""Process entrypoint for the scheduled-publish worker."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from curricula.config import SchedulerSettings, get_scheduler_settings
from curricula.core.logging import initialize_logging
from curricula.jobs.scheduler import ScheduledLessonPublisher
from curricula.storage.postgres_publication_store import PostgresPublicationStore
from curricula.storage.publication_store import PublicationStore
from curricula.utils.db_retry import classify_db_failure

logger = logging.getLogger("curricula.jobs.runner")


def install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
  """Flip `stop_event` on SIGINT/SIGTERM so the loop drains after the current cycle."""

  def _on_signal(sig: signal.Signals) -> None:
    logger.info("Received signal %s, stopping after the current cycle", sig.name)
    stop_event.set()

  for sig in (signal.SIGINT, signal.SIGTERM):
    try:
      loop.add_signal_handler(sig, _on_signal, sig)
    except NotImplementedError:
      # Platforms without loop signal support fall back to a thread-safe flag flip.
      signal.signal(sig, lambda _signum, _frame: loop.call_soon_threadsafe(stop_event.set))


async def run(settings: SchedulerSettings, *, store: PublicationStore | None = None, once: bool = False, stop_event: asyncio.Event | None = None) -> int:
  """Run the scheduler and return the process exit code."""
  try:
    active_store = store or PostgresPublicationStore()
  except RuntimeError as exc:
    logger.error("Scheduler cannot start: %s", exc)
    return 1

  try:
    # Refuse to start against an unreachable store so the supervisor restarts us.
    try:
      await active_store.ping()
    except Exception as exc:  # noqa: BLE001
      classification = classify_db_failure(exc)
      logger.error("Scheduler startup check failed category=%s sqlstate=%s reason=%s", classification.category, classification.sqlstate or "none", classification.reason)
      return 1

    publisher = ScheduledLessonPublisher(store=active_store, settings=settings)
    if once:
      report = await publisher.run_cycle()
      return 1 if report.error else 0

    stop = stop_event or asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), stop)
    await publisher.run_forever(stop)
    return 0
  finally:
    await active_store.close()


def main(argv: list[str] | None = None) -> None:
  parser = argparse.ArgumentParser(description="Publish scheduled lessons whose publish time has arrived.")
  parser.add_argument("--once", action="store_true", help="Run a single cycle and exit.")
  args = parser.parse_args(argv)

  settings = get_scheduler_settings()
  initialize_logging(settings, process_name="scheduler")
  sys.exit(asyncio.run(run(settings, once=args.once)))


if __name__ == "__main__":
  main()
