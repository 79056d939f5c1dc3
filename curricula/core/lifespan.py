import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from curricula.core.database import dispose_engine, get_db_engine
from curricula.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Ensure logging is set up after uvicorn starts and release the pool on shutdown."""
  from curricula.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("curricula.core.lifespan")

  try:
    initialize_logging(settings, process_name="api")
    logger.info("Startup complete - logging verified. environment=%s", settings.environment)
  except Exception:  # noqa: BLE001
    # The service can still answer requests with the default handlers.
    logger.warning("Initial logging setup failed.", exc_info=True)

  if get_db_engine() is None:
    logger.warning("CURRICULA_PG_DSN is not set; database-backed routes will fail.")
  else:
    logger.info("Database configured dsn=%s", _redact_dsn(settings.pg_dsn))

  yield

  await dispose_engine()
  logger.info("Shutdown complete - database pool disposed.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
