"""Shared FastAPI dependencies for the publication store and request time."""

from __future__ import annotations

import datetime
import logging
from datetime import UTC
from functools import lru_cache

from fastapi import HTTPException, status

from curricula.storage.postgres_publication_store import PostgresPublicationStore
from curricula.storage.publication_store import PublicationStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _build_publication_store() -> PostgresPublicationStore:
  return PostgresPublicationStore()


def get_publication_store() -> PublicationStore:
  """Return the process-wide publication store."""
  try:
    return _build_publication_store()
  except RuntimeError as exc:
    logger.error("Publication store unavailable: %s", exc)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"error": "SERVICE_UNAVAILABLE", "message": "Database is not configured"}) from exc


def get_now() -> datetime.datetime:
  """Reference instant for rule evaluation within one request."""
  return datetime.datetime.now(UTC)
