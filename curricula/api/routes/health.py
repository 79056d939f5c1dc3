from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from curricula.api.deps import get_publication_store
from curricula.storage.publication_store import PublicationStore
from curricula.utils.db_retry import classify_db_failure

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", include_in_schema=False)
async def health_check(store: PublicationStore = Depends(get_publication_store)) -> JSONResponse:  # noqa: B008
  """Report service and database reachability."""
  try:
    await store.ping()
  except Exception as exc:  # noqa: BLE001
    classification = classify_db_failure(exc)
    logger.warning("Health check database ping failed category=%s sqlstate=%s", classification.category, classification.sqlstate or "none")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "error", "database": "disconnected"})
  return JSONResponse(content={"status": "ok", "database": "connected"})
