from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from curricula.api.models import CatalogLesson, CatalogProgram, CatalogProgramPage
from curricula.config import Settings, get_settings
from curricula.core.database import get_db
from curricula.services.catalog import InvalidCursorError, clamp_page_size, get_catalog_lesson, get_catalog_program, list_catalog_programs

router = APIRouter()
logger = logging.getLogger(__name__)


def _set_cache_headers(response: Response, settings: Settings) -> None:
  response.headers["Cache-Control"] = f"public, max-age={settings.catalog_cache_seconds}"


@router.get("/programs", response_model=CatalogProgramPage)
async def list_catalog_programs_endpoint(
  response: Response,
  language: str | None = None,
  topic: str | None = None,
  cursor: str | None = None,
  limit: int | None = Query(default=None),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> CatalogProgramPage:
  """Public list of visible programs, newest publish first."""
  page_size = clamp_page_size(limit, settings.catalog_max_page_size)
  try:
    programs, next_cursor = await list_catalog_programs(db_session, language=language, topic=topic, cursor=cursor, limit=page_size)
  except InvalidCursorError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "INVALID_CURSOR", "message": str(exc)}) from exc
  _set_cache_headers(response, settings)
  return CatalogProgramPage(programs=programs, next_cursor=next_cursor)


@router.get("/programs/{program_id}", response_model=CatalogProgram)
async def get_catalog_program_endpoint(program_id: str, response: Response, settings: Settings = Depends(get_settings), db_session: AsyncSession = Depends(get_db)) -> CatalogProgram:  # noqa: B008
  program = await get_catalog_program(db_session, program_id)
  if program is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "NOT_FOUND", "message": "Program not found"})
  _set_cache_headers(response, settings)
  return program


@router.get("/lessons/{lesson_id}", response_model=CatalogLesson)
async def get_catalog_lesson_endpoint(lesson_id: str, response: Response, settings: Settings = Depends(get_settings), db_session: AsyncSession = Depends(get_db)) -> CatalogLesson:  # noqa: B008
  lesson = await get_catalog_lesson(db_session, lesson_id)
  if lesson is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "NOT_FOUND", "message": "Lesson not found"})
  _set_cache_headers(response, settings)
  return lesson
