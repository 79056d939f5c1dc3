from __future__ import annotations

import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from curricula.api.deps import get_now, get_publication_store
from curricula.api.models import AssetCreateRequest, AssetResponse, DeletedResponse, LessonCreateRequest, LessonResponse, LessonTransitionResponse, LessonUpdateRequest, ScheduleLessonRequest, lesson_response
from curricula.core.database import get_db
from curricula.core.security import READ_ROLES, WRITE_ROLES, Principal, require_role
from curricula.services.content import ContentValidationError, add_lesson_asset, create_lesson, delete_lesson_asset, get_lesson, update_lesson_content
from curricula.services.publishing import LessonNotFoundError, TransitionResult, apply_lesson_status, archive_lesson, check_lesson_status_change, publish_lesson_now, revert_lesson_to_draft, schedule_lesson
from curricula.storage.publication_store import PublicationStore

router = APIRouter()
logger = logging.getLogger(__name__)

_LESSON_NOT_FOUND = {"error": "NOT_FOUND", "message": "Lesson not found"}


async def _lesson_or_404(db_session: AsyncSession, lesson_id: str) -> LessonResponse:
  lesson = await get_lesson(db_session, lesson_id)
  if lesson is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_LESSON_NOT_FOUND)
  return lesson_response(lesson)


async def _transition_response(db_session: AsyncSession, result: TransitionResult) -> LessonTransitionResponse:
  lesson = await _lesson_or_404(db_session, result.lesson_id)
  return LessonTransitionResponse(lesson=lesson, changed=result.changed, program_published=result.program_published)


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson_endpoint(lesson_id: str, _principal: Principal = Depends(require_role(*READ_ROLES)), db_session: AsyncSession = Depends(get_db)) -> LessonResponse:  # noqa: B008
  return await _lesson_or_404(db_session, lesson_id)


@router.post("/terms/{term_id}/lessons", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson_endpoint(term_id: str, request: LessonCreateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> LessonResponse:  # noqa: B008
  lesson = await create_lesson(db_session, term_id, request)
  if lesson is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "NOT_FOUND", "message": "Term not found"})
  return lesson_response(lesson)


@router.put("/lessons/{lesson_id}", response_model=LessonResponse)
async def update_lesson_endpoint(
  lesson_id: str,
  request: LessonUpdateRequest,
  principal: Principal = Depends(require_role(*WRITE_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
  store: PublicationStore = Depends(get_publication_store),  # noqa: B008
  now: datetime.datetime = Depends(get_now),  # noqa: B008
) -> LessonResponse:
  """Update lesson content; a requested status goes through the same transition path as the action endpoints."""
  # A denied status must leave the content untouched.
  if request.status is not None:
    await check_lesson_status_change(store, lesson_id, request.status, publish_at=request.publish_at, now=now, content_language_primary=request.content_language_primary)

  try:
    lesson = await update_lesson_content(db_session, lesson_id, request.content_changes())
  except ContentValidationError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "VALIDATION_ERROR", "message": str(exc)}) from exc
  if lesson is None:
    raise LessonNotFoundError(lesson_id)

  if request.status is not None:
    result = await apply_lesson_status(store, lesson_id, request.status, publish_at=request.publish_at, now=now)
    logger.info("Lesson status requested via update subject=%s lesson_id=%s status=%s changed=%s", principal.subject, lesson_id, result.status, result.changed)

  return await _lesson_or_404(db_session, lesson_id)


@router.post("/lessons/{lesson_id}/publish", response_model=LessonTransitionResponse)
async def publish_lesson_endpoint(
  lesson_id: str,
  principal: Principal = Depends(require_role(*WRITE_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
  store: PublicationStore = Depends(get_publication_store),  # noqa: B008
  now: datetime.datetime = Depends(get_now),  # noqa: B008
) -> LessonTransitionResponse:
  """Publish now; the owning program is published too when it was not already."""
  result = await publish_lesson_now(store, lesson_id, now=now)
  logger.info("Publish requested subject=%s lesson_id=%s changed=%s program_published=%s", principal.subject, lesson_id, result.changed, result.program_published)
  return await _transition_response(db_session, result)


@router.post("/lessons/{lesson_id}/schedule", response_model=LessonTransitionResponse)
async def schedule_lesson_endpoint(
  lesson_id: str,
  request: ScheduleLessonRequest,
  _principal: Principal = Depends(require_role(*WRITE_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
  store: PublicationStore = Depends(get_publication_store),  # noqa: B008
  now: datetime.datetime = Depends(get_now),  # noqa: B008
) -> LessonTransitionResponse:
  result = await schedule_lesson(store, lesson_id, publish_at=request.publish_at, now=now)
  return await _transition_response(db_session, result)


@router.post("/lessons/{lesson_id}/archive", response_model=LessonTransitionResponse)
async def archive_lesson_endpoint(
  lesson_id: str,
  _principal: Principal = Depends(require_role(*WRITE_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
  store: PublicationStore = Depends(get_publication_store),  # noqa: B008
  now: datetime.datetime = Depends(get_now),  # noqa: B008
) -> LessonTransitionResponse:
  result = await archive_lesson(store, lesson_id, now=now)
  return await _transition_response(db_session, result)


@router.post("/lessons/{lesson_id}/draft", response_model=LessonTransitionResponse)
async def revert_lesson_endpoint(
  lesson_id: str,
  _principal: Principal = Depends(require_role(*WRITE_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
  store: PublicationStore = Depends(get_publication_store),  # noqa: B008
  now: datetime.datetime = Depends(get_now),  # noqa: B008
) -> LessonTransitionResponse:
  result = await revert_lesson_to_draft(store, lesson_id, now=now)
  return await _transition_response(db_session, result)


@router.post("/lessons/{lesson_id}/assets", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def add_lesson_asset_endpoint(lesson_id: str, request: AssetCreateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> AssetResponse:  # noqa: B008
  asset = await add_lesson_asset(db_session, lesson_id, request)
  if asset is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_LESSON_NOT_FOUND)
  return AssetResponse.model_validate(asset)


@router.delete("/lessons/{lesson_id}/assets/{asset_id}", response_model=DeletedResponse)
async def delete_lesson_asset_endpoint(lesson_id: str, asset_id: str, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> DeletedResponse:  # noqa: B008
  if not await delete_lesson_asset(db_session, lesson_id, asset_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "NOT_FOUND", "message": "Asset not found"})
  return DeletedResponse()
