from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curricula.api.models import (
  AssetCreateRequest,
  AssetResponse,
  DeletedResponse,
  ProgramCreateRequest,
  ProgramDetailResponse,
  ProgramResponse,
  ProgramUpdateRequest,
  TermCreateRequest,
  TermResponse,
  program_detail_response,
  program_response,
)
from curricula.core.database import get_db
from curricula.core.security import READ_ROLES, WRITE_ROLES, Principal, require_role
from curricula.publishing.rules import ProgramStatus
from curricula.services.content import ContentValidationError, add_program_asset, create_program, create_term, delete_program_asset, get_program, list_programs, update_program

router = APIRouter()
logger = logging.getLogger(__name__)

_PROGRAM_NOT_FOUND = {"error": "NOT_FOUND", "message": "Program not found"}


def _validation_error(exc: ContentValidationError) -> HTTPException:
  return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "VALIDATION_ERROR", "message": str(exc)})


@router.get("/programs", response_model=list[ProgramResponse])
async def list_programs_endpoint(
  status_filter: ProgramStatus | None = Query(default=None, alias="status"),  # noqa: B008
  language: str | None = None,
  topic: str | None = None,
  _principal: Principal = Depends(require_role(*READ_ROLES)),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[ProgramResponse]:
  """List programs for authoring, optionally filtered by status, primary language and topic name."""
  programs = await list_programs(db_session, status=status_filter.value if status_filter else None, language=language, topic=topic)
  return [program_response(program) for program in programs]


@router.get("/programs/{program_id}", response_model=ProgramDetailResponse)
async def get_program_endpoint(program_id: str, _principal: Principal = Depends(require_role(*READ_ROLES)), db_session: AsyncSession = Depends(get_db)) -> ProgramDetailResponse:  # noqa: B008
  program = await get_program(db_session, program_id, with_terms=True)
  if program is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PROGRAM_NOT_FOUND)
  return program_detail_response(program)


@router.post("/programs", response_model=ProgramResponse, status_code=status.HTTP_201_CREATED)
async def create_program_endpoint(request: ProgramCreateRequest, principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> ProgramResponse:  # noqa: B008
  program = await create_program(db_session, request)
  logger.info("Program created by subject=%s program_id=%s", principal.subject, program.id)
  return program_response(program)


@router.put("/programs/{program_id}", response_model=ProgramResponse)
async def update_program_endpoint(program_id: str, request: ProgramUpdateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> ProgramResponse:  # noqa: B008
  try:
    program = await update_program(db_session, program_id, request)
  except ContentValidationError as exc:
    raise _validation_error(exc) from exc
  if program is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PROGRAM_NOT_FOUND)
  return program_response(program)


@router.post("/programs/{program_id}/assets", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def add_program_asset_endpoint(program_id: str, request: AssetCreateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> AssetResponse:  # noqa: B008
  asset = await add_program_asset(db_session, program_id, request)
  if asset is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PROGRAM_NOT_FOUND)
  return AssetResponse.model_validate(asset)


@router.delete("/programs/{program_id}/assets/{asset_id}", response_model=DeletedResponse)
async def delete_program_asset_endpoint(program_id: str, asset_id: str, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> DeletedResponse:  # noqa: B008
  if not await delete_program_asset(db_session, program_id, asset_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "NOT_FOUND", "message": "Asset not found"})
  return DeletedResponse()


@router.post("/programs/{program_id}/terms", response_model=TermResponse, status_code=status.HTTP_201_CREATED)
async def create_term_endpoint(program_id: str, request: TermCreateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> TermResponse:  # noqa: B008
  term = await create_term(db_session, program_id, request)
  if term is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PROGRAM_NOT_FOUND)
  return TermResponse(id=term.id, program_id=term.program_id, term_number=term.term_number, title=term.title)
