from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from curricula.api.models import TopicCreateRequest, TopicResponse
from curricula.core.database import get_db
from curricula.core.security import READ_ROLES, WRITE_ROLES, Principal, require_role
from curricula.services.content import create_topic, list_topics

router = APIRouter()


@router.get("/topics", response_model=list[TopicResponse])
async def list_topics_endpoint(_principal: Principal = Depends(require_role(*READ_ROLES)), db_session: AsyncSession = Depends(get_db)) -> list[TopicResponse]:  # noqa: B008
  return [TopicResponse.model_validate(topic) for topic in await list_topics(db_session)]


@router.post("/topics", response_model=TopicResponse, status_code=status.HTTP_201_CREATED)
async def create_topic_endpoint(request: TopicCreateRequest, _principal: Principal = Depends(require_role(*WRITE_ROLES)), db_session: AsyncSession = Depends(get_db)) -> TopicResponse:  # noqa: B008
  return TopicResponse.model_validate(await create_topic(db_session, request.name))
