from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError

from curricula.api.routes import catalog, health, lessons, programs, topics
from curricula.config import get_settings
from curricula.core.exceptions import (
  concurrent_transition_exception_handler,
  global_exception_handler,
  http_exception_handler,
  integrity_exception_handler,
  lesson_not_found_exception_handler,
  publication_denied_exception_handler,
  request_validation_exception_handler,
)
from curricula.core.lifespan import lifespan
from curricula.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from curricula.services.publishing import ConcurrentTransitionError, LessonNotFoundError, PublicationDeniedError

settings = get_settings()

app = FastAPI(title="Curricula CMS", lifespan=lifespan, docs_url=None if settings.environment == "production" else "/docs", redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(LessonNotFoundError, lesson_not_found_exception_handler)
app.add_exception_handler(PublicationDeniedError, publication_denied_exception_handler)
app.add_exception_handler(ConcurrentTransitionError, concurrent_transition_exception_handler)
app.add_exception_handler(IntegrityError, integrity_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(health.router, tags=["health"])
app.include_router(programs.router, prefix="/api/cms", tags=["programs"])
app.include_router(lessons.router, prefix="/api/cms", tags=["lessons"])
app.include_router(topics.router, prefix="/api/cms", tags=["topics"])
app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
