import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from curricula.services.publishing import ConcurrentTransitionError, LessonNotFoundError, PublicationDeniedError
from curricula.utils.db_retry import classify_db_failure


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  # Keep native JSON primitives unchanged.
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly to avoid leaking non-serializable objects.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    # Remove nested input values from context payloads as well.
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  classification = classify_db_failure(exc)
  logger.error("Global exception request_id=%s path=%s error_type=%s category=%s", request_id, request.url.path, type(exc).__name__, classification.category, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from curricula.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  # Log 5xx HTTPExceptions with a traceback for diagnostics; do not expose `exc.detail` to callers.
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  # Preserve 4xx details for client-correctable errors.
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def lesson_not_found_exception_handler(request: Request, exc: LessonNotFoundError) -> JSONResponse:
  return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload({"error": "NOT_FOUND", "message": "Lesson not found"}, request_id=_request_id(request)))


async def publication_denied_exception_handler(request: Request, exc: PublicationDeniedError) -> JSONResponse:
  """Surface rule denials with their stable reason code."""
  detail: dict[str, Any] = {"error": "VALIDATION_ERROR", "reason": exc.reason.value}
  if exc.missing_variants:
    detail["missingThumbnails"] = [variant.value for variant in exc.missing_variants]
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(detail, request_id=_request_id(request)))


async def concurrent_transition_exception_handler(request: Request, exc: ConcurrentTransitionError) -> JSONResponse:
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.warning("Concurrent lesson transition request_id=%s lesson_id=%s", request_id, exc.lesson_id)
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload({"error": "CONFLICT", "message": "Lesson was modified concurrently; reload and retry."}, request_id=request_id))


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
  """Report constraint violations (duplicate numbers, unknown parents) as conflicts."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  classification = classify_db_failure(exc)
  logger.warning("Integrity violation request_id=%s path=%s sqlstate=%s reason=%s", request_id, request.url.path, classification.sqlstate or "none", classification.reason)
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload({"error": "CONFLICT", "message": classification.reason}, request_id=request_id))
