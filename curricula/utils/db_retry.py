"""Database failure classification for the publication paths.

The scheduler does not retry inside a cycle; the next cycle is the retry. Classification only decides how a
failure is logged and whether an operator should expect it to clear on its own.
"""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class DBFailureClassification:
  """Classification result for a database failure."""

  def __init__(self, *, retryable: bool, reason: str, sqlstate: str | None, category: str) -> None:
    self.retryable = retryable
    self.reason = reason
    self.sqlstate = sqlstate
    self.category = category


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract Postgres SQLSTATE from a SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    # asyncpg exposes sqlstate, psycopg exposes pgcode.
    for attr in ("sqlstate", "pgcode"):
      code = getattr(exc.orig, attr, None)
      if code:
        return str(code)
    cause = getattr(exc.orig, "__cause__", None)
    code = getattr(cause, "sqlstate", None)
    if code:
      return str(code)
  return None


_INTEGRITY_VIOLATIONS = {
  "23000": "integrity constraint violation",
  "23001": "restrict violation",
  "23502": "not null violation",
  "23503": "foreign key violation",
  "23505": "unique violation",
  "23514": "check constraint violation",
  "23P01": "exclusion constraint violation",
}

_CONNECTIVITY_PATTERNS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection", "refused")


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify a database failure as transient or permanent.

  Primary signal: Postgres SQLSTATE
  Fallback: Exception type and message patterns

  Transient (retryable on the next cycle):
    - 40001: serialization failure
    - 40P01: deadlock detected
    - 08xxx: connection exceptions
    - Connection drops/resets

  Permanent:
    - 23xxx: integrity violations (unique, FK, not null, check)
    - 42xxx: schema/SQL errors
    - 28xxx: permission/auth errors
    - Programming errors
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate == "40001":
    return DBFailureClassification(retryable=True, reason="Serialization failure - transaction conflict", sqlstate=sqlstate, category="serialization_conflict")

  if sqlstate == "40P01":
    return DBFailureClassification(retryable=True, reason="Deadlock detected", sqlstate=sqlstate, category="deadlock")

  if sqlstate == "55P03":
    return DBFailureClassification(retryable=False, reason="Lock not available (NOWAIT)", sqlstate=sqlstate, category="lock_timeout")

  if sqlstate == "57014":
    return DBFailureClassification(retryable=False, reason="Query canceled (timeout)", sqlstate=sqlstate, category="query_timeout")

  if sqlstate and sqlstate.startswith("08"):
    return DBFailureClassification(retryable=True, reason="Connection exception", sqlstate=sqlstate, category="connectivity_error")

  if sqlstate and sqlstate.startswith("23"):
    specific = _INTEGRITY_VIOLATIONS.get(sqlstate, "integrity constraint violation")
    return DBFailureClassification(retryable=False, reason=f"Integrity violation: {specific}", sqlstate=sqlstate, category="integrity_error")

  if sqlstate and sqlstate.startswith("42"):
    return DBFailureClassification(retryable=False, reason="Schema/SQL error (undefined table/column, syntax error)", sqlstate=sqlstate, category="schema_error")

  if sqlstate and sqlstate.startswith("28"):
    return DBFailureClassification(retryable=False, reason="Authentication/permission error", sqlstate=sqlstate, category="permission_error")

  # Fallback to exception type analysis
  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="Integrity constraint violation (detected by exception type)", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, (AttributeError, TypeError, ValueError, KeyError, IndexError)):
    return DBFailureClassification(retryable=False, reason=f"Programming error: {type(exc).__name__}", sqlstate=sqlstate, category="programming_error")

  if isinstance(exc, (OperationalError, ConnectionError, TimeoutError, OSError)):
    error_msg = str(exc).lower()
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(pattern in error_msg for pattern in _CONNECTIVITY_PATTERNS):
      return DBFailureClassification(retryable=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(retryable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  return DBFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")
