"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_id() -> str:
  """Return a new content identifier."""
  return str(uuid.uuid4())
