"""Import all SQLAlchemy ORM models so Alembic sees a complete metadata graph."""

from __future__ import annotations

# Import ORM modules for side effects so models register with Base.metadata.
import curricula.schema.content  # noqa: F401
from curricula.core.database import Base

metadata = Base.metadata
