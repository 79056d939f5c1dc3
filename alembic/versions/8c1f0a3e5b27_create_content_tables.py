"""create content tables

Revision ID: 8c1f0a3e5b27
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "8c1f0a3e5b27"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_VARIANTS = "variant IN ('portrait', 'landscape', 'square', 'banner')"
_ASSET_TYPES = "asset_type IN ('poster', 'thumbnail')"


def _timestamps() -> list[sa.Column]:
  return [
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
  ]


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "topics",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("name"),
  )

  op.create_table(
    "programs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("language_primary", sa.String(), nullable=False),
    sa.Column("languages_available", postgresql.ARRAY(sa.Text()), nullable=False),
    sa.Column("status", sa.String(), server_default="draft", nullable=False),
    sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
    sa.CheckConstraint("status IN ('draft', 'published', 'archived')", name="ck_programs_status"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_programs_status", "programs", ["status"])
  op.create_index("ix_programs_published_at", "programs", ["published_at"])

  op.create_table(
    "program_topics",
    sa.Column("program_id", sa.String(), nullable=False),
    sa.Column("topic_id", sa.String(), nullable=False),
    sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    sa.ForeignKeyConstraint(["topic_id"], ["topics.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("program_id", "topic_id"),
  )

  op.create_table(
    "terms",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("program_id", sa.String(), nullable=False),
    sa.Column("term_number", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("program_id", "term_number", name="ux_terms_program_term_number"),
  )
  op.create_index("ix_terms_program_id", "terms", ["program_id"])

  op.create_table(
    "lessons",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("term_id", sa.String(), nullable=False),
    sa.Column("lesson_number", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("content_type", sa.String(), nullable=False),
    sa.Column("duration_ms", sa.Integer(), nullable=True),
    sa.Column("is_paid", sa.Boolean(), server_default="false", nullable=False),
    sa.Column("content_language_primary", sa.String(), nullable=False),
    sa.Column("content_languages_available", postgresql.ARRAY(sa.Text()), nullable=False),
    sa.Column("content_urls_by_language", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("subtitle_languages", postgresql.ARRAY(sa.Text()), nullable=False),
    sa.Column("subtitle_urls_by_language", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", sa.String(), server_default="draft", nullable=False),
    sa.Column("publish_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
    sa.CheckConstraint("status IN ('draft', 'scheduled', 'published', 'archived')", name="ck_lessons_status"),
    sa.CheckConstraint("(status = 'scheduled') = (publish_at IS NOT NULL)", name="ck_lessons_publish_at_iff_scheduled"),
    sa.ForeignKeyConstraint(["term_id"], ["terms.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("term_id", "lesson_number", name="ux_lessons_term_lesson_number"),
  )
  op.create_index("ix_lessons_term_id", "lessons", ["term_id"])
  op.create_index("ix_lessons_status_publish_at", "lessons", ["status", "publish_at"])

  op.create_table(
    "lesson_assets",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("lesson_id", sa.String(), nullable=False),
    sa.Column("language", sa.String(), nullable=False),
    sa.Column("variant", sa.String(), nullable=False),
    sa.Column("asset_type", sa.String(), nullable=False),
    sa.Column("url", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint(_VARIANTS, name="ck_lesson_assets_variant"),
    sa.CheckConstraint(_ASSET_TYPES, name="ck_lesson_assets_asset_type"),
    sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("lesson_id", "language", "variant", "asset_type", name="ux_lesson_assets_lesson_language_variant_type"),
  )
  op.create_index("ix_lesson_assets_lesson_id", "lesson_assets", ["lesson_id"])

  op.create_table(
    "program_assets",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("program_id", sa.String(), nullable=False),
    sa.Column("language", sa.String(), nullable=False),
    sa.Column("variant", sa.String(), nullable=False),
    sa.Column("asset_type", sa.String(), nullable=False),
    sa.Column("url", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint(_VARIANTS, name="ck_program_assets_variant"),
    sa.CheckConstraint(_ASSET_TYPES, name="ck_program_assets_asset_type"),
    sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("program_id", "language", "variant", "asset_type", name="ux_program_assets_program_language_variant_type"),
  )
  op.create_index("ix_program_assets_program_id", "program_assets", ["program_id"])


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_table("program_assets")
  op.drop_table("lesson_assets")
  op.drop_table("lessons")
  op.drop_table("terms")
  op.drop_table("program_topics")
  op.drop_table("programs")
  op.drop_table("topics")
