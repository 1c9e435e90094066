"""baseline schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_KIND = sa.Enum("first_lesson", "lesson_audio", "comic_image", "recap", name="jobkind")
JOB_STATUS = sa.Enum("pending", "running", "succeeded", "failed", name="jobstatus")


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return cols


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("hashed_password", sa.String(1024), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_superuser", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_user_id", "user", ["id"])
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    op.create_table(
        "user_profile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("target_language", sa.String(32), nullable=False),
        sa.Column("user_language", sa.String(32), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "user_topic",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("topic", sa.String(64), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_user_topic_user_id", "user_topic", ["user_id"])

    op.create_table(
        "lesson",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_language", sa.String(32), nullable=False),
        sa.Column("user_language", sa.String(32), nullable=False),
        sa.Column("difficulty", sa.String(32), nullable=False),
        sa.Column("topics", sa.JSON(), nullable=False),
        sa.Column("lesson_number", sa.Integer(), nullable=False),
        sa.Column("total_sentences", sa.Integer(), nullable=False),
        sa.Column("content_key", sa.String(), nullable=True),
        sa.Column("comic_image_url", sa.String(), nullable=True),
        sa.Column("comic_image_generated", sa.Boolean(), nullable=False),
        sa.Column("is_recap_lesson", sa.Boolean(), nullable=False),
        sa.Column("recap_markdown_url", sa.String(), nullable=True),
        sa.Column("recap_generated", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "target_language", "lesson_number", name="uq_lesson_user_language_number"),
    )
    op.create_index("ix_lesson_id", "lesson", ["id"])
    op.create_index("ix_lesson_user_id", "lesson", ["user_id"])

    op.create_table(
        "sentence",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lesson.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_text", sa.Text(), nullable=False),
        sa.Column("user_text", sa.Text(), nullable=False),
        sa.Column("audio_url", sa.String(), nullable=True),
        sa.Column("audio_generated", sa.Boolean(), nullable=False),
        sa.Column("sentence_order", sa.Integer(), nullable=False),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.String(32), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("lesson_id", "sentence_order", name="uq_sentence_lesson_order"),
    )
    op.create_index("ix_sentence_id", "sentence", ["id"])
    op.create_index("ix_sentence_lesson_id", "sentence", ["lesson_id"])
    op.create_index("ix_sentence_user_id", "sentence", ["user_id"])

    op.create_table(
        "sentence_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sentence_id", sa.Integer(), sa.ForeignKey("sentence.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lesson.id", ondelete="CASCADE"), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("practice_count", sa.Integer(), nullable=False),
        sa.Column("last_practiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mastery_level", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "sentence_id", name="uq_progress_user_sentence"),
        sa.CheckConstraint("mastery_level >= 0 AND mastery_level <= 5", name="ck_progress_mastery_range"),
    )
    op.create_index("ix_sentence_progress_lesson_id", "sentence_progress", ["lesson_id"])
    op.create_index("ix_progress_user_practiced", "sentence_progress", ["user_id", "last_practiced_at"])

    op.create_table(
        "generation_job",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", JOB_KIND, nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lesson.id", ondelete="CASCADE"), nullable=True),
        sa.Column("status", JOB_STATUS, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_generation_job_user_id", "generation_job", ["user_id"])
    op.create_index("ix_generation_job_lesson_id", "generation_job", ["lesson_id"])


def downgrade() -> None:
    op.drop_table("generation_job")
    op.drop_table("sentence_progress")
    op.drop_table("sentence")
    op.drop_table("lesson")
    op.drop_table("user_topic")
    op.drop_table("user_profile")
    op.drop_table("user")
