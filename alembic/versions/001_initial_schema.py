"""Initial schema: jobs, blog artifacts, publish targets.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("source_url", sa.Text, nullable=True),
        sa.Column("stage_state", sa.Text, nullable=False, server_default="pending"),
        sa.Column("transcript", sa.Text, nullable=True),
        sa.Column("transcript_language", sa.Text, nullable=True),
        sa.Column("transcript_confidence", sa.Float, nullable=True),
        sa.Column("duration_seconds", sa.Float, nullable=True),
        sa.Column("failure_kind", sa.Text, nullable=True),
        sa.Column("failure_message", sa.Text, nullable=True),
        sa.Column("failure_stage", sa.Text, nullable=True),
        sa.Column("last_error_kind", sa.Text, nullable=True),
        sa.Column("last_error_message", sa.Text, nullable=True),
        sa.Column("publish_requested", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
    )
    op.create_index("idx_jobs_owner_created", "jobs", ["owner_id", "created_at"])
    op.create_index("idx_jobs_stage_state", "jobs", ["stage_state"])

    op.create_table(
        "blog_artifacts",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("job_id", sa.Text, sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("word_count", sa.Integer, nullable=False),
        sa.Column("excerpt", sa.Text, nullable=True),
        sa.Column("seo_metadata", sa.Text, nullable=True),
        sa.Column("publish_state", sa.Text, nullable=False, server_default="draft"),
        sa.Column("external_post_ref", sa.Text, nullable=True),
        sa.Column("external_post_url", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.UniqueConstraint("job_id"),
    )

    op.create_table(
        "publish_targets",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("site_url", sa.Text, nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("app_password", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.UniqueConstraint("owner_id"),
    )


def downgrade() -> None:
    op.drop_table("publish_targets")
    op.drop_table("blog_artifacts")
    op.drop_index("idx_jobs_stage_state", table_name="jobs")
    op.drop_index("idx_jobs_owner_created", table_name="jobs")
    op.drop_table("jobs")
