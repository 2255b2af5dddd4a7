"""Database ORM models and connection management."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from vidblog.utils.db import get_engine, now_iso

__all__ = ["Base", "BlogArtifactRow", "JobRow", "PublishTargetRow", "get_engine", "metadata", "now_iso"]


class Base(DeclarativeBase):
    pass


class JobRow(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    owner_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    source_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stage_state: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="pending")
    transcript: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    transcript_language: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    transcript_confidence: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    failure_kind: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    failure_message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    failure_stage: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    last_error_kind: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    publish_requested: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    created_at: Mapped[str] = mapped_column(sa.Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(sa.Text, nullable=False)


class BlogArtifactRow(Base):
    __tablename__ = "blog_artifacts"
    __table_args__ = (sa.UniqueConstraint("job_id"),)

    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    job_id: Mapped[str] = mapped_column(sa.ForeignKey("jobs.id"), nullable=False)
    title: Mapped[str] = mapped_column(sa.Text, nullable=False)
    content: Mapped[str] = mapped_column(sa.Text, nullable=False)
    word_count: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    excerpt: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    seo_metadata: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    publish_state: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="draft")
    external_post_ref: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    external_post_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[str] = mapped_column(sa.Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(sa.Text, nullable=False)


class PublishTargetRow(Base):
    __tablename__ = "publish_targets"
    __table_args__ = (sa.UniqueConstraint("owner_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    site_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    username: Mapped[str] = mapped_column(sa.Text, nullable=False)
    app_password: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[str] = mapped_column(sa.Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(sa.Text, nullable=False)


sa.Index("idx_jobs_owner_created", JobRow.owner_id, JobRow.created_at)
sa.Index("idx_jobs_stage_state", JobRow.stage_state)

metadata = Base.metadata
