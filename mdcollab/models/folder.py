"""Folder model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mdcollab.models.base import Base, new_id
from mdcollab.services.datetime_service import now_utc


class Folder(Base):
    """A folder in an author's forest. ``parent_id`` of None means root level.

    The ``github_*`` columns are set on folders created by a repository import
    and describe which repository path the folder mirrors.
    """

    __tablename__ = "folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("folders.id"), nullable=True, default=None
    )

    github_owner: Mapped[str | None] = mapped_column(String, nullable=True)
    github_repo: Mapped[str | None] = mapped_column(String, nullable=True)
    github_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_last_commit_sha: Mapped[str | None] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )

    __table_args__ = (Index("idx_folders_author_parent", "author_id", "parent_id"),)

    @property
    def is_github_mirror(self) -> bool:
        return bool(self.github_repo)
