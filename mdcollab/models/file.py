"""File and file version models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mdcollab.models.base import Base, new_id
from mdcollab.services.datetime_service import now_utc


class FileStatus(StrEnum):
    """Moderation status. Every write path produces ``APPROVED``."""

    DRAFT = "draft"
    APPROVED = "approved"


class File(Base):
    """A markdown document. ``folder_id`` of None means root level."""

    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    folder_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("folders.id"), nullable=True, default=None
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=FileStatus.APPROVED)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    github_owner: Mapped[str | None] = mapped_column(String, nullable=True)
    github_repo: Mapped[str | None] = mapped_column(String, nullable=True)
    github_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_download_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )

    versions: Mapped[list[FileVersion]] = relationship(
        back_populates="file",
        cascade="all, delete-orphan",
        order_by="FileVersion.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_files_folder", "folder_id"),
        Index("idx_files_author", "author_id"),
    )

    def push_version(self, updated_by: str) -> None:
        """Archive the current content. Call before overwriting ``content``."""
        self.versions.append(FileVersion(content=self.content, updated_by=updated_by))


class FileVersion(Base):
    """Archived content snapshot, captured immediately before an overwrite."""

    __tablename__ = "file_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )

    file: Mapped[File] = relationship(back_populates="versions")
