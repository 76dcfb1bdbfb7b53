"""Edit proposal model."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mdcollab.models.base import Base, new_id
from mdcollab.services.datetime_service import now_utc


class EditStatus(StrEnum):
    """Review state. ``APPROVED`` and ``REJECTED`` are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Edit(Base):
    """A proposed content change awaiting admin review."""

    __tablename__ = "edits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    file_id: Mapped[str] = mapped_column(String(36), ForeignKey("files.id"), nullable=False)
    editor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    original_content: Mapped[str] = mapped_column(Text, nullable=False)
    new_content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=EditStatus.PENDING)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_edits_file", "file_id"),
        Index("idx_edits_status", "status"),
    )
