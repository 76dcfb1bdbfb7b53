"""File-related schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BulkPublishResult(BaseModel):
    """Outcome of publishing or unpublishing every file in a folder closure."""

    folder_id: str | None
    published: bool
    modified_count: int = Field(default=0, ge=0)

    @property
    def message(self) -> str:
        action = "published" if self.published else "unpublished"
        return f"{self.modified_count} files {action} successfully"


class FileDeleteResult(BaseModel):
    """What was removed along with a file."""

    file_id: str
    file_name: str
    edits_deleted: int = Field(default=0, ge=0)
    notifications_deleted: int = Field(default=0, ge=0)
    versions_deleted: int = Field(default=0, ge=0)
