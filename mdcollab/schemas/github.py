"""GitHub import/sync schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class RepoItem(BaseModel):
    """A folder or markdown file in a repository listing."""

    name: str
    path: str
    type: Literal["folder", "file"]
    size: int = 0
    sha: str | None = None
    download_url: str | None = None


class RepoListing(BaseModel):
    """Filtered contents of one repository directory."""

    owner: str
    repo: str
    path: str = ""
    items: list[RepoItem] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Outcome of importing a repository as a folder tree."""

    folder_id: str
    commit_sha: str | None = None
    folders_created: int = Field(default=0, ge=0)
    files_created: int = Field(default=0, ge=0)
    files_failed: int = Field(default=0, ge=0)
    folders_failed: int = Field(default=0, ge=0)
    entries_skipped: int = Field(default=0, ge=0)

    @property
    def message(self) -> str:
        return (
            f"Imported {self.files_created} files in {self.folders_created + 1} folders"
            f" ({self.files_failed} failed, {self.entries_skipped} skipped)"
        )


class SyncFolderResult(BaseModel):
    """Outcome of reconciling a mirrored folder against its repository."""

    folder_id: str
    up_to_date: bool = False
    commit_sha: str | None = None
    files_created: int = Field(default=0, ge=0)
    files_updated: int = Field(default=0, ge=0)
    files_unchanged: int = Field(default=0, ge=0)
    files_failed: int = Field(default=0, ge=0)
    folders_created: int = Field(default=0, ge=0)
    folders_failed: int = Field(default=0, ge=0)
    removed_files_count: int = Field(default=0, ge=0)
    removed_folders_count: int = Field(default=0, ge=0)

    @property
    def message(self) -> str:
        if self.up_to_date:
            return "No changes since last sync"
        return (
            f"Synced: {self.files_created} created, {self.files_updated} updated,"
            f" {self.files_unchanged} already up to date, {self.files_failed} failed,"
            f" {self.removed_files_count} files and {self.removed_folders_count} folders removed"
        )


class SyncFileResult(BaseModel):
    """Outcome of syncing a single mirrored file."""

    file_id: str
    synced: bool

    @property
    def message(self) -> str:
        if self.synced:
            return "File synced successfully from GitHub"
        return "File is already up to date"
