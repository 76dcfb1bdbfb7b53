"""Folder-related schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class TreeNode(BaseModel):
    """Node of a nested folder/file tree."""

    id: str
    name: str
    type: Literal["folder", "file"]
    author_id: str
    created_at: datetime
    updated_at: datetime
    status: str | None = None
    published: bool | None = None
    children: list[TreeNode] = Field(default_factory=list)


class FolderDeleteResult(BaseModel):
    """Counters reported by a recursive folder delete."""

    folder_id: str
    folders_deleted: int = Field(default=0, ge=0)
    files_deleted: int = Field(default=0, ge=0)
    edits_deleted: int = Field(default=0, ge=0)
    notifications_deleted: int = Field(default=0, ge=0)
