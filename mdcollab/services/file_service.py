"""File service: creation, direct saves, publishing and deletion."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from mdcollab.exceptions import NotFoundError, ValidationError
from mdcollab.models.edit import Edit
from mdcollab.models.file import File, FileStatus, FileVersion
from mdcollab.models.folder import Folder
from mdcollab.schemas.file import FileDeleteResult
from mdcollab.services.access import (
    require_admin,
    require_editor,
    require_owner_or_admin,
    validate_id,
    validate_name,
)
from mdcollab.services.notification_service import delete_file_notifications

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor

logger = logging.getLogger(__name__)


def _require_content(content: str | None) -> str:
    if content is None:
        raise ValidationError("File content is required")
    return content


async def get_file(session: AsyncSession, file_id: str) -> File:
    """Load a file by id or raise NotFoundError."""
    file_id = validate_id(file_id, "file id")
    file = await session.get(File, file_id)
    if file is None:
        raise NotFoundError("File not found")
    return file


async def create_file(
    session: AsyncSession,
    actor: Actor,
    *,
    name: str,
    content: str,
    folder_id: str | None = None,
) -> File:
    """Create a file owned by the actor, recording the creation snapshot as version 0."""
    require_editor(actor)
    name = validate_name(name, "file name")
    content = _require_content(content)
    if folder_id is not None:
        folder_id = validate_id(folder_id, "folder id")
        if await session.get(Folder, folder_id) is None:
            raise NotFoundError("Folder not found")

    file = File(
        name=name,
        content=content,
        author_id=actor.user_id,
        folder_id=folder_id,
        status=FileStatus.APPROVED,
        published=True,
        versions=[FileVersion(content=content, updated_by=actor.user_id)],
    )
    session.add(file)
    await session.commit()
    logger.info("File %s (%s) created by %s", file.id, file.name, actor.user_id)
    return file


async def list_files(session: AsyncSession) -> list[File]:
    """All approved files, most recently updated first."""
    stmt = (
        select(File)
        .where(File.status == FileStatus.APPROVED)
        .order_by(File.updated_at.desc(), File.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_user_files(session: AsyncSession, actor: Actor) -> list[File]:
    stmt = (
        select(File)
        .where(File.author_id == actor.user_id)
        .order_by(File.updated_at.desc(), File.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_all_files(session: AsyncSession, actor: Actor) -> list[File]:
    """Every file regardless of status or publication (admin only)."""
    require_admin(actor)
    stmt = select(File).order_by(File.updated_at.desc(), File.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_file_versions(session: AsyncSession, file_id: str) -> list[FileVersion]:
    """Archived snapshots of a file, oldest first."""
    file = await get_file(session, file_id)
    stmt = select(FileVersion).where(FileVersion.file_id == file.id).order_by(FileVersion.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def save_file(
    session: AsyncSession,
    actor: Actor,
    file_id: str,
    *,
    content: str,
    name: str | None = None,
) -> File:
    """Overwrite a file directly, bypassing edit review (owner or admin)."""
    require_editor(actor)
    content = _require_content(content)
    file = await get_file(session, file_id)
    require_owner_or_admin(actor, file.author_id, "You can only save your own files")

    file.push_version(actor.user_id)
    file.content = content
    if name:
        file.name = validate_name(name, "file name")
    await session.commit()
    logger.info("File %s saved directly by %s", file.id, actor.user_id)
    return file


async def admin_update_file(
    session: AsyncSession, actor: Actor, file_id: str, *, content: str
) -> File:
    """Admin direct edit of any file's content."""
    require_admin(actor)
    content = _require_content(content)
    file = await get_file(session, file_id)

    file.push_version(actor.user_id)
    file.content = content
    await session.commit()
    logger.info("File %s updated by admin %s", file.id, actor.user_id)
    return file


async def set_published(
    session: AsyncSession, actor: Actor, file_id: str, *, published: bool
) -> File:
    require_admin(actor)
    file = await get_file(session, file_id)
    file.published = published
    await session.commit()
    return file


async def toggle_published(session: AsyncSession, actor: Actor, file_id: str) -> File:
    require_admin(actor)
    file = await get_file(session, file_id)
    file.published = not file.published
    await session.commit()
    return file


async def delete_file_dependents(
    session: AsyncSession, file_ids: Iterable[str]
) -> tuple[int, int, int]:
    """Delete edits, notifications and versions of ``file_ids``.

    Returns (edits_deleted, notifications_deleted, versions_deleted). Does not
    commit and does not delete the file rows themselves.
    """
    ids = list(file_ids)
    if not ids:
        return 0, 0, 0
    edit_result = await session.execute(
        delete(Edit).where(Edit.file_id.in_(ids)).execution_options(synchronize_session=False)
    )
    notifications_deleted = await delete_file_notifications(session, ids)
    version_result = await session.execute(
        delete(FileVersion)
        .where(FileVersion.file_id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    return edit_result.rowcount or 0, notifications_deleted, version_result.rowcount or 0


async def delete_files(session: AsyncSession, file_ids: Iterable[str]) -> tuple[int, int, int]:
    """Delete ``file_ids`` and all rows depending on them (no commit).

    Returns (files_deleted, edits_deleted, notifications_deleted).
    """
    ids = list(file_ids)
    if not ids:
        return 0, 0, 0
    edits_deleted, notifications_deleted, _ = await delete_file_dependents(session, ids)
    file_result = await session.execute(delete(File).where(File.id.in_(ids)))
    return file_result.rowcount or 0, edits_deleted, notifications_deleted


async def delete_file(session: AsyncSession, actor: Actor, file_id: str) -> FileDeleteResult:
    """Permanently delete a file with its edits, notifications and history."""
    require_editor(actor)
    file = await get_file(session, file_id)
    require_owner_or_admin(actor, file.author_id, "You can only delete your own files")

    file_name = file.name
    edits_deleted, notifications_deleted, versions_deleted = await delete_file_dependents(
        session, [file.id]
    )
    await session.execute(delete(File).where(File.id == file.id))
    await session.commit()
    logger.info(
        "Deleted file %s (%s) by %s: removed %d edits and %d notifications",
        file.id,
        file_name,
        actor.user_id,
        edits_deleted,
        notifications_deleted,
    )
    return FileDeleteResult(
        file_id=file.id,
        file_name=file_name,
        edits_deleted=edits_deleted,
        notifications_deleted=notifications_deleted,
        versions_deleted=versions_deleted,
    )
