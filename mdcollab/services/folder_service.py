"""Folder service: folder CRUD and cascades over the folder hierarchy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update

from mdcollab.exceptions import ConflictError, ForbiddenError, NotFoundError
from mdcollab.models.file import File, FileStatus
from mdcollab.models.folder import Folder
from mdcollab.schemas.file import BulkPublishResult
from mdcollab.schemas.folder import FolderDeleteResult, TreeNode
from mdcollab.services.access import (
    require_admin,
    require_editor,
    require_owner_or_admin,
    validate_id,
    validate_name,
)
from mdcollab.services.coordination import check_cancelled, subtree_locks
from mdcollab.services.file_service import delete_files
from mdcollab.services.tree import FolderIndex, FolderNode

if TYPE_CHECKING:
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor
    from mdcollab.services.coordination import SubtreeLocks

logger = logging.getLogger(__name__)


class NodeKind(StrEnum):
    """Kind of entity an id in the shared id namespace refers to."""

    FILE = "file"
    FOLDER = "folder"


@dataclass
class CollectedFile:
    """A file found under a folder subtree, with its folder path."""

    folder_path: str
    file: File

    @property
    def archive_path(self) -> str:
        return f"{self.folder_path}/{self.file.name}" if self.folder_path else self.file.name


async def load_folder_index(session: AsyncSession) -> FolderIndex:
    """Snapshot the whole folder hierarchy into an in-memory index."""
    result = await session.execute(select(Folder.id, Folder.parent_id, Folder.name))
    return FolderIndex(
        FolderNode(id=row.id, parent_id=row.parent_id, name=row.name) for row in result.all()
    )


async def resolve_node_kind(session: AsyncSession, node_id: str) -> NodeKind | None:
    """Tell whether ``node_id`` names a file, a folder, or nothing."""
    node_id = validate_id(node_id)
    if await session.scalar(select(File.id).where(File.id == node_id)) is not None:
        return NodeKind.FILE
    if await session.scalar(select(Folder.id).where(Folder.id == node_id)) is not None:
        return NodeKind.FOLDER
    return None


async def get_folder(session: AsyncSession, folder_id: str) -> Folder:
    """Load a folder by id or raise NotFoundError."""
    folder_id = validate_id(folder_id, "folder id")
    folder = await session.get(Folder, folder_id)
    if folder is None:
        raise NotFoundError("Folder not found")
    return folder


async def _sibling_named(
    session: AsyncSession,
    *,
    name: str,
    author_id: str,
    parent_id: str | None,
    exclude_id: str | None = None,
) -> Folder | None:
    stmt = select(Folder).where(
        Folder.name == name,
        Folder.author_id == author_id,
        Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id,
    )
    if exclude_id is not None:
        stmt = stmt.where(Folder.id != exclude_id)
    return await session.scalar(stmt.limit(1))


async def create_folder(
    session: AsyncSession,
    actor: Actor,
    *,
    name: str,
    parent_id: str | None = None,
) -> Folder:
    """Create a folder owned by the actor.

    The parent is fixed here and never changes afterwards, which keeps the
    hierarchy acyclic by construction.
    """
    require_editor(actor)
    name = validate_name(name, "folder name")
    if parent_id is not None:
        parent = await get_folder(session, parent_id)
        if not actor.is_admin and parent.author_id != actor.user_id:
            raise ForbiddenError("Cannot create folder in folder you do not own")
        parent_id = parent.id

    if await _sibling_named(session, name=name, author_id=actor.user_id, parent_id=parent_id):
        raise ConflictError("Folder with this name already exists in this location")

    folder = Folder(name=name, author_id=actor.user_id, parent_id=parent_id)
    session.add(folder)
    await session.commit()
    logger.info("Folder %s (%s) created by %s", folder.id, folder.name, actor.user_id)
    return folder


async def rename_folder(
    session: AsyncSession, actor: Actor, folder_id: str, *, name: str
) -> Folder:
    require_editor(actor)
    name = validate_name(name, "folder name")
    folder = await get_folder(session, folder_id)
    require_owner_or_admin(actor, folder.author_id, "You can only rename your own folders")

    duplicate = await _sibling_named(
        session,
        name=name,
        author_id=folder.author_id,
        parent_id=folder.parent_id,
        exclude_id=folder.id,
    )
    if duplicate is not None:
        raise ConflictError("Folder with this name already exists in this location")

    folder.name = name
    await session.commit()
    return folder


async def list_user_folders(session: AsyncSession, actor: Actor) -> list[Folder]:
    stmt = select(Folder).where(Folder.author_id == actor.user_id).order_by(Folder.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_all_folders(session: AsyncSession, actor: Actor) -> list[Folder]:
    require_admin(actor)
    result = await session.execute(select(Folder).order_by(Folder.name))
    return list(result.scalars().all())


async def get_all_folder_ids(session: AsyncSession, root_id: str) -> list[str]:
    """Root id plus every descendant folder id, depth-first."""
    root = await get_folder(session, root_id)
    index = await load_folder_index(session)
    return index.descendants(root.id)


async def build_published_folder_closure(session: AsyncSession) -> set[str]:
    """Folders holding a published file, plus all of their ancestors.

    The upward walk keeps otherwise-empty intermediate folders visible when
    they lead to a published file deeper down.
    """
    stmt = (
        select(File.folder_id)
        .where(
            File.status == FileStatus.APPROVED,
            File.published.is_(True),
            File.folder_id.is_not(None),
        )
        .distinct()
    )
    result = await session.execute(stmt)
    folder_ids = {row[0] for row in result.all()}
    if not folder_ids:
        return set()
    index = await load_folder_index(session)
    return index.upward_closure(folder_ids)


async def list_published_folders(session: AsyncSession) -> list[Folder]:
    folder_ids = await build_published_folder_closure(session)
    if not folder_ids:
        return []
    stmt = select(Folder).where(Folder.id.in_(folder_ids)).order_by(Folder.name)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def collect_files_recursive(session: AsyncSession, folder_id: str) -> list[CollectedFile]:
    """Every file under a folder subtree, grouped by folder in depth-first order.

    ``folder_path`` is the slash-joined names from the given folder down to
    the folder holding the file, the given folder included.
    """
    root = await get_folder(session, folder_id)
    index = await load_folder_index(session)
    folder_ids = index.descendants(root.id)
    stmt = select(File).where(File.folder_id.in_(folder_ids)).order_by(File.name)
    result = await session.execute(stmt)
    by_folder: dict[str, list[File]] = {}
    for file in result.scalars().all():
        by_folder.setdefault(file.folder_id or "", []).append(file)

    collected: list[CollectedFile] = []
    for fid in folder_ids:
        path = index.relative_path(fid, root.id)
        collected.extend(CollectedFile(folder_path=path, file=f) for f in by_folder.get(fid, []))
    return collected


async def get_folder_tree(session: AsyncSession, actor: Actor) -> list[TreeNode]:
    """Nested tree of the actor's folders and files; folders first, by name."""
    folders = (
        (await session.execute(select(Folder).where(Folder.author_id == actor.user_id)))
        .scalars()
        .all()
    )
    files = (
        (await session.execute(select(File).where(File.author_id == actor.user_id)))
        .scalars()
        .all()
    )
    index = FolderIndex(FolderNode(id=f.id, parent_id=f.parent_id, name=f.name) for f in folders)
    nodes: dict[str, TreeNode] = {
        f.id: TreeNode(
            id=f.id,
            name=f.name,
            type="folder",
            author_id=f.author_id,
            created_at=f.created_at,
            updated_at=f.updated_at,
        )
        for f in folders
    }

    files_by_folder: dict[str | None, list[TreeNode]] = {}
    for file in sorted(files, key=lambda f: (f.name, f.id)):
        files_by_folder.setdefault(file.folder_id, []).append(
            TreeNode(
                id=file.id,
                name=file.name,
                type="file",
                author_id=file.author_id,
                created_at=file.created_at,
                updated_at=file.updated_at,
                status=file.status,
                published=file.published,
            )
        )

    roots = index.children(None)
    for root_id in roots:
        for fid in index.post_order(root_id):
            child_folders = [nodes[cid] for cid in index.children(fid)]
            nodes[fid].children = child_folders + files_by_folder.get(fid, [])
    return [nodes[fid] for fid in roots] + files_by_folder.get(None, [])


async def bulk_publish(
    session: AsyncSession,
    actor: Actor,
    folder_id: str | None,
    *,
    published: bool,
) -> BulkPublishResult:
    """Set ``published`` on every file in a folder and its subfolders.

    With ``folder_id`` None only root-level files are targeted; that case is
    not a cascade. The count covers files whose flag actually changed.
    """
    require_admin(actor)
    if folder_id is None:
        target = File.folder_id.is_(None)
    else:
        folder_ids = await get_all_folder_ids(session, folder_id)
        target = File.folder_id.in_(folder_ids)

    stmt = update(File).where(target, File.published != published).values(published=published)
    result = await session.execute(stmt)
    await session.commit()
    modified = result.rowcount or 0
    logger.info(
        "Bulk %s %d files under %s",
        "published" if published else "unpublished",
        modified,
        folder_id or "<root>",
    )
    return BulkPublishResult(folder_id=folder_id, published=published, modified_count=modified)


async def delete_folder_tree(
    session: AsyncSession,
    folder_ids: list[str],
    result: FolderDeleteResult,
    *,
    cancel: asyncio.Event | None = None,
) -> None:
    """Delete ``folder_ids`` (already ordered children-first) and their files.

    Commits after each folder. There is no transaction around the whole
    walk: if a step fails or the walk is cancelled, folders processed before
    it stay deleted.
    """
    for fid in folder_ids:
        check_cancelled(cancel, "Folder delete")
        file_rows = await session.execute(select(File.id).where(File.folder_id == fid))
        files_deleted, edits_deleted, notifications_deleted = await delete_files(
            session, file_rows.scalars().all()
        )
        folder_result = await session.execute(delete(Folder).where(Folder.id == fid))
        await session.commit()
        result.folders_deleted += folder_result.rowcount or 0
        result.files_deleted += files_deleted
        result.edits_deleted += edits_deleted
        result.notifications_deleted += notifications_deleted


async def delete_folder(
    session: AsyncSession,
    actor: Actor,
    folder_id: str,
    *,
    locks: SubtreeLocks | None = None,
    cancel: asyncio.Event | None = None,
) -> FolderDeleteResult:
    """Delete a folder with all descendant folders, files, edits and notifications.

    Holds the advisory lock of the folder's top-level tree for the whole walk
    so overlapping cascades are serialized.
    """
    require_editor(actor)
    folder = await get_folder(session, folder_id)
    require_owner_or_admin(actor, folder.author_id, "You can only delete your own folders")

    index = await load_folder_index(session)
    tree_id = index.top_level_of(folder.id)
    async with (locks or subtree_locks).hold(tree_id):
        # Reload under the lock: a cascade we waited for may have removed it.
        index = await load_folder_index(session)
        if folder.id not in index:
            raise NotFoundError("Folder not found")
        result = FolderDeleteResult(folder_id=folder.id)
        await delete_folder_tree(session, index.post_order(folder.id), result, cancel=cancel)

    logger.info(
        "Deleted folder %s by %s: %d folders, %d files, %d edits, %d notifications",
        folder.id,
        actor.user_id,
        result.folders_deleted,
        result.files_deleted,
        result.edits_deleted,
        result.notifications_deleted,
    )
    return result
