"""GitHub mirror: import a public repository's markdown tree and keep it in sync.

The mirror is one-directional (GitHub -> local). Local edits to mirrored
files are never pushed back and are overwritten by the next sync that sees
different upstream content (the overwritten text stays in the version
history).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from mdcollab.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from mdcollab.models.file import File, FileStatus, FileVersion
from mdcollab.models.folder import Folder
from mdcollab.schemas.github import (
    ImportResult,
    RepoItem,
    RepoListing,
    SyncFileResult,
    SyncFolderResult,
)
from mdcollab.services.access import require_editor, require_owner_or_admin
from mdcollab.services.coordination import check_cancelled, subtree_locks
from mdcollab.services.datetime_service import now_utc
from mdcollab.services.file_service import delete_files, get_file
from mdcollab.services.folder_service import (
    NodeKind,
    get_folder,
    load_folder_index,
    resolve_node_kind,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.github.client import ContentEntry, GitHubClient
    from mdcollab.services.access import Actor
    from mdcollab.services.coordination import SubtreeLocks

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"


def is_markdown_entry(entry: ContentEntry) -> bool:
    return entry.type == "file" and entry.name.endswith(MARKDOWN_SUFFIX)


def _require_repo(owner: str, repo: str) -> tuple[str, str]:
    owner, repo = (owner or "").strip(), (repo or "").strip()
    if not owner or not repo:
        raise ValidationError("Owner and repo are required")
    return owner, repo


async def browse_repository(
    client: GitHubClient, owner: str, repo: str, path: str = ""
) -> RepoListing:
    """List one repository directory, keeping only folders and markdown files."""
    owner, repo = _require_repo(owner, repo)
    try:
        entries = await client.list_contents(owner, repo, path)
    except UpstreamError as exc:
        if exc.status_code == 404:
            raise NotFoundError("Repository not found or is private") from exc
        raise
    items = [
        RepoItem(
            name=entry.name,
            path=entry.path,
            type="folder" if entry.type == "dir" else "file",
            size=entry.size,
            sha=entry.sha,
            download_url=entry.download_url,
        )
        for entry in entries
        if entry.type == "dir" or is_markdown_entry(entry)
    ]
    return RepoListing(owner=owner, repo=repo, path=path, items=items)


async def fetch_file_content(client: GitHubClient, url: str) -> str:
    if not url:
        raise ValidationError("File URL is required")
    return await client.fetch_raw(url)


async def _latest_sha(client: GitHubClient, owner: str, repo: str) -> str | None:
    """Latest commit SHA, or None when it cannot be determined."""
    try:
        return await client.latest_commit_sha(owner, repo)
    except UpstreamError as exc:
        logger.warning("Could not fetch latest commit of %s/%s: %s", owner, repo, exc)
        return None


async def _fetch_markdown(
    client: GitHubClient, entries: Sequence[ContentEntry], concurrency: int
) -> dict[str, str | UpstreamError]:
    """Fetch raw content of ``entries`` with at most ``concurrency`` requests in flight.

    Per-file failures are returned in place of the content so the caller can
    count them and continue.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def fetch_one(entry: ContentEntry) -> tuple[str, str | UpstreamError]:
        if not entry.download_url:
            return entry.path, UpstreamError(f"No download URL for {entry.path}")
        async with semaphore:
            try:
                return entry.path, await client.fetch_raw(entry.download_url)
            except UpstreamError as exc:
                return entry.path, exc

    results = await asyncio.gather(*(fetch_one(entry) for entry in entries))
    return dict(results)


def _mirror_file(
    *,
    entry: ContentEntry,
    content: str,
    owner: str,
    repo: str,
    author_id: str,
    folder_id: str,
) -> File:
    return File(
        name=entry.name,
        content=content,
        author_id=author_id,
        folder_id=folder_id,
        status=FileStatus.APPROVED,
        published=True,
        github_owner=owner,
        github_repo=repo,
        github_path=entry.path,
        github_download_url=entry.download_url,
        github_last_synced_at=now_utc(),
        versions=[FileVersion(content=content, updated_by=author_id)],
    )


async def import_repository(
    session: AsyncSession,
    actor: Actor,
    client: GitHubClient,
    *,
    owner: str,
    repo: str,
    parent_folder_id: str | None = None,
    concurrency: int = 4,
    cancel: asyncio.Event | None = None,
) -> ImportResult:
    """Import every markdown file of a public repository as a new folder tree.

    The new root folder is named after the repository. Directories become
    folders and ``*.md`` files become files; anything else is skipped. A
    directory or file that cannot be fetched is logged, counted and skipped,
    so a partial import is a successful result with non-zero failure counters.
    Only a failure to list the repository root aborts the import; the new
    root folder is removed again so the import can be retried.
    """
    require_editor(actor)
    owner, repo = _require_repo(owner, repo)
    parent_id: str | None = None
    if parent_folder_id is not None:
        parent = await get_folder(session, parent_folder_id)
        if not actor.is_admin and parent.author_id != actor.user_id:
            raise ForbiddenError("Cannot import into folder you do not own")
        parent_id = parent.id

    existing = await session.scalar(
        select(Folder.id).where(
            Folder.name == repo,
            Folder.author_id == actor.user_id,
            Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id,
        )
    )
    if existing is not None:
        raise ConflictError(
            f'Folder "{repo}" already exists. Delete it first or choose a different location.'
        )

    commit_sha = await _latest_sha(client, owner, repo)
    root = Folder(
        name=repo,
        author_id=actor.user_id,
        parent_id=parent_id,
        github_owner=owner,
        github_repo=repo,
        github_path="",
        github_last_commit_sha=commit_sha,
    )
    session.add(root)
    await session.commit()
    result = ImportResult(folder_id=root.id, commit_sha=commit_sha)

    stack: list[tuple[str, str]] = [("", root.id)]
    while stack:
        check_cancelled(cancel, "Repository import")
        path, folder_id = stack.pop()
        try:
            entries = await client.list_contents(owner, repo, path)
        except UpstreamError as exc:
            if folder_id == root.id:
                await session.execute(delete(Folder).where(Folder.id == root.id))
                await session.commit()
                if exc.status_code == 404:
                    raise NotFoundError("Repository not found or is private") from exc
                raise UpstreamError(
                    f"Could not list {owner}/{repo} on GitHub: {exc.message}",
                    status_code=exc.status_code,
                ) from exc
            logger.error("Failed to list %s/%s:%s during import: %s", owner, repo, path, exc)
            result.folders_failed += 1
            continue

        markdown: list[ContentEntry] = []
        for entry in entries:
            if entry.type == "dir":
                subfolder = Folder(
                    name=entry.name,
                    author_id=actor.user_id,
                    parent_id=folder_id,
                    github_owner=owner,
                    github_repo=repo,
                    github_path=entry.path,
                )
                session.add(subfolder)
                await session.flush()
                result.folders_created += 1
                stack.append((entry.path, subfolder.id))
            elif is_markdown_entry(entry):
                markdown.append(entry)
            else:
                result.entries_skipped += 1

        fetched = await _fetch_markdown(client, markdown, concurrency)
        for entry in markdown:
            content = fetched[entry.path]
            if isinstance(content, UpstreamError):
                logger.error("Failed to fetch file %s during import: %s", entry.path, content)
                result.files_failed += 1
                continue
            session.add(
                _mirror_file(
                    entry=entry,
                    content=content,
                    owner=owner,
                    repo=repo,
                    author_id=actor.user_id,
                    folder_id=folder_id,
                )
            )
            result.files_created += 1
        await session.commit()

    logger.info(
        "Imported %s/%s into folder %s: %d folders, %d files, %d failed",
        owner,
        repo,
        root.id,
        result.folders_created,
        result.files_created,
        result.files_failed + result.folders_failed,
    )
    return result


def _under_any(path: str, prefixes: Sequence[str]) -> bool:
    for prefix in prefixes:
        if not prefix or path == prefix or path.startswith(f"{prefix}/"):
            return True
    return False


def _from_repo(node: File | Folder, owner: str, repo: str) -> bool:
    return node.github_owner == owner and node.github_repo == repo


async def sync_folder(
    session: AsyncSession,
    actor: Actor,
    client: GitHubClient,
    folder_id: str,
    *,
    concurrency: int = 4,
    locks: SubtreeLocks | None = None,
    cancel: asyncio.Event | None = None,
) -> SyncFolderResult:
    """Reconcile a mirrored folder subtree with the live repository.

    If the repository's latest commit SHA equals the one stored on the folder
    nothing is fetched. Otherwise the live tree is walked: new files and
    folders are created, changed files are overwritten (old content goes to
    the version history), and afterwards mirrored files that vanished
    upstream are deleted together with their edits and notifications.
    Mirrored folders that vanished upstream are deleted deepest first, and
    only once they hold no files or subfolders. Local-only files (no GitHub
    path) are never deleted by a sync.

    The stored SHA only advances after a walk without failures, so failed
    files are retried on the next sync.
    """
    require_editor(actor)
    folder = await get_folder(session, folder_id)
    require_owner_or_admin(actor, folder.author_id, "You can only sync your own folders")
    if not folder.is_github_mirror or not folder.github_owner:
        raise InvalidStateError("This folder was not imported from GitHub")

    index = await load_folder_index(session)
    tree_id = index.top_level_of(folder.id)
    async with (locks or subtree_locks).hold(tree_id):
        index = await load_folder_index(session)
        if folder.id not in index:
            raise NotFoundError("Folder not found")
        await session.refresh(folder)
        result = await _reconcile(
            session, actor, client, folder, concurrency=concurrency, cancel=cancel
        )

    logger.info("Sync of folder %s by %s: %s", folder.id, actor.user_id, result.message)
    return result


async def _reconcile(
    session: AsyncSession,
    actor: Actor,
    client: GitHubClient,
    folder: Folder,
    *,
    concurrency: int,
    cancel: asyncio.Event | None,
) -> SyncFolderResult:
    owner, repo = folder.github_owner or "", folder.github_repo or ""
    commit_sha = await _latest_sha(client, owner, repo)
    if commit_sha is not None and commit_sha == folder.github_last_commit_sha:
        return SyncFolderResult(folder_id=folder.id, up_to_date=True, commit_sha=commit_sha)

    result = SyncFolderResult(folder_id=folder.id, commit_sha=commit_sha)
    index = await load_folder_index(session)
    subtree = index.descendants(folder.id)
    local_files = list(
        (await session.execute(select(File).where(File.folder_id.in_(subtree)))).scalars().all()
    )
    local_folders = {
        f.id: f
        for f in (await session.execute(select(Folder).where(Folder.id.in_(subtree)))).scalars()
    }
    files_by_slot: dict[tuple[str, str], File] = {}
    for file in local_files:
        files_by_slot.setdefault((file.folder_id or "", file.name), file)

    live_file_paths: set[str] = set()
    live_folder_paths: set[str] = set()
    failed_dirs: list[str] = []

    stack: list[tuple[str, str]] = [(folder.github_path or "", folder.id)]
    while stack:
        check_cancelled(cancel, "Folder sync")
        path, local_id = stack.pop()
        try:
            entries = await client.list_contents(owner, repo, path)
        except UpstreamError as exc:
            if local_id == folder.id:
                raise UpstreamError(
                    f"Could not list {owner}/{repo} on GitHub: {exc.message}",
                    status_code=exc.status_code,
                ) from exc
            logger.error("Failed to list %s/%s:%s during sync: %s", owner, repo, path, exc)
            failed_dirs.append(path)
            result.folders_failed += 1
            continue

        markdown: list[ContentEntry] = []
        for entry in entries:
            if entry.type == "dir":
                live_folder_paths.add(entry.path)
                child_id = index.child_named(local_id, entry.name)
                if child_id is None:
                    subfolder = Folder(
                        name=entry.name,
                        author_id=folder.author_id,
                        parent_id=local_id,
                        github_owner=owner,
                        github_repo=repo,
                        github_path=entry.path,
                    )
                    session.add(subfolder)
                    await session.flush()
                    result.folders_created += 1
                    child_id = subfolder.id
                elif (
                    child_id in local_folders
                    and local_folders[child_id].is_github_mirror
                    and not _from_repo(local_folders[child_id], owner, repo)
                ):
                    # Another repository's mirror nested here is left to its own sync.
                    continue
                stack.append((entry.path, child_id))
            elif is_markdown_entry(entry):
                live_file_paths.add(entry.path)
                markdown.append(entry)

        fetched = await _fetch_markdown(client, markdown, concurrency)
        for entry in markdown:
            content = fetched[entry.path]
            if isinstance(content, UpstreamError):
                logger.error("Failed to fetch file %s during sync: %s", entry.path, content)
                result.files_failed += 1
                continue
            local = files_by_slot.get((local_id, entry.name))
            if local is None:
                session.add(
                    _mirror_file(
                        entry=entry,
                        content=content,
                        owner=owner,
                        repo=repo,
                        author_id=folder.author_id,
                        folder_id=local_id,
                    )
                )
                result.files_created += 1
                continue
            if local.content == content:
                result.files_unchanged += 1
            else:
                local.push_version(actor.user_id)
                local.content = content
                result.files_updated += 1
            local.github_owner = owner
            local.github_repo = repo
            local.github_path = entry.path
            local.github_download_url = entry.download_url
            local.github_last_synced_at = now_utc()
        await session.commit()

    check_cancelled(cancel, "Folder sync")
    orphan_file_ids = [
        f.id
        for f in local_files
        if f.github_path
        and _from_repo(f, owner, repo)
        and f.github_path not in live_file_paths
        and not _under_any(f.github_path, failed_dirs)
    ]
    if orphan_file_ids:
        removed, edits, notifications = await delete_files(session, orphan_file_ids)
        await session.commit()
        result.removed_files_count = removed
        logger.info(
            "Removed %d files deleted upstream (%d edits, %d notifications)",
            removed,
            edits,
            notifications,
        )

    result.removed_folders_count = await _remove_orphan_folders(
        session, folder, live_folder_paths, failed_dirs
    )

    if commit_sha is not None and result.files_failed == 0 and result.folders_failed == 0:
        folder.github_last_commit_sha = commit_sha
        await session.commit()
    return result


async def _remove_orphan_folders(
    session: AsyncSession,
    root: Folder,
    live_folder_paths: set[str],
    failed_dirs: list[str],
) -> int:
    """Delete folders mirrored from ``root``'s repo that vanished upstream and are empty."""
    owner, repo = root.github_owner or "", root.github_repo or ""
    index = await load_folder_index(session)
    order = index.post_order(root.id)
    folders = {
        f.id: f
        for f in (await session.execute(select(Folder).where(Folder.id.in_(order)))).scalars()
    }
    candidates = {
        fid
        for fid in order
        if fid != root.id
        and folders[fid].github_path
        and _from_repo(folders[fid], owner, repo)
        and folders[fid].github_path not in live_folder_paths
        and not _under_any(folders[fid].github_path or "", failed_dirs)
    }
    if not candidates:
        return 0

    occupied = set(
        (
            await session.execute(
                select(File.folder_id).where(File.folder_id.in_(candidates)).distinct()
            )
        ).scalars()
    )
    removed: set[str] = set()
    for fid in order:
        if fid not in candidates or fid in occupied:
            continue
        if all(child_id in removed for child_id in index.children(fid)):
            await session.execute(delete(Folder).where(Folder.id == fid))
            removed.add(fid)
    if removed:
        await session.commit()
        logger.info("Removed %d folders deleted upstream", len(removed))
    return len(removed)


async def sync_single_file(
    session: AsyncSession,
    actor: Actor,
    client: GitHubClient,
    node_id: str,
) -> SyncFileResult:
    """Refresh one mirrored file from its download URL."""
    require_editor(actor)
    kind = await resolve_node_kind(session, node_id)
    if kind is None:
        raise NotFoundError("File not found")
    if kind is NodeKind.FOLDER:
        raise InvalidStateError("This id refers to a folder; sync the folder instead")

    file = await get_file(session, node_id)
    require_owner_or_admin(actor, file.author_id, "You can only sync your own files")
    if not file.github_download_url:
        raise InvalidStateError("This file was not imported from GitHub")

    try:
        content = await client.fetch_raw(file.github_download_url)
    except UpstreamError as exc:
        if exc.status_code == 404:
            raise NotFoundError("File no longer exists on GitHub") from exc
        raise

    if content == file.content:
        return SyncFileResult(file_id=file.id, synced=False)

    file.push_version(actor.user_id)
    file.content = content
    file.github_last_synced_at = now_utc()
    await session.commit()
    logger.info("File %s synced from GitHub by %s", file.id, actor.user_id)
    return SyncFileResult(file_id=file.id, synced=True)
