"""Application startup and the operator CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from mdcollab.config import Settings
from mdcollab.database import create_engine, init_schema
from mdcollab.exceptions import DocumentError, InternalServerError
from mdcollab.github.client import GitHubClient
from mdcollab.services import (
    folder_service,
    github_service,
    notification_service,
    user_service,
)
from mdcollab.services.access import Actor
from mdcollab.services.coordination import SubtreeLocks
from mdcollab.services.notification_service import NotificationHub

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from mdcollab.models.notification import Notification

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


@dataclass
class AppState:
    """Process-wide resources shared by every service call."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    github: GitHubClient
    hub: NotificationHub
    locks: SubtreeLocks = field(default_factory=SubtreeLocks)


def _ensure_sqlite_dir(database_url: str) -> None:
    if database_url.startswith("sqlite") and "///" in database_url:
        db_path = database_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(settings: Settings) -> AsyncGenerator[AppState]:
    """Application lifespan: startup and shutdown."""
    settings.validate_runtime()
    _configure_logging(settings.debug)
    logger.info("Starting mdcollab (debug=%s)", settings.debug)

    _ensure_sqlite_dir(settings.database_url)
    try:
        engine, session_factory = create_engine(settings)
        await init_schema(engine)
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    state = AppState(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        github=GitHubClient(settings),
        hub=NotificationHub(queue_size=settings.notification_queue_size),
    )
    try:
        yield state
    finally:
        await state.github.aclose()
        await engine.dispose()
        logger.info("Shutting down mdcollab")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdcollab-admin",
        description="Administer a mdcollab document store",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    create_user = subparsers.add_parser("create-user", help="Register a user")
    create_user.add_argument("--name", required=True)
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--role", choices=["admin", "editor", "viewer"], default="viewer")

    def acting(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument("--as-user", required=True, dest="as_user", help="Acting user id")
        return sub

    import_repo = acting(subparsers.add_parser("import-repo", help="Import a GitHub repository"))
    import_repo.add_argument("owner")
    import_repo.add_argument("repo")
    import_repo.add_argument("--parent", help="Parent folder id (default: root level)")

    sync_folder = acting(subparsers.add_parser("sync-folder", help="Sync a mirrored folder"))
    sync_folder.add_argument("folder_id")

    sync_file = acting(subparsers.add_parser("sync-file", help="Sync a single mirrored file"))
    sync_file.add_argument("file_id")

    delete_folder = acting(
        subparsers.add_parser("delete-folder", help="Delete a folder and everything under it")
    )
    delete_folder.add_argument("folder_id")

    publish = acting(subparsers.add_parser("publish", help="Bulk publish or unpublish files"))
    publish.add_argument("folder_id", nargs="?", help="Folder id (default: root-level files)")
    publish.add_argument("--unpublish", action="store_true")

    inbox = acting(subparsers.add_parser("notifications", help="Show the acting user's inbox"))
    inbox.add_argument("--unread", action="store_true")
    return parser


def _inbox_line(notification: Notification) -> str:
    marker = " " if notification.is_read else "*"
    return f"{marker} {notification.created_at:%Y-%m-%d %H:%M} {notification.message}"


async def _load_actor(session: AsyncSession, user_id: str) -> Actor:
    return Actor.from_user(await user_service.get_user(session, user_id))


async def run_command(args: argparse.Namespace, settings: Settings) -> str:
    """Execute one CLI command and return the line to print."""
    async with lifespan(settings) as state, state.session_factory() as session:
        if args.command == "init-db":
            return "Database initialized"
        if args.command == "create-user":
            user = await user_service.create_user(
                session, name=args.name, email=args.email, role=args.role
            )
            return f"Created user {user.id} ({user.role})"

        actor = await _load_actor(session, args.as_user)
        concurrency = settings.github_fetch_concurrency
        if args.command == "import-repo":
            imported = await github_service.import_repository(
                session,
                actor,
                state.github,
                owner=args.owner,
                repo=args.repo,
                parent_folder_id=args.parent,
                concurrency=concurrency,
            )
            return f"{imported.message} (folder {imported.folder_id})"
        if args.command == "sync-folder":
            synced = await github_service.sync_folder(
                session,
                actor,
                state.github,
                args.folder_id,
                concurrency=concurrency,
                locks=state.locks,
            )
            return synced.message
        if args.command == "sync-file":
            single = await github_service.sync_single_file(
                session, actor, state.github, args.file_id
            )
            return single.message
        if args.command == "delete-folder":
            deleted = await folder_service.delete_folder(
                session, actor, args.folder_id, locks=state.locks
            )
            return (
                f"Deleted {deleted.folders_deleted} folders, {deleted.files_deleted} files,"
                f" {deleted.edits_deleted} edits, {deleted.notifications_deleted} notifications"
            )
        if args.command == "publish":
            published = await folder_service.bulk_publish(
                session, actor, args.folder_id, published=not args.unpublish
            )
            return published.message
        if args.command == "notifications":
            rows = await notification_service.list_notifications(
                session, actor, limit=settings.notification_list_limit, unread_only=args.unread
            )
            return "\n".join(_inbox_line(n) for n in rows) or "No notifications"
    raise ValueError(f"Unknown command: {args.command}")


def cli_entry(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    try:
        print(asyncio.run(run_command(args, Settings())))
    except DocumentError as exc:
        print(f"Error: {exc.message}")
        sys.exit(1)
    except InternalServerError as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        print("Error: Internal error, see the log for details")
        sys.exit(1)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry()
