"""Notification inbox and in-process push hub."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update

from mdcollab.exceptions import NotFoundError
from mdcollab.models.notification import Notification
from mdcollab.services.access import validate_id
from mdcollab.services.datetime_service import format_iso

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor

logger = logging.getLogger(__name__)

EDIT_APPROVED = "edit_approved"
EDIT_REJECTED = "edit_rejected"


class NotificationHub:
    """In-memory fan-out of new notifications to connected clients.

    Each connected client holds a bounded queue; a full queue drops the event
    for that client rather than blocking the writer. For deployments with
    several processes, put a shared broker behind the same interface.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[dict[str, Any]]]] = {}

    def subscribe(self, user_id: str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.setdefault(user_id, set()).add(queue)
        logger.debug("Notification subscriber added for user %s", user_id)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._subscribers.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, notification: Notification) -> int:
        """Push ``notification`` to the recipient's clients. Returns deliveries."""
        queues = self._subscribers.get(notification.recipient_id)
        if not queues:
            return 0
        event = serialize_notification(notification)
        delivered = 0
        for queue in list(queues):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping notification %s for user %s: client queue full",
                    notification.id,
                    notification.recipient_id,
                )
        return delivered


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """JSON-safe representation pushed to clients."""
    return {
        "id": notification.id,
        "type": notification.type,
        "message": notification.message,
        "file_id": notification.file_id,
        "meta": dict(notification.meta or {}),
        "is_read": notification.is_read,
        "created_at": format_iso(notification.created_at),
    }


async def notify(
    session: AsyncSession,
    recipient_id: str,
    *,
    kind: str,
    message: str,
    file_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> Notification:
    """Add a notification row to the session (flushed, not committed).

    Callers commit together with the change that triggered it and then
    hand the row to ``NotificationHub.publish``.
    """
    notification = Notification(
        recipient_id=recipient_id,
        file_id=file_id,
        type=kind,
        message=message,
        meta=meta or {},
        is_read=False,
    )
    session.add(notification)
    await session.flush()
    return notification


def publish_quietly(hub: NotificationHub | None, notification: Notification) -> None:
    """Push without letting a delivery problem fail the committed operation."""
    if hub is None:
        return
    try:
        hub.publish(notification)
    except Exception as exc:
        logger.error("Failed to push notification %s: %s", notification.id, exc, exc_info=exc)


async def delete_file_notifications(session: AsyncSession, file_ids: Iterable[str]) -> int:
    """Delete notifications that reference any of ``file_ids`` directly or in meta."""
    ids = list(file_ids)
    if not ids:
        return 0
    stmt = (
        delete(Notification)
        .where(
            or_(
                Notification.file_id.in_(ids),
                Notification.meta["file_id"].as_string().in_(ids),
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0


async def list_notifications(
    session: AsyncSession,
    actor: Actor,
    *,
    limit: int = 20,
    unread_only: bool = False,
) -> list[Notification]:
    """Newest-first notifications for the actor."""
    stmt = select(Notification).where(Notification.recipient_id == actor.user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_unread(session: AsyncSession, actor: Actor) -> int:
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == actor.user_id, Notification.is_read.is_(False))
    )
    result = await session.execute(stmt)
    return result.scalar() or 0


async def _get_own_notification(
    session: AsyncSession, actor: Actor, notification_id: str
) -> Notification:
    notification_id = validate_id(notification_id, "notification id")
    notification = await session.get(Notification, notification_id)
    # Another user's notification is reported as missing, not forbidden.
    if notification is None or notification.recipient_id != actor.user_id:
        raise NotFoundError("Notification not found")
    return notification


async def mark_read(session: AsyncSession, actor: Actor, notification_id: str) -> Notification:
    notification = await _get_own_notification(session, actor, notification_id)
    notification.is_read = True
    await session.commit()
    return notification


async def mark_all_read(session: AsyncSession, actor: Actor) -> int:
    """Mark every unread notification of the actor as read. Returns the count."""
    stmt = (
        update(Notification)
        .where(Notification.recipient_id == actor.user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0


async def delete_notification(session: AsyncSession, actor: Actor, notification_id: str) -> None:
    notification = await _get_own_notification(session, actor, notification_id)
    await session.delete(notification)
    await session.commit()


async def delete_all_notifications(session: AsyncSession, actor: Actor) -> int:
    stmt = delete(Notification).where(Notification.recipient_id == actor.user_id)
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0
