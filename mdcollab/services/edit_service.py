"""Edit review workflow: propose, approve, reject.

State machine: ``pending -> approved`` or ``pending -> rejected``; both
targets are terminal. ``original_content`` is the file content captured when
the edit was proposed and is not compared with the file again at approval
time, so a direct save between proposal and approval ends up in the version
history while the edit keeps its stale snapshot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from mdcollab.exceptions import InvalidStateError, NotFoundError, ValidationError
from mdcollab.models.edit import Edit, EditStatus
from mdcollab.services.access import require_admin, require_editor, validate_id
from mdcollab.services.datetime_service import now_utc
from mdcollab.services.file_service import get_file
from mdcollab.services.notification_service import (
    EDIT_APPROVED,
    EDIT_REJECTED,
    notify,
    publish_quietly,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor
    from mdcollab.services.notification_service import NotificationHub

logger = logging.getLogger(__name__)


async def get_edit(session: AsyncSession, edit_id: str) -> Edit:
    edit_id = validate_id(edit_id, "edit id")
    edit = await session.get(Edit, edit_id)
    if edit is None:
        raise NotFoundError("Edit not found")
    return edit


async def propose_edit(
    session: AsyncSession, actor: Actor, file_id: str, *, new_content: str
) -> Edit:
    """Submit a content change for review. Owners may propose too."""
    require_editor(actor)
    if new_content is None:
        raise ValidationError("New content is required")
    file = await get_file(session, file_id)
    edit = Edit(
        file_id=file.id,
        editor_id=actor.user_id,
        original_content=file.content,
        new_content=new_content,
        status=EditStatus.PENDING,
    )
    session.add(edit)
    await session.commit()
    logger.info("Edit %s proposed for file %s by %s", edit.id, file.id, actor.user_id)
    return edit


async def _load_pending(session: AsyncSession, actor: Actor, edit_id: str) -> Edit:
    require_admin(actor)
    edit = await get_edit(session, edit_id)
    if edit.status != EditStatus.PENDING:
        raise InvalidStateError(f"Edit has already been {edit.status}")
    return edit


async def approve_edit(
    session: AsyncSession,
    actor: Actor,
    edit_id: str,
    *,
    hub: NotificationHub | None = None,
) -> Edit:
    """Apply a pending edit to its file and notify the editor."""
    edit = await _load_pending(session, actor, edit_id)
    file = await get_file(session, edit.file_id)

    file.push_version(actor.user_id)
    file.content = edit.new_content
    edit.status = EditStatus.APPROVED
    edit.reviewed_by = actor.user_id
    edit.reviewed_at = now_utc()
    notification = await notify(
        session,
        edit.editor_id,
        kind=EDIT_APPROVED,
        message=f'Your edit to "{file.name}" was approved',
        file_id=file.id,
        meta={"file_id": file.id, "edit_id": edit.id, "file_name": file.name},
    )
    await session.commit()
    publish_quietly(hub, notification)
    logger.info("Edit %s approved by %s", edit.id, actor.user_id)
    return edit


async def reject_edit(
    session: AsyncSession,
    actor: Actor,
    edit_id: str,
    *,
    notes: str | None = None,
    hub: NotificationHub | None = None,
) -> Edit:
    """Reject a pending edit; the file is left untouched."""
    edit = await _load_pending(session, actor, edit_id)
    file = await get_file(session, edit.file_id)

    edit.status = EditStatus.REJECTED
    edit.review_notes = notes
    edit.reviewed_by = actor.user_id
    edit.reviewed_at = now_utc()
    message = f'Your edit to "{file.name}" was rejected'
    if notes:
        message = f"{message}: {notes}"
    notification = await notify(
        session,
        edit.editor_id,
        kind=EDIT_REJECTED,
        message=message,
        file_id=file.id,
        meta={"file_id": file.id, "edit_id": edit.id, "file_name": file.name, "notes": notes},
    )
    await session.commit()
    publish_quietly(hub, notification)
    logger.info("Edit %s rejected by %s", edit.id, actor.user_id)
    return edit


async def list_pending_edits(session: AsyncSession, actor: Actor) -> list[Edit]:
    require_admin(actor)
    stmt = select(Edit).where(Edit.status == EditStatus.PENDING).order_by(Edit.created_at)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_all_edits(session: AsyncSession, actor: Actor) -> list[Edit]:
    require_admin(actor)
    result = await session.execute(select(Edit).order_by(Edit.created_at.desc()))
    return list(result.scalars().all())


async def list_my_edits(session: AsyncSession, actor: Actor) -> list[Edit]:
    stmt = select(Edit).where(Edit.editor_id == actor.user_id).order_by(Edit.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())
