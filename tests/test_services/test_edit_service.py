"""Tests for the propose / approve / reject workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mdcollab.exceptions import ForbiddenError, InvalidStateError, ValidationError
from mdcollab.models.edit import EditStatus
from mdcollab.services.edit_service import (
    approve_edit,
    get_edit,
    list_all_edits,
    list_my_edits,
    list_pending_edits,
    propose_edit,
    reject_edit,
)
from mdcollab.services.file_service import create_file, get_file, get_file_versions, save_file
from mdcollab.services.notification_service import (
    EDIT_APPROVED,
    EDIT_REJECTED,
    list_notifications,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.models.file import File
    from mdcollab.services.access import Actor
    from mdcollab.services.notification_service import NotificationHub


@pytest.fixture
async def doc(db_session: AsyncSession, editor: Actor) -> File:
    return await create_file(db_session, editor, name="doc.md", content="original")


class TestPropose:
    async def test_snapshots_current_content(
        self, db_session: AsyncSession, other_editor: Actor, doc: File
    ) -> None:
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="changed")
        assert edit.status == EditStatus.PENDING
        assert edit.original_content == "original"
        assert edit.editor_id == other_editor.user_id
        assert (await get_file(db_session, doc.id)).content == "original"

    async def test_viewer_cannot_propose(
        self, db_session: AsyncSession, viewer: Actor, doc: File
    ) -> None:
        with pytest.raises(ForbiddenError):
            await propose_edit(db_session, viewer, doc.id, new_content="x")

    async def test_content_required(
        self, db_session: AsyncSession, other_editor: Actor, doc: File
    ) -> None:
        with pytest.raises(ValidationError):
            await propose_edit(
                db_session, other_editor, doc.id, new_content=None  # type: ignore[arg-type]
            )


class TestApprove:
    async def test_approve_applies_and_notifies(
        self,
        db_session: AsyncSession,
        admin: Actor,
        other_editor: Actor,
        doc: File,
        hub: NotificationHub,
    ) -> None:
        queue = hub.subscribe(other_editor.user_id)
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="changed")

        approved = await approve_edit(db_session, admin, edit.id, hub=hub)
        assert approved.status == EditStatus.APPROVED
        assert approved.reviewed_by == admin.user_id
        assert approved.reviewed_at is not None

        file = await get_file(db_session, doc.id)
        assert file.content == "changed"
        versions = await get_file_versions(db_session, doc.id)
        assert [v.content for v in versions] == ["original", "original"]
        assert versions[-1].updated_by == admin.user_id

        inbox = await list_notifications(db_session, other_editor)
        assert len(inbox) == 1
        assert inbox[0].type == EDIT_APPROVED
        assert inbox[0].file_id == doc.id
        assert inbox[0].meta["edit_id"] == edit.id

        pushed = queue.get_nowait()
        assert pushed["id"] == inbox[0].id

    async def test_approve_twice_is_invalid(
        self, db_session: AsyncSession, admin: Actor, other_editor: Actor, doc: File
    ) -> None:
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="changed")
        await approve_edit(db_session, admin, edit.id)
        with pytest.raises(InvalidStateError):
            await approve_edit(db_session, admin, edit.id)
        with pytest.raises(InvalidStateError):
            await reject_edit(db_session, admin, edit.id)
        assert len(await get_file_versions(db_session, doc.id)) == 2

    async def test_editor_cannot_approve(
        self, db_session: AsyncSession, editor: Actor, other_editor: Actor, doc: File
    ) -> None:
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="changed")
        with pytest.raises(ForbiddenError):
            await approve_edit(db_session, editor, edit.id)

    async def test_approve_overwrites_concurrent_direct_save(
        self, db_session: AsyncSession, admin: Actor, editor: Actor, other_editor: Actor, doc: File
    ) -> None:
        # The proposal was written against "original"; the owner's save is
        # archived but the approved text wins.
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="proposal")
        await save_file(db_session, editor, doc.id, content="owner save")
        await approve_edit(db_session, admin, edit.id)

        assert (await get_file(db_session, doc.id)).content == "proposal"
        versions = await get_file_versions(db_session, doc.id)
        assert [v.content for v in versions] == ["original", "original", "owner save"]
        assert (await get_edit(db_session, edit.id)).original_content == "original"


class TestReject:
    async def test_reject_leaves_file_untouched(
        self,
        db_session: AsyncSession,
        admin: Actor,
        other_editor: Actor,
        doc: File,
        hub: NotificationHub,
    ) -> None:
        edit = await propose_edit(db_session, other_editor, doc.id, new_content="changed")
        rejected = await reject_edit(db_session, admin, edit.id, notes="Too long", hub=hub)

        assert rejected.status == EditStatus.REJECTED
        assert rejected.review_notes == "Too long"
        assert (await get_file(db_session, doc.id)).content == "original"
        assert len(await get_file_versions(db_session, doc.id)) == 1

        inbox = await list_notifications(db_session, other_editor)
        assert [n.type for n in inbox] == [EDIT_REJECTED]
        assert "Too long" in inbox[0].message


class TestListings:
    async def test_pending_all_and_mine(
        self, db_session: AsyncSession, admin: Actor, editor: Actor, other_editor: Actor, doc: File
    ) -> None:
        first = await propose_edit(db_session, other_editor, doc.id, new_content="a")
        second = await propose_edit(db_session, editor, doc.id, new_content="b")
        await reject_edit(db_session, admin, first.id)

        assert [e.id for e in await list_pending_edits(db_session, admin)] == [second.id]
        assert len(await list_all_edits(db_session, admin)) == 2
        assert [e.id for e in await list_my_edits(db_session, other_editor)] == [first.id]
        with pytest.raises(ForbiddenError):
            await list_pending_edits(db_session, editor)
