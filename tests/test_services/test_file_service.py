"""Tests for file creation, direct saves, publishing and deletion."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import func, select

from mdcollab.exceptions import ForbiddenError, NotFoundError, ValidationError
from mdcollab.models.edit import Edit
from mdcollab.models.file import File, FileVersion
from mdcollab.models.notification import Notification
from mdcollab.services.edit_service import approve_edit, propose_edit
from mdcollab.services.file_service import (
    admin_update_file,
    create_file,
    delete_file,
    get_file,
    get_file_versions,
    list_all_files,
    list_files,
    list_user_files,
    save_file,
    set_published,
    toggle_published,
)
from mdcollab.services.folder_service import create_folder

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor


class TestCreateFile:
    async def test_create_root_file(self, db_session: AsyncSession, editor: Actor) -> None:
        file = await create_file(db_session, editor, name=" notes.md ", content="# Notes")
        assert file.name == "notes.md"
        assert file.folder_id is None
        assert file.author_id == editor.user_id
        assert file.published is True
        assert file.status == "approved"

    async def test_create_records_initial_version(
        self, db_session: AsyncSession, editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="v0")
        versions = await get_file_versions(db_session, file.id)
        assert [v.content for v in versions] == ["v0"]
        assert versions[0].updated_by == editor.user_id

    async def test_create_in_folder(self, db_session: AsyncSession, editor: Actor) -> None:
        folder = await create_folder(db_session, editor, name="docs")
        file = await create_file(db_session, editor, name="a.md", content="", folder_id=folder.id)
        assert file.folder_id == folder.id

    async def test_missing_folder(self, db_session: AsyncSession, editor: Actor) -> None:
        with pytest.raises(NotFoundError):
            await create_file(
                db_session, editor, name="a.md", content="x", folder_id=str(uuid.uuid4())
            )

    async def test_viewer_cannot_create(self, db_session: AsyncSession, viewer: Actor) -> None:
        with pytest.raises(ForbiddenError):
            await create_file(db_session, viewer, name="a.md", content="x")

    async def test_empty_name_rejected(self, db_session: AsyncSession, editor: Actor) -> None:
        with pytest.raises(ValidationError):
            await create_file(db_session, editor, name="   ", content="x")

    async def test_get_file_malformed_id(self, db_session: AsyncSession) -> None:
        with pytest.raises(ValidationError):
            await get_file(db_session, "not-a-uuid")


class TestSaveFile:
    async def test_direct_save_pushes_previous_content(
        self, db_session: AsyncSession, editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        await save_file(db_session, editor, file.id, content="two")
        await save_file(db_session, editor, file.id, content="three", name="b.md")

        refreshed = await get_file(db_session, file.id)
        assert refreshed.content == "three"
        assert refreshed.name == "b.md"
        versions = await get_file_versions(db_session, file.id)
        assert [v.content for v in versions] == ["one", "one", "two"]

    async def test_non_owner_editor_forbidden(
        self, db_session: AsyncSession, editor: Actor, other_editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        with pytest.raises(ForbiddenError):
            await save_file(db_session, other_editor, file.id, content="hijack")

    async def test_admin_may_save_any_file(
        self, db_session: AsyncSession, editor: Actor, admin: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        saved = await save_file(db_session, admin, file.id, content="fixed")
        assert saved.content == "fixed"
        versions = await get_file_versions(db_session, file.id)
        assert versions[-1].updated_by == admin.user_id

    async def test_admin_update_file(
        self, db_session: AsyncSession, editor: Actor, admin: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        updated = await admin_update_file(db_session, admin, file.id, content="two")
        assert updated.content == "two"
        with pytest.raises(ForbiddenError):
            await admin_update_file(db_session, editor, file.id, content="three")

    async def test_missing_content_rejected(
        self, db_session: AsyncSession, editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        with pytest.raises(ValidationError):
            await save_file(db_session, editor, file.id, content=None)  # type: ignore[arg-type]


class TestListingAndPublishing:
    async def test_listings(
        self, db_session: AsyncSession, editor: Actor, other_editor: Actor, admin: Actor
    ) -> None:
        mine = await create_file(db_session, editor, name="mine.md", content="")
        await create_file(db_session, other_editor, name="theirs.md", content="")

        assert {f.name for f in await list_files(db_session)} == {"mine.md", "theirs.md"}
        assert [f.id for f in await list_user_files(db_session, editor)] == [mine.id]
        assert len(await list_all_files(db_session, admin)) == 2
        with pytest.raises(ForbiddenError):
            await list_all_files(db_session, editor)

    async def test_publish_toggles(
        self, db_session: AsyncSession, editor: Actor, admin: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="")
        assert (await set_published(db_session, admin, file.id, published=False)).published is False
        assert (await toggle_published(db_session, admin, file.id)).published is True
        with pytest.raises(ForbiddenError):
            await toggle_published(db_session, editor, file.id)


class TestDeleteFile:
    async def test_delete_removes_dependents(
        self, db_session: AsyncSession, editor: Actor, other_editor: Actor, admin: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        edit = await propose_edit(db_session, other_editor, file.id, new_content="two")
        await approve_edit(db_session, admin, edit.id)
        await propose_edit(db_session, other_editor, file.id, new_content="three")

        result = await delete_file(db_session, editor, file.id)
        assert result.file_name == "a.md"
        assert result.edits_deleted == 2
        assert result.notifications_deleted == 1
        assert result.versions_deleted == 2

        for model in (File, Edit, Notification, FileVersion):
            count = await db_session.scalar(select(func.count()).select_from(model))
            assert count == 0

    async def test_delete_also_matches_meta_reference(
        self, db_session: AsyncSession, editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        db_session.add(
            Notification(
                recipient_id=editor.user_id,
                type="mention",
                message="see file",
                meta={"file_id": file.id},
            )
        )
        await db_session.commit()

        result = await delete_file(db_session, editor, file.id)
        assert result.notifications_deleted == 1

    async def test_non_owner_cannot_delete(
        self, db_session: AsyncSession, editor: Actor, other_editor: Actor
    ) -> None:
        file = await create_file(db_session, editor, name="a.md", content="one")
        with pytest.raises(ForbiddenError):
            await delete_file(db_session, other_editor, file.id)

    async def test_delete_missing_file(self, db_session: AsyncSession, editor: Actor) -> None:
        with pytest.raises(NotFoundError):
            await delete_file(db_session, editor, str(uuid.uuid4()))
