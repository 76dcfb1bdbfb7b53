"""Tests for actor checks and identifier validation."""

from __future__ import annotations

import uuid

import pytest

from mdcollab.exceptions import ForbiddenError, ValidationError
from mdcollab.models.user import Role
from mdcollab.services.access import (
    Actor,
    require_admin,
    require_editor,
    require_owner_or_admin,
    validate_id,
    validate_name,
)


class TestRoles:
    def test_editor_checks(self) -> None:
        require_editor(Actor("u1", Role.EDITOR))
        require_editor(Actor("u1", Role.ADMIN))
        with pytest.raises(ForbiddenError):
            require_editor(Actor("u1", Role.VIEWER))

    def test_admin_check(self) -> None:
        require_admin(Actor("u1", Role.ADMIN))
        with pytest.raises(ForbiddenError, match="Admin"):
            require_admin(Actor("u1", Role.EDITOR))

    def test_owner_or_admin(self) -> None:
        require_owner_or_admin(Actor("u1", Role.EDITOR), "u1", "nope")
        require_owner_or_admin(Actor("u2", Role.ADMIN), "u1", "nope")
        with pytest.raises(ForbiddenError, match="nope"):
            require_owner_or_admin(Actor("u2", Role.EDITOR), "u1", "nope")


class TestValidateId:
    def test_canonical_uuid(self) -> None:
        value = str(uuid.uuid4())
        assert validate_id(value) == value
        assert validate_id(value.upper()) == value

    @pytest.mark.parametrize("value", ["", None, "abc", "1234", "{" + str(uuid.uuid4()) + "}"])
    def test_malformed(self, value: str | None) -> None:
        with pytest.raises(ValidationError):
            validate_id(value)

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_id("nope")


class TestValidateName:
    def test_trims(self) -> None:
        assert validate_name("  notes.md ") == "notes.md"

    @pytest.mark.parametrize("value", ["", "   ", None, "a/b"])
    def test_rejects(self, value: str | None) -> None:
        with pytest.raises(ValidationError):
            validate_name(value)
