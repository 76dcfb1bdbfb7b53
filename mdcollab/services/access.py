"""Actor context and inline authorization checks.

Every service operation receives the acting user explicitly; nothing reads
a request-global "current user".
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mdcollab.exceptions import ForbiddenError, ValidationError
from mdcollab.models.user import Role

if TYPE_CHECKING:
    from mdcollab.models.user import User


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a service operation."""

    user_id: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(user_id=user.id, role=Role(user.role))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_role(actor: Actor, *roles: Role) -> None:
    """Raise ForbiddenError unless the actor has one of ``roles``."""
    if actor.role not in roles:
        allowed = ", ".join(sorted(r.value for r in roles))
        raise ForbiddenError(f"This action requires one of the roles: {allowed}")


def require_editor(actor: Actor) -> None:
    require_role(actor, Role.EDITOR, Role.ADMIN)


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")


def require_owner_or_admin(actor: Actor, author_id: str, message: str) -> None:
    """Ownership means ``author_id == actor.user_id``; admins bypass it."""
    if actor.is_admin or author_id == actor.user_id:
        return
    raise ForbiddenError(message)


def validate_id(value: str | None, what: str = "id") -> str:
    """Return the canonical form of a well-formed identifier, else raise ValidationError."""
    if not value:
        raise ValidationError(f"Missing {what}")
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError) as exc:
        raise ValidationError(f"Invalid {what} format") from exc
    if str(parsed) != value.lower():
        raise ValidationError(f"Invalid {what} format")
    return str(parsed)


def validate_name(value: str | None, what: str = "name") -> str:
    """Trim a folder/file name and reject empty ones."""
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"The {what} must not be empty")
    if "/" in name:
        raise ValidationError(f"The {what} must not contain '/'")
    return name
