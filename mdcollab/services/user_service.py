"""User administration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from mdcollab.exceptions import ConflictError, NotFoundError, ValidationError
from mdcollab.models.user import Role, User
from mdcollab.services.access import require_admin, validate_id

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from mdcollab.services.access import Actor

logger = logging.getLogger(__name__)


def _normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if "@" not in value:
        raise ValidationError("A valid email address is required")
    return value


def _parse_role(role: str | Role) -> Role:
    try:
        return Role(role)
    except ValueError as exc:
        raise ValidationError(f"Unknown role: {role}") from exc


async def _ensure_email_free(
    session: AsyncSession, email: str, exclude_id: str | None = None
) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if await session.scalar(stmt) is not None:
        raise ConflictError("A user with this email already exists")


async def create_user(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    role: str | Role = Role.VIEWER,
) -> User:
    """Register a user. Authentication is handled outside this service."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("User name must not be empty")
    email = _normalize_email(email)
    await _ensure_email_free(session, email)

    user = User(name=name, email=email, role=_parse_role(role))
    session.add(user)
    await session.commit()
    logger.info("User %s (%s) created with role %s", user.id, user.email, user.role)
    return user


async def get_user(session: AsyncSession, user_id: str) -> User:
    user_id = validate_id(user_id, "user id")
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def list_users(session: AsyncSession, actor: Actor) -> list[User]:
    require_admin(actor)
    result = await session.execute(select(User).order_by(User.name))
    return list(result.scalars().all())


async def update_user(
    session: AsyncSession,
    actor: Actor,
    user_id: str,
    *,
    name: str | None = None,
    email: str | None = None,
    role: str | Role | None = None,
) -> User:
    require_admin(actor)
    user = await get_user(session, user_id)
    if name is not None:
        stripped = name.strip()
        if not stripped:
            raise ValidationError("User name must not be empty")
        user.name = stripped
    if email is not None:
        normalized = _normalize_email(email)
        await _ensure_email_free(session, normalized, exclude_id=user.id)
        user.email = normalized
    if role is not None:
        user.role = _parse_role(role)
    await session.commit()
    return user


async def delete_user(session: AsyncSession, actor: Actor, user_id: str) -> None:
    """Delete a user account.

    Folders, files and edits authored by the user are left in place and keep
    referencing the removed id.
    """
    require_admin(actor)
    user = await get_user(session, user_id)
    await session.delete(user)
    await session.commit()
    logger.info("User %s deleted by %s; owned content was not removed", user.id, actor.user_id)
