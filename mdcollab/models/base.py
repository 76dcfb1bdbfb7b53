"""Declarative base and shared column helpers."""

from __future__ import annotations

import uuid

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def new_id() -> str:
    """Generate a new entity identifier (UUID4, canonical string form)."""
    return str(uuid.uuid4())
