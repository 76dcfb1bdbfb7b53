"""Per-tree advisory locks and cooperative cancellation for long cascades."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from mdcollab.exceptions import OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


class SubtreeLocks:
    """Registry of asyncio locks keyed by top-level folder id.

    Cascades (recursive delete, repository sync) hold the lock of the tree
    they walk, so two cascades over overlapping subtrees run one after the
    other. Entries are dropped once no task holds or waits for them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, tree_id: str) -> AsyncGenerator[None]:
        lock = self._locks.get(tree_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tree_id] = lock
        self._users[tree_id] = self._users.get(tree_id, 0) + 1
        try:
            if lock.locked():
                logger.debug("Waiting for tree lock %s", tree_id)
            async with lock:
                yield
        finally:
            remaining = self._users[tree_id] - 1
            if remaining:
                self._users[tree_id] = remaining
            else:
                del self._users[tree_id]
                del self._locks[tree_id]

    def is_locked(self, tree_id: str) -> bool:
        lock = self._locks.get(tree_id)
        return lock is not None and lock.locked()


# Process-wide registry used when callers do not pass their own.
subtree_locks = SubtreeLocks()


def check_cancelled(cancel: asyncio.Event | None, operation: str) -> None:
    """Raise OperationCancelledError if ``cancel`` has been set."""
    if cancel is not None and cancel.is_set():
        logger.info("%s cancelled by caller", operation)
        raise OperationCancelledError(f"{operation} was cancelled")
