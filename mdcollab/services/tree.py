"""Folder hierarchy index: iterative walks over the parent-pointer forest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from mdcollab.exceptions import InternalServerError

if TYPE_CHECKING:
    from collections.abc import Iterable


class FolderCycleError(InternalServerError):
    """The stored parent relation contains a cycle."""


@dataclass(frozen=True)
class FolderNode:
    """Minimal folder record held by the index."""

    id: str
    parent_id: str | None
    name: str


class FolderIndex:
    """Arena of folders keyed by id plus a derived parent -> children index.

    Children are kept sorted by (name, id) so walks are deterministic. All
    traversals are iterative and track visited ids; a revisit means the
    parent relation is cyclic and raises FolderCycleError instead of looping.
    """

    def __init__(self, nodes: Iterable[FolderNode]) -> None:
        self._nodes: dict[str, FolderNode] = {}
        self._children: dict[str | None, list[str]] = {}
        for node in nodes:
            self._nodes[node.id] = node
        for node in self._nodes.values():
            self._children.setdefault(node.parent_id, []).append(node.id)
        for child_ids in self._children.values():
            child_ids.sort(key=lambda cid: (self._nodes[cid].name, cid))

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, folder_id: str) -> FolderNode | None:
        return self._nodes.get(folder_id)

    def children(self, parent_id: str | None) -> list[str]:
        """Direct child ids of ``parent_id`` (None for the root level)."""
        return list(self._children.get(parent_id, []))

    def child_named(self, parent_id: str | None, name: str) -> str | None:
        for child_id in self._children.get(parent_id, []):
            if self._nodes[child_id].name == name:
                return child_id
        return None

    def descendants(self, root_id: str) -> list[str]:
        """Return ``root_id`` followed by every descendant, depth-first pre-order."""
        if root_id not in self._nodes:
            return []
        order: list[str] = []
        seen: set[str] = set()
        stack: list[str] = [root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                raise FolderCycleError(f"Folder hierarchy contains a cycle at {node_id}")
            seen.add(node_id)
            order.append(node_id)
            # Reversed so the first child is visited first.
            stack.extend(reversed(self._children.get(node_id, [])))
        return order

    def post_order(self, root_id: str) -> list[str]:
        """Return the subtree with every folder after all of its descendants."""
        if root_id not in self._nodes:
            return []
        order: list[str] = []
        seen: set[str] = {root_id}
        # Stack entries: (node, child_index) tracking progress through children.
        stack: list[tuple[str, int]] = [(root_id, 0)]
        while stack:
            node_id, idx = stack[-1]
            child_ids = self._children.get(node_id, [])
            if idx < len(child_ids):
                stack[-1] = (node_id, idx + 1)
                child_id = child_ids[idx]
                if child_id in seen:
                    raise FolderCycleError(f"Folder hierarchy contains a cycle at {child_id}")
                seen.add(child_id)
                stack.append((child_id, 0))
            else:
                order.append(node_id)
                stack.pop()
        return order

    def ancestors(self, folder_id: str) -> list[str]:
        """Return parent, grandparent, ... up to the top-level folder."""
        result: list[str] = []
        seen: set[str] = {folder_id}
        node = self._nodes.get(folder_id)
        while node is not None and node.parent_id is not None:
            parent_id = node.parent_id
            if parent_id in seen:
                raise FolderCycleError(f"Folder hierarchy contains a cycle at {parent_id}")
            seen.add(parent_id)
            parent = self._nodes.get(parent_id)
            if parent is None:
                # Dangling parent reference; stop at the last known folder.
                break
            result.append(parent_id)
            node = parent
        return result

    def upward_closure(self, folder_ids: Iterable[str]) -> set[str]:
        """Known ids from ``folder_ids`` plus all of their ancestors."""
        closure: set[str] = set()
        for folder_id in folder_ids:
            if folder_id not in self._nodes or folder_id in closure:
                continue
            closure.add(folder_id)
            for ancestor_id in self.ancestors(folder_id):
                if ancestor_id in closure:
                    break
                closure.add(ancestor_id)
        return closure

    def top_level_of(self, folder_id: str) -> str:
        """Id of the root-level folder whose tree contains ``folder_id``."""
        chain = self.ancestors(folder_id)
        return chain[-1] if chain else folder_id

    def relative_path(self, folder_id: str, base_id: str) -> str:
        """Slash-joined folder names from ``base_id`` down to ``folder_id``.

        Both ends are included; ``base_id`` must be ``folder_id`` or one of its
        ancestors.
        """
        names: list[str] = []
        current: str | None = folder_id
        for ancestor_id in [folder_id, *self.ancestors(folder_id)]:
            current = ancestor_id
            names.append(self._nodes[ancestor_id].name)
            if ancestor_id == base_id:
                break
        if current != base_id:
            raise ValueError(f"Folder {base_id} is not an ancestor of {folder_id}")
        return "/".join(reversed(names))
