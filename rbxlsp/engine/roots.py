"""Workspace root registry and document ownership resolution.

Nested roots collapse onto the outermost registered ancestor so a
nested sub-project never gets a backend of its own.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from .models import WorkspaceRoot, to_uri, uri_prefix

logger = logging.getLogger(__name__)


class RootResolver:
    """Owns the set of workspace roots and a lazily sorted prefix cache."""

    def __init__(self, roots: Iterable[WorkspaceRoot] = ()) -> None:
        self._roots: dict[str, WorkspaceRoot] = {}
        self._sorted: list[WorkspaceRoot] | None = None
        for root in roots:
            self._roots[root.key] = root

    @property
    def roots(self) -> list[WorkspaceRoot]:
        return list(self._roots.values())

    def __len__(self) -> int:
        return len(self._roots)

    def __contains__(self, root: object) -> bool:
        return isinstance(root, WorkspaceRoot) and root.key in self._roots

    def add(self, root: WorkspaceRoot) -> None:
        self._roots[root.key] = root
        self.invalidate()

    def remove(self, root: WorkspaceRoot) -> None:
        if self._roots.pop(root.key, None) is not None:
            self.invalidate()

    def replace(self, roots: Iterable[WorkspaceRoot]) -> None:
        self._roots = {root.key: root for root in roots}
        self.invalidate()

    def invalidate(self) -> None:
        self._sorted = None

    def sorted_roots(self) -> list[WorkspaceRoot]:
        """Roots ordered by prefix length, outermost first."""
        if self._sorted is None:
            self._sorted = sorted(self._roots.values(), key=lambda r: len(r.prefix))
            logger.debug(
                "Rebuilt root cache: %s",
                ", ".join(r.prefix for r in self._sorted) or "<empty>",
            )
        return self._sorted

    def containing_root(self, document_uri: str) -> WorkspaceRoot | None:
        """The innermost root whose prefix contains *document_uri*."""
        uri = to_uri(document_uri)
        best: WorkspaceRoot | None = None
        for root in self.sorted_roots():
            if uri.startswith(root.prefix) or uri_prefix(uri) == root.prefix:
                best = root
        return best

    def outermost(self, root: WorkspaceRoot) -> WorkspaceRoot:
        """The outermost registered root whose prefix contains *root*."""
        for candidate in self.sorted_roots():
            if root.prefix.startswith(candidate.prefix):
                return candidate
        return root

    def resolve(self, document_uri: str) -> WorkspaceRoot | None:
        """Owning root for a document, or None if no root contains it."""
        direct = self.containing_root(document_uri)
        if direct is None:
            return None
        return self.outermost(direct)
