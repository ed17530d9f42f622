"""Workspaces open in this instance and how a file is assigned to one."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from idebridge.core.errors import OperationError
from idebridge.core.paths import canonical_path, longest_root, normalize_path
from idebridge.core.types import WorkspaceInfo

_host_log = logging.getLogger("idebridge.host")


@dataclass(frozen=True)
class Workspace:
    name: str
    root_path: str

    def info(self) -> WorkspaceInfo:
        return WorkspaceInfo(display_name=self.name, root_path=self.root_path)

    def matches_hint(self, hint: str, case_insensitive: bool | None = None) -> bool:
        """Match by display name (any case) or by a root path equal to or ending with the hint."""
        if self.name.casefold() == hint.casefold():
            return True
        root = normalize_path(self.root_path, case_insensitive)
        wanted = normalize_path(hint, case_insensitive)
        return root == wanted or root.endswith("/" + wanted.lstrip("/"))


class HostContext:
    """Live view of one instance: its open workspaces and their indexing state.

    Both inputs are callables so every request sees the instance as it is now.
    """

    def __init__(
        self,
        workspaces: Callable[[], Iterable[Workspace]],
        is_indexing: Callable[[Workspace], bool] | None = None,
        case_insensitive: bool | None = None,
    ) -> None:
        self._workspaces = workspaces
        self._is_indexing = is_indexing or (lambda _workspace: False)
        self.case_insensitive = case_insensitive

    @classmethod
    def static(
        cls,
        workspaces: Iterable[Workspace],
        is_indexing: Callable[[Workspace], bool] | None = None,
        case_insensitive: bool | None = None,
    ) -> HostContext:
        snapshot = tuple(workspaces)
        return cls(lambda: snapshot, is_indexing, case_insensitive)

    def workspaces(self) -> list[Workspace]:
        return list(self._workspaces())

    def is_indexing(self, workspace: Workspace) -> bool:
        return bool(self._is_indexing(workspace))

    def any_indexing(self) -> bool:
        return any(self.is_indexing(workspace) for workspace in self.workspaces())

    def find_by_hint(self, hint: str) -> Workspace | None:
        for workspace in self.workspaces():
            if workspace.matches_hint(hint, self.case_insensitive):
                return workspace
        return None

    def find_for_file(self, path: str) -> Workspace | None:
        """Most specific workspace whose canonical root contains ``path``.

        ``path`` must already be canonical (see ``canonical_path``).
        """
        by_root: dict[str, Workspace] = {}
        for workspace in self.workspaces():
            by_root.setdefault(canonical_path(workspace.root_path), workspace)
        root = longest_root(path, list(by_root), self.case_insensitive)
        return by_root[root] if root is not None else None

    def contains(self, workspace: Workspace, path: str) -> bool:
        return longest_root(path, [canonical_path(workspace.root_path)], self.case_insensitive) is not None

    def resolve_workspace(
        self, path: str, hint: str | None = None
    ) -> tuple[Workspace | None, OperationError | None]:
        """Pick the workspace owning ``path``.

        A hint only selects among workspaces that contain the file; one that
        matches nothing, or names a workspace the file is outside of, falls
        back to path-based resolution.
        """
        if hint:
            hinted = self.find_by_hint(hint)
            if hinted is not None and self.contains(hinted, path):
                return hinted, None
            _host_log.debug(
                "workspace_hint_fallback hint=%s file=%s matched=%s",
                hint,
                path,
                hinted.name if hinted is not None else None,
                extra={"hint": hint, "file": path},
            )

        owner = self.find_for_file(path)
        if owner is not None:
            return owner, None
        names = [workspace.name for workspace in self.workspaces()]
        return None, OperationError.workspace_not_owned(path, names)
