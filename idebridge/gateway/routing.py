"""Path-based ownership routing over a discovery snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from idebridge.core.errors import ErrorCode
from idebridge.core.paths import is_under, normalize_path
from idebridge.core.types import InstanceDescriptor, WorkspaceInfo


@dataclass(frozen=True)
class RouteMatch:
    instance: InstanceDescriptor
    workspace: WorkspaceInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "endpoint": self.instance.endpoint,
            "instanceKind": self.instance.instance_kind,
            "workspace": self.workspace.to_dict(),
        }


@dataclass(frozen=True)
class NotFoundDiagnostic:
    """Why no instance owns a path, with every live instance and its workspaces."""

    path: str
    instances: tuple[InstanceDescriptor, ...] = field(default_factory=tuple)

    @property
    def nothing_running(self) -> bool:
        return not self.instances

    @property
    def message(self) -> str:
        if self.nothing_running:
            return (
                "No JetBrains IDEs are running.\n\n"
                f"Start an IDE and open a project containing:\n{self.path}"
            )
        lines = [
            "File not found in any open project.",
            "",
            f"File: {self.path}",
            "",
            "Running IDEs:",
        ]
        for instance in self.instances:
            paths = ", ".join(w.root_path for w in instance.workspaces) or "(no projects)"
            lines.append(f"  - {instance.instance_kind}: {paths}")
        lines.extend(["", "Open the project containing this file in one of the IDEs."])
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": ErrorCode.INSTANCE_NOT_FOUND.value,
            "nothing_running": self.nothing_running,
            "live_instances": [
                {
                    "endpoint": instance.endpoint,
                    "instanceKind": instance.instance_kind,
                    "workspaces": [w.to_dict() for w in instance.workspaces],
                }
                for instance in self.instances
            ],
        }


class OwnershipRouter:
    def __init__(self, case_insensitive: bool | None = None) -> None:
        self.case_insensitive = case_insensitive

    def route(
        self, path: str, instances: tuple[InstanceDescriptor, ...]
    ) -> RouteMatch | NotFoundDiagnostic:
        """Pick the instance whose workspace root is the longest prefix of ``path``."""
        target = normalize_path(path, self.case_insensitive)
        best: RouteMatch | None = None
        best_length = -1
        for instance in instances:
            for workspace in instance.workspaces:
                root = normalize_path(workspace.root_path, self.case_insensitive)
                if is_under(target, root) and len(root) > best_length:
                    best = RouteMatch(instance, workspace)
                    best_length = len(root)
        if best is None:
            return NotFoundDiagnostic(path=path, instances=tuple(instances))
        return best

    def route_project(
        self, hint: str, instances: tuple[InstanceDescriptor, ...]
    ) -> RouteMatch | None:
        """First workspace named ``hint`` (any case) or whose root equals or ends with it."""
        wanted = normalize_path(hint, self.case_insensitive).rstrip("/")
        for instance in instances:
            for workspace in instance.workspaces:
                if workspace.display_name.casefold() == hint.casefold():
                    return RouteMatch(instance, workspace)
                root = normalize_path(workspace.root_path, self.case_insensitive)
                if wanted and (root == wanted or root.endswith("/" + wanted.lstrip("/"))):
                    return RouteMatch(instance, workspace)
        return None
