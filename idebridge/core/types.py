"""Value types exchanged between the gateway and host instances.

Wire payloads use camelCase keys; Python attributes use snake_case.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from idebridge.core.errors import ErrorCode, OperationError


def _as_bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


########################################################
########   Discovery snapshot   #########
########################################################


@dataclass(frozen=True)
class WorkspaceInfo:
    display_name: str
    root_path: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.display_name, "path": self.root_path}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WorkspaceInfo:
        return cls(display_name=str(payload.get("name", "")), root_path=str(payload.get("path", "")))


@dataclass(frozen=True)
class InstanceDescriptor:
    """One live instance as seen by a single discovery probe.

    Built fresh on every scan and never updated in place. Plugin flags and
    capabilities are stored as sorted pairs so the descriptor stays hashable;
    the mapping properties are read-only views over them.
    """

    endpoint: str
    port: int
    instance_kind: str
    version: str
    workspaces: tuple[WorkspaceInfo, ...] = ()
    indexing_in_progress: bool = False
    plugin_flags: tuple[tuple[str, bool], ...] = ()
    capabilities: tuple[tuple[str, frozenset[str]], ...] = ()

    @property
    def language_plugins(self) -> Mapping[str, bool]:
        return MappingProxyType(dict(self.plugin_flags))

    @property
    def capability_map(self) -> Mapping[str, frozenset[str]]:
        return MappingProxyType(dict(self.capabilities))

    def supports(self, language: str, operation: str) -> bool:
        return any(name == language and operation in operations for name, operations in self.capabilities)

    @classmethod
    def from_status(cls, endpoint: str, port: int, payload: dict[str, Any]) -> InstanceDescriptor:
        """Build a descriptor from a ``GET /status`` body."""
        projects = payload.get("openProjects")
        workspaces = tuple(
            WorkspaceInfo.from_dict(project)
            for project in (projects if isinstance(projects, list) else [])
            if isinstance(project, dict) and project.get("path")
        )

        plugins_raw = payload.get("languagePlugins")
        plugins = (
            {str(name): _as_bool(enabled) for name, enabled in plugins_raw.items()}
            if isinstance(plugins_raw, dict)
            else {}
        )

        # implementedTools is keyed by operation; invert it to language -> operations.
        by_language: dict[str, set[str]] = {}
        tools_raw = payload.get("implementedTools")
        if isinstance(tools_raw, dict):
            for operation, languages in tools_raw.items():
                if not isinstance(languages, list):
                    continue
                for language in languages:
                    by_language.setdefault(str(language), set()).add(str(operation))

        return cls(
            endpoint=endpoint,
            port=int(payload.get("port", port)),
            instance_kind=str(payload.get("ideType", "Unknown")),
            version=str(payload.get("ideVersion", "unknown")),
            workspaces=workspaces,
            indexing_in_progress=_as_bool(payload.get("indexingInProgress")),
            plugin_flags=tuple(sorted(plugins.items())),
            capabilities=tuple(sorted((lang, frozenset(ops)) for lang, ops in by_language.items())),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "port": self.port,
            "instanceKind": self.instance_kind,
            "version": self.version,
            "workspaces": [workspace.to_dict() for workspace in self.workspaces],
            "indexingInProgress": self.indexing_in_progress,
            "languagePlugins": dict(self.language_plugins),
            "capabilityMap": {
                language: sorted(operations)
                for language, operations in sorted(self.capability_map.items())
            },
        }


########################################################
########   Requests   #########
########################################################


@dataclass(frozen=True)
class CoordinateRequest:
    file_path: str
    line: int
    column: int
    workspace_hint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"file": self.file_path, "line": self.line, "column": self.column}
        if self.workspace_hint:
            payload["project"] = self.workspace_hint
        return payload


@dataclass(frozen=True)
class FileRange:
    file_path: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file_path,
            "startLine": self.start_line,
            "startColumn": self.start_column,
            "endLine": self.end_line,
            "endColumn": self.end_column,
        }


########################################################
########   Results   #########
########################################################


@dataclass(frozen=True)
class Usage:
    file_path: str
    line: int
    column: int
    preview: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file_path, "line": self.line, "column": self.column, "preview": self.preview}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Usage:
        return cls(
            file_path=str(payload.get("file", "")),
            line=int(payload.get("line", 0)),
            column=int(payload.get("column", 0)),
            preview=str(payload.get("preview", "")),
        )


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str
    affected_files: tuple[str, ...] = ()
    error: OperationError | None = None

    @property
    def code(self) -> ErrorCode | None:
        return self.error.code if self.error is not None else None

    @classmethod
    def ok(cls, message: str, affected_files: list[str] | tuple[str, ...] = ()) -> OperationResult:
        return cls(success=True, message=message, affected_files=tuple(affected_files))

    @classmethod
    def failed(cls, error: OperationError) -> OperationResult:
        return cls(success=False, message=error.message, error=error)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "affectedFiles": list(self.affected_files),
        }
        if self.error is not None:
            payload.update(self.error.to_dict())
        return payload


@dataclass(frozen=True)
class UsageReport(OperationResult):
    usages: tuple[Usage, ...] = ()

    @classmethod
    def of(cls, usages: list[Usage]) -> UsageReport:
        count = len(usages)
        message = f"Found {count} usage{'s' if count != 1 else ''}" if count else "No usages found"
        files = tuple(dict.fromkeys(usage.file_path for usage in usages))
        return cls(success=True, message=message, affected_files=files, usages=tuple(usages))

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["usages"] = [usage.to_dict() for usage in self.usages]
        return payload


@dataclass(frozen=True)
class FixInfo:
    """A quick fix offered for a diagnostic; ``fix_id`` is its index in the diagnostic's list."""

    fix_id: int
    name: str
    family_name: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.fix_id, "name": self.name}
        if self.family_name is not None:
            payload["familyName"] = self.family_name
        if self.description is not None:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> FixInfo:
        family = payload.get("familyName")
        description = payload.get("description")
        return cls(
            fix_id=int(payload.get("id", 0)),
            name=str(payload.get("name", "")),
            family_name=str(family) if family is not None else None,
            description=str(description) if description is not None else None,
        )


@dataclass(frozen=True)
class Diagnostic:
    file_path: str
    line: int
    column: int
    end_line: int
    end_column: int
    severity: str
    message: str
    source: str | None = None
    fixes: tuple[FixInfo, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file_path,
            "line": self.line,
            "column": self.column,
            "endLine": self.end_line,
            "endColumn": self.end_column,
            "severity": self.severity,
            "message": self.message,
            "source": self.source,
            "fixes": [fix.to_dict() for fix in self.fixes],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Diagnostic:
        fixes = payload.get("fixes")
        source = payload.get("source")
        return cls(
            file_path=str(payload.get("file", "")),
            line=int(payload.get("line", 0)),
            column=int(payload.get("column", 0)),
            end_line=int(payload.get("endLine", 0)),
            end_column=int(payload.get("endColumn", 0)),
            severity=str(payload.get("severity", "")),
            message=str(payload.get("message", "")),
            source=str(source) if source is not None else None,
            fixes=tuple(
                FixInfo.from_dict(fix) for fix in (fixes if isinstance(fixes, list) else []) if isinstance(fix, dict)
            ),
        )


@dataclass(frozen=True)
class DiagnosticsReport(OperationResult):
    diagnostics: tuple[Diagnostic, ...] = ()
    total_count: int = 0
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["diagnostics"] = [diagnostic.to_dict() for diagnostic in self.diagnostics]
        payload["totalCount"] = self.total_count
        payload["truncated"] = self.truncated
        return payload


@dataclass(frozen=True)
class AppliedFix(OperationResult):
    fix_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["fixName"] = self.fix_name
        return payload
