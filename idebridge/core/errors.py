"""Error taxonomy for coordinate resolution, dispatch and execution.

Every failure carries a message a caller can act on without reading logs,
plus structured context (valid ranges, candidate workspaces, live instances).
Validation and resolution failures are returned as values; only the Engine
raises, and its exceptions are converted at the innermost boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    WORKSPACE_NOT_OWNED = "WORKSPACE_NOT_OWNED"
    INDEX_REBUILDING = "INDEX_REBUILDING"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    NO_CAPABILITY = "NO_CAPABILITY"
    CAPABILITY_UNAVAILABLE = "CAPABILITY_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    INSTANCE_UNREACHABLE = "INSTANCE_UNREACHABLE"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset({ErrorCode.INDEX_REBUILDING, ErrorCode.INSTANCE_UNREACHABLE})

MANUAL_FALLBACK_HINT = "Use the IDE's built-in refactoring UI for this file instead."


@dataclass(frozen=True)
class OperationError:
    """A terminal failure with a self-correcting message and structured context."""

    code: ErrorCode
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.code.retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
            "context": dict(self.context),
        }

    # Factories, one per taxonomy entry.

    @classmethod
    def file_not_found(cls, path: str) -> OperationError:
        return cls(
            ErrorCode.FILE_NOT_FOUND,
            f"File not found: {path}. Pass an absolute path to an existing file.",
            {"file": path},
        )

    @classmethod
    def workspace_not_owned(cls, path: str, candidates: list[str]) -> OperationError:
        listing = ", ".join(candidates) if candidates else "(none)"
        return cls(
            ErrorCode.WORKSPACE_NOT_OWNED,
            f"File '{path}' does not belong to any open project. "
            f"Open projects: {listing}. You can specify 'project' parameter explicitly.",
            {"file": path, "candidates": list(candidates)},
        )

    @classmethod
    def no_workspace(cls, candidates: list[str], hint: str | None = None) -> OperationError:
        context: dict[str, Any] = {"candidates": list(candidates)}
        if hint:
            context["hint"] = hint
        return cls(
            ErrorCode.WORKSPACE_NOT_OWNED,
            "No project found. Provide a file path or ensure a project is open.",
            context,
        )

    @classmethod
    def index_rebuilding(cls, workspace: str) -> OperationError:
        return cls(
            ErrorCode.INDEX_REBUILDING,
            "IDE is currently indexing. Please wait and try again.",
            {"workspace": workspace},
        )

    @classmethod
    def line_out_of_bounds(cls, line: int, line_count: int) -> OperationError:
        return cls(
            ErrorCode.OUT_OF_BOUNDS,
            f"Line {line} out of bounds (valid: 1-{line_count})",
            {"line": line, "valid_range": [1, line_count]},
        )

    @classmethod
    def column_out_of_bounds(cls, line: int, column: int, max_column: int) -> OperationError:
        return cls(
            ErrorCode.OUT_OF_BOUNDS,
            f"Column {column} out of bounds for line {line} (valid: 1-{max_column})",
            {"line": line, "column": column, "valid_range": [1, max_column]},
        )

    @classmethod
    def element_not_found(cls, path: str, line: int, column: int) -> OperationError:
        return cls(
            ErrorCode.ELEMENT_NOT_FOUND,
            f"No code element found at {path}:{line}:{column}. "
            "Point at an identifier (a declaration or a usage).",
            {"file": path, "line": line, "column": column},
        )

    @classmethod
    def diagnostic_not_found(
        cls, path: str, line: int, column: int, diagnostic_message: str | None = None
    ) -> OperationError:
        if diagnostic_message is None:
            message = f"No diagnostic found at line {line}, column {column}"
        else:
            message = f"No diagnostic matching message '{diagnostic_message}' found at line {line}, column {column}"
        return cls(ErrorCode.ELEMENT_NOT_FOUND, message, {"file": path, "line": line, "column": column})

    @classmethod
    def no_quick_fix(cls, diagnostic_message: str) -> OperationError:
        return cls(
            ErrorCode.ELEMENT_NOT_FOUND,
            "No quick fixes available for this diagnostic",
            {"diagnostic": diagnostic_message},
        )

    @classmethod
    def invalid_fix_id(cls, fix_id: int, available: int) -> OperationError:
        return cls(
            ErrorCode.INVALID_ARGUMENT,
            f"Invalid fix ID: {fix_id}. Available fixes: 0-{available - 1}",
            {"argument": "fixId", "valid_range": [0, available - 1]},
        )

    @classmethod
    def fix_unavailable(cls, fix_name: str) -> OperationError:
        return cls(
            ErrorCode.CAPABILITY_UNAVAILABLE,
            f"Fix '{fix_name}' is not available at this location",
            {"fix": fix_name},
        )

    @classmethod
    def no_capability(cls, language: str, operation: str) -> OperationError:
        return cls(
            ErrorCode.NO_CAPABILITY,
            f"No handler registered for language: {language}. {MANUAL_FALLBACK_HINT}",
            {"language": language, "operation": operation},
        )

    @classmethod
    def capability_unavailable(cls, language: str, operation: str, reason: str) -> OperationError:
        return cls(
            ErrorCode.CAPABILITY_UNAVAILABLE,
            reason,
            {"language": language, "operation": operation},
        )

    @classmethod
    def timeout(cls, command_name: str, seconds: float) -> OperationError:
        return cls(
            ErrorCode.TIMEOUT,
            f"Operation '{command_name}' timed out after {seconds:g}s. "
            "The IDE may still be applying it; inspect the affected files before retrying.",
            {"command": command_name, "timeout_seconds": seconds},
        )

    @classmethod
    def internal(
        cls, error: BaseException, command_name: str | None = None, label: str | None = None
    ) -> OperationError:
        if label is None:
            label = "Refactoring failed" if command_name is None else f"{command_name} failed"
        return cls(
            ErrorCode.INTERNAL,
            f"{label}: {error}",
            {"error_type": type(error).__name__},
        )

    @classmethod
    def invalid_argument(cls, message: str, argument: str | None = None) -> OperationError:
        context: dict[str, Any] = {}
        if argument is not None:
            context["argument"] = argument
        return cls(ErrorCode.INVALID_ARGUMENT, message, context)

    @classmethod
    def project_not_open(cls, hint: str, open_projects: list[str]) -> OperationError:
        listing = ", ".join(open_projects) if open_projects else "(none)"
        return cls(
            ErrorCode.INSTANCE_NOT_FOUND,
            f"Project '{hint}' is not open in any running IDE. Open projects: {listing}.",
            {"project": hint, "candidates": list(open_projects)},
        )

    @classmethod
    def instance_unreachable(cls, endpoint: str, error: str) -> OperationError:
        return cls(
            ErrorCode.INSTANCE_UNREACHABLE,
            f"IDE at {endpoint} did not respond: {error}",
            {"endpoint": endpoint},
        )


class EngineError(Exception):
    """Typed failure raised by an Engine implementation."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INTERNAL) -> None:
        super().__init__(message)
        self.code = code
