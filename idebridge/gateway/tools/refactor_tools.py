"""Refactoring tools: every call is routed to the IDE that owns the file."""

from typing import Any

from idebridge.core.constants import OP_EXTRACT_METHOD, OP_MOVE, OP_RENAME
from idebridge.core.types import CoordinateRequest, FileRange, Usage
from idebridge.gateway.routing import OwnershipRouter
from idebridge.gateway.tools.helpers import (
    ClientFactory,
    Snapshot,
    format_usages,
    invalid,
    route_and_call,
    validate_position,
    validate_text,
)

MUTATION_NAMES: dict[str, str] = {
    "rename": OP_RENAME,
    "move": OP_MOVE,
    "extract_method": OP_EXTRACT_METHOD,
    OP_EXTRACT_METHOD: OP_EXTRACT_METHOD,
}


class RefactorTools:
    """Rename, find usages, move and extract method."""

    def __init__(self, snapshot: Snapshot, router: OwnershipRouter, client_factory: ClientFactory) -> None:
        """Initialize refactoring tools.

        Args:
            snapshot: Callable that runs a fresh discovery scan
            router: Ownership router used against each snapshot
            client_factory: Builds an HTTP client for an instance endpoint
        """
        self.snapshot = snapshot
        self.router = router
        self.client_factory = client_factory

    def _location_error(self, file: Any, line: Any, column: Any) -> str | None:
        valid, error = validate_text(file, "file must be a non-empty path")
        if valid:
            valid, error = validate_position(line, column)
        return None if valid else error

    def _call(self, file: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return route_and_call(self.snapshot, self.router, self.client_factory, file, path, payload)

    def rename(
        self,
        file: str,
        line: int,
        column: int,
        new_name: str,
        search_in_comments: bool = False,
        search_text_occurrences: bool = False,
        project: str | None = None,
    ) -> dict[str, Any]:
        error = self._location_error(file, line, column)
        if error is None:
            _, error = validate_text(new_name, "new_name cannot be empty")
        if error is not None:
            return invalid(error)

        payload = CoordinateRequest(file, line, column, project).to_dict()
        payload.update(
            newName=new_name.strip(),
            searchInComments=bool(search_in_comments),
            searchTextOccurrences=bool(search_text_occurrences),
        )
        return self._call(file, "/rename", payload)

    def find_usages(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> dict[str, Any]:
        error = self._location_error(file, line, column)
        if error is not None:
            return invalid(error)

        result = self._call(file, "/findUsages", CoordinateRequest(file, line, column, project).to_dict())
        raw_usages = result.get("usages")
        if result.get("success") and isinstance(raw_usages, list):
            usages = [Usage.from_dict(item) for item in raw_usages if isinstance(item, dict)]
            result["report"] = format_usages(usages)
        return result

    def move(
        self,
        file: str,
        line: int,
        column: int,
        target_package: str,
        search_in_comments: bool = False,
        search_in_non_code_files: bool = False,
        project: str | None = None,
    ) -> dict[str, Any]:
        error = self._location_error(file, line, column)
        if error is None:
            _, error = validate_text(target_package, "target_package cannot be empty")
        if error is not None:
            return invalid(error)

        payload = CoordinateRequest(file, line, column, project).to_dict()
        payload.update(
            targetPackage=target_package.strip(),
            searchInComments=bool(search_in_comments),
            searchInNonJavaFiles=bool(search_in_non_code_files),
        )
        return self._call(file, "/move", payload)

    def extract_method(
        self,
        file: str,
        start_line: int,
        start_column: int,
        end_line: int,
        end_column: int,
        method_name: str,
        project: str | None = None,
    ) -> dict[str, Any]:
        error = self._location_error(file, start_line, start_column)
        if error is None:
            _, error = validate_position(end_line, end_column, prefix="end_")
        if error is None:
            _, error = validate_text(method_name, "method_name cannot be empty")
        if error is None and (end_line, end_column) < (start_line, start_column):
            error = "range end must not come before range start"
        if error is not None:
            return invalid(error)

        payload = FileRange(file, start_line, start_column, end_line, end_column).to_dict()
        payload["methodName"] = method_name.strip()
        if project:
            payload["project"] = project
        return self._call(file, "/extractMethod", payload)

    def perform_mutation(
        self,
        operation: str,
        target: dict[str, Any],
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Generic entry point: ``target`` locates the code, ``params`` carries the operation inputs."""
        canonical = MUTATION_NAMES.get(operation)
        if canonical is None:
            return invalid(f"Unknown mutation '{operation}'. Expected one of: rename, move, extract_method")
        if not isinstance(target, dict):
            return invalid(f"target must be an object, got {type(target).__name__}")
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            return invalid(f"params must be an object, got {type(params).__name__}")
        project = target.get("project")

        if canonical == OP_EXTRACT_METHOD:
            return self.extract_method(
                target.get("file", ""),
                target.get("start_line", target.get("line")),
                target.get("start_column", target.get("column")),
                target.get("end_line"),
                target.get("end_column"),
                params.get("method_name", params.get("new_name", "")),
                project,
            )
        if canonical == OP_MOVE:
            return self.move(
                target.get("file", ""),
                target.get("line"),
                target.get("column"),
                params.get("target_package", params.get("destination", "")),
                bool(params.get("search_in_comments", False)),
                bool(params.get("search_in_non_code_files", False)),
                project,
            )
        return self.rename(
            target.get("file", ""),
            target.get("line"),
            target.get("column"),
            params.get("new_name", ""),
            bool(params.get("search_in_comments", False)),
            bool(params.get("search_text_occurrences", False)),
            project,
        )
