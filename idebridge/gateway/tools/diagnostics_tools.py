"""Diagnostics and quick-fix tools."""

from typing import Any

from idebridge.core.constants import DEFAULT_DIAGNOSTICS_LIMIT
from idebridge.core.errors import OperationError
from idebridge.core.types import CoordinateRequest, Diagnostic
from idebridge.gateway.routing import OwnershipRouter
from idebridge.gateway.tools.helpers import (
    ClientFactory,
    Snapshot,
    format_diagnostics,
    invalid,
    route_and_call,
    validate_position,
    validate_text,
)


class DiagnosticsTools:
    """Report problems the IDE has found and apply the quick fixes it offers."""

    def __init__(self, snapshot: Snapshot, router: OwnershipRouter, client_factory: ClientFactory) -> None:
        self.snapshot = snapshot
        self.router = router
        self.client_factory = client_factory

    def _call_project(self, project: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        instances = self.snapshot()
        match = self.router.route_project(project, instances)
        if match is None:
            open_projects = [w.display_name for instance in instances for w in instance.workspaces]
            return OperationError.project_not_open(project, open_projects).to_dict()
        response = self.client_factory(match.instance.endpoint).post(path, payload)
        response.setdefault("instance", match.instance.instance_kind)
        return response

    def diagnostics(
        self,
        file: str | None = None,
        project: str | None = None,
        severity: list[str] | None = None,
        limit: int = DEFAULT_DIAGNOSTICS_LIMIT,
        run_inspections: bool = False,
    ) -> dict[str, Any]:
        """Diagnostics for a file or directory, or for a whole project when only ``project`` is given."""
        if file is not None and not validate_text(file, "file must be a non-empty path")[0]:
            return invalid("file must be a non-empty path")
        hint = project.strip() if isinstance(project, str) else ""
        if file is None and not hint:
            return invalid("Provide 'file' or 'project'")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            return invalid(f"limit must be a positive integer, got {limit!r}")
        if severity is not None and (
            not isinstance(severity, list) or not all(isinstance(item, str) for item in severity)
        ):
            return invalid("severity must be a list of strings")

        payload: dict[str, Any] = {"limit": limit, "runInspections": bool(run_inspections)}
        if severity:
            payload["severity"] = severity
        if hint:
            payload["project"] = hint
        if file is None:
            result = self._call_project(hint, "/diagnostics", payload)
        else:
            payload["file"] = file
            result = route_and_call(self.snapshot, self.router, self.client_factory, file, "/diagnostics", payload)

        raw = result.get("diagnostics")
        if result.get("success") and isinstance(raw, list):
            diagnostics = [Diagnostic.from_dict(item) for item in raw if isinstance(item, dict)]
            total = result.get("totalCount")
            result["report"] = format_diagnostics(
                diagnostics,
                total if isinstance(total, int) else len(diagnostics),
                bool(result.get("truncated")),
            )
        return result

    def apply_fix(
        self,
        file: str,
        line: int,
        column: int,
        fix_id: int,
        diagnostic_message: str | None = None,
        project: str | None = None,
        run_inspections: bool = False,
    ) -> dict[str, Any]:
        valid, error = validate_text(file, "file must be a non-empty path")
        if valid:
            valid, error = validate_position(line, column)
        if valid and (isinstance(fix_id, bool) or not isinstance(fix_id, int) or fix_id < 0):
            valid, error = False, f"fix_id must be a non-negative integer, got {fix_id!r}"
        if not valid:
            return invalid(error)

        payload = CoordinateRequest(file, line, column, project).to_dict()
        payload.update(fixId=fix_id, runInspections=bool(run_inspections))
        if diagnostic_message:
            payload["diagnosticMessage"] = diagnostic_message
        return route_and_call(self.snapshot, self.router, self.client_factory, file, "/applyFix", payload)
