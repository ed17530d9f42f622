"""Request handling inside one instance.

Each operation validates its arguments, resolves the coordinate under the
read discipline, checks the capability, and only then hands the work to the
mutation executor, whose body dispatches through the capability registry.
Nothing that fails validation reaches the executor.

Reads wait for the lock no longer than the operation's deadline, so a
mutation that outlived its own timeout cannot stall later requests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

from idebridge.core.constants import (
    DEFAULT_DIAGNOSTICS_LIMIT,
    DEFAULT_MUTATION_TIMEOUT_SECONDS,
    MOVE_MUTATION_TIMEOUT_SECONDS,
    OP_DIAGNOSTICS,
    OP_EXTRACT_METHOD,
    OP_FIND_USAGES,
    OP_MOVE,
    OP_RENAME,
)
from idebridge.core.errors import OperationError
from idebridge.core.languages import Language
from idebridge.core.paths import canonical_path
from idebridge.core.types import OperationResult
from idebridge.host.capabilities import CapabilityRegistry
from idebridge.host.diagnostics import (
    DiagnosticsCollector,
    DiagnosticsProvider,
    QuickFix,
    Severity,
    apply_quick_fix,
    collect_files,
    parse_severity_filter,
)
from idebridge.host.engine import MoveOptions, RenameOptions
from idebridge.host.executor import MutationExecutor, ReadLockTimeout
from idebridge.host.resolver import EntityResolver
from idebridge.host.workspace import HostContext

_host_log = logging.getLogger("idebridge.host")

_T = TypeVar("_T")


def _as_failure(error: OperationError | None) -> OperationResult:
    if error is None:
        raise RuntimeError("Resolution failed without an error")
    return OperationResult.failed(error)


def _require_text(value: str, message: str, argument: str) -> OperationError | None:
    if not value or not value.strip():
        return OperationError.invalid_argument(message, argument=argument)
    return None


def _remaining(started: float, timeout: float) -> float:
    return max(0.0, round(timeout - (time.monotonic() - started), 3))


class RefactoringService:
    def __init__(
        self,
        context: HostContext,
        resolver: EntityResolver,
        registry: CapabilityRegistry,
        executor: MutationExecutor,
        ide_type: str = "IntelliJ IDEA",
        ide_version: str = "unknown",
        port: int = 8765,
        default_timeout: float = DEFAULT_MUTATION_TIMEOUT_SECONDS,
        move_timeout: float = MOVE_MUTATION_TIMEOUT_SECONDS,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> None:
        self.context = context
        self.resolver = resolver
        self.registry = registry
        self.executor = executor
        self.ide_type = ide_type
        self.ide_version = ide_version
        self.port = port
        self.default_timeout = default_timeout
        self.move_timeout = move_timeout
        self.diagnostics_collector = diagnostics

    def status(self) -> dict[str, Any]:
        return {
            "ok": True,
            "ideType": self.ide_type,
            "ideVersion": self.ide_version,
            "port": self.port,
            "openProjects": [w.info().to_dict() for w in self.context.workspaces()],
            "indexingInProgress": self.context.any_indexing(),
            "languagePlugins": self.registry.language_plugins(),
            "implementedTools": self.registry.implemented_tools(),
        }

    def _query(self, command_name: str, timeout: float, query: Callable[[], _T]) -> _T | OperationResult:
        """Run ``query`` under the read lock, giving up once ``timeout`` has passed."""
        try:
            with self.executor.read_action(timeout):
                return query()
        except ReadLockTimeout:
            _host_log.warning(
                "read_timeout command=%s timeout=%s",
                command_name,
                timeout,
                extra={"command": command_name, "timeout": timeout},
            )
            return OperationResult.failed(OperationError.timeout(command_name, timeout))

    def _dispatch(self, operation: str, language: Language, *args: Any) -> OperationResult:
        result = self.registry.dispatch(operation, language, *args)
        if isinstance(result, OperationResult):
            return result
        return self.registry.unsupported_result(operation, language)

    def _mutate(
        self,
        command_name: str,
        invoke: Callable[[], OperationResult],
        timeout: float,
    ) -> OperationResult:
        _host_log.info(
            "mutation_submit command=%s timeout=%s",
            command_name,
            timeout,
            extra={"command": command_name, "timeout": timeout},
        )
        return self.executor.execute(invoke, command_name, timeout=timeout)

    def resolve(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> dict[str, Any]:
        def query() -> dict[str, Any]:
            entity, error = self.resolver.resolve(file, line, column, project)
            if entity is None:
                return _as_failure(error).to_dict()
            return {"success": True, "entity": entity.to_dict()}

        result = self._query("Resolve", self.default_timeout, query)
        return result.to_dict() if isinstance(result, OperationResult) else result

    def rename(
        self,
        file: str,
        line: int,
        column: int,
        new_name: str,
        options: RenameOptions | None = None,
        project: str | None = None,
    ) -> OperationResult:
        error = _require_text(new_name, "New name cannot be empty", "newName")
        if error is not None:
            return OperationResult.failed(error)

        started = time.monotonic()
        resolved = self._query(
            "Rename", self.default_timeout, lambda: self.resolver.resolve(file, line, column, project)
        )
        if isinstance(resolved, OperationResult):
            return resolved
        entity, error = resolved
        if entity is None:
            return _as_failure(error)

        failure = self.registry.check(OP_RENAME, entity.language)
        if failure is not None:
            return failure
        rename_options = options or RenameOptions()
        return self._mutate(
            "Rename",
            lambda: self._dispatch(OP_RENAME, entity.language, entity, new_name.strip(), rename_options),
            _remaining(started, self.default_timeout),
        )

    def find_usages(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> OperationResult:
        def query() -> OperationResult:
            entity, error = self.resolver.resolve(file, line, column, project)
            if entity is None:
                return _as_failure(error)
            return self._dispatch(OP_FIND_USAGES, entity.language, entity)

        return self._query("Find Usages", self.default_timeout, query)

    def move(
        self,
        file: str,
        line: int,
        column: int,
        target_package: str,
        options: MoveOptions | None = None,
        project: str | None = None,
    ) -> OperationResult:
        error = _require_text(target_package, "Target package/module cannot be empty", "targetPackage")
        if error is not None:
            return OperationResult.failed(error)

        started = time.monotonic()
        resolved = self._query("Move", self.move_timeout, lambda: self.resolver.resolve(file, line, column, project))
        if isinstance(resolved, OperationResult):
            return resolved
        entity, error = resolved
        if entity is None:
            return _as_failure(error)

        failure = self.registry.check(OP_MOVE, entity.language)
        if failure is not None:
            return failure
        move_options = options or MoveOptions()
        return self._mutate(
            "Move",
            lambda: self._dispatch(OP_MOVE, entity.language, entity, target_package.strip(), move_options),
            _remaining(started, self.move_timeout),
        )

    def extract_method(
        self,
        file: str,
        start_line: int,
        start_column: int,
        end_line: int,
        end_column: int,
        method_name: str,
        project: str | None = None,
    ) -> OperationResult:
        error = _require_text(method_name, "Method name cannot be empty", "methodName")
        if error is not None:
            return OperationResult.failed(error)

        started = time.monotonic()
        resolved = self._query(
            "Extract Method",
            self.default_timeout,
            lambda: self.resolver.resolve_range(file, (start_line, start_column), (end_line, end_column), project),
        )
        if isinstance(resolved, OperationResult):
            return resolved
        file_range, error = resolved
        if file_range is None:
            return _as_failure(error)

        failure = self.registry.check(OP_EXTRACT_METHOD, file_range.language)
        if failure is not None:
            return failure
        return self._mutate(
            "Extract Method",
            lambda: self._dispatch(OP_EXTRACT_METHOD, file_range.language, file_range, method_name.strip()),
            _remaining(started, self.default_timeout),
        )

    # Diagnostics and quick fixes

    def _diagnostics_source(
        self, run_inspections: bool
    ) -> tuple[DiagnosticsCollector, DiagnosticsProvider] | OperationResult:
        collector = self.diagnostics_collector
        if collector is None:
            return OperationResult.failed(
                OperationError.capability_unavailable(
                    "any", OP_DIAGNOSTICS, "Diagnostics are not available in this IDE instance."
                )
            )
        provider, error = collector.provider(run_inspections)
        if provider is None:
            return _as_failure(error)
        return collector, provider

    def _diagnostics_scope(
        self, file: str | None, project: str | None, max_files: int
    ) -> tuple[tuple[list[str], str] | None, OperationError | None]:
        """Files to scan and a human-readable description of them."""
        if file is None:
            workspaces = self.context.workspaces()
            if not workspaces:
                return None, OperationError.no_workspace([], project)
            workspace = (self.context.find_by_hint(project) if project else None) or workspaces[0]
            if self.context.is_indexing(workspace):
                return None, OperationError.index_rebuilding(workspace.name)
            root = Path(canonical_path(workspace.root_path))
            return (collect_files(root, max_files), f"project '{workspace.name}'"), None

        try:
            path = Path(file.replace("\\", "/")).expanduser().resolve(strict=True)
        except (OSError, RuntimeError):
            return None, OperationError.file_not_found(file)
        if path.is_dir():
            workspace, error = self.context.resolve_workspace(path.as_posix(), project)
            if workspace is None:
                return None, error
            if self.context.is_indexing(workspace):
                return None, OperationError.index_rebuilding(workspace.name)
            return (collect_files(path, max_files), f"directory '{path.name}'"), None

        located, error = self.resolver.locate(file, project)
        if located is None:
            return None, error
        return ([located.file_path], f"file '{path.name}'"), None

    def diagnostics(
        self,
        file: str | None = None,
        project: str | None = None,
        severity: Iterable[str] | None = None,
        limit: int = DEFAULT_DIAGNOSTICS_LIMIT,
        run_inspections: bool = False,
    ) -> OperationResult:
        """Problems in a file, a directory, or a whole workspace when ``file`` is omitted."""
        severities, unknown = parse_severity_filter(severity)
        if unknown:
            valid = ", ".join(level.value for level in Severity)
            return OperationResult.failed(
                OperationError.invalid_argument(
                    f"Unknown severity: {', '.join(unknown)}. Valid values: {valid}", argument="severity"
                )
            )
        source = self._diagnostics_source(run_inspections)
        if isinstance(source, OperationResult):
            return source
        collector, provider = source
        limit = max(1, limit)

        def query() -> OperationResult:
            scope, error = self._diagnostics_scope(file, project, limit * collector.scan_factor)
            if scope is None:
                return _as_failure(error)
            files, description = scope
            return collector.collect(provider, files, description, severities, limit)

        return self._query("Diagnostics", self.default_timeout, query)

    def apply_fix(
        self,
        file: str,
        line: int,
        column: int,
        fix_id: int,
        diagnostic_message: str | None = None,
        project: str | None = None,
        run_inspections: bool = False,
    ) -> OperationResult:
        """Apply quick fix ``fix_id`` of the diagnostic covering ``line``:``column``.

        The fix is looked up under the read lock and applied as a mutation.
        """
        if fix_id < 0:
            return OperationResult.failed(OperationError.invalid_argument("fixId must be >= 0", argument="fixId"))
        source = self._diagnostics_source(run_inspections)
        if isinstance(source, OperationResult):
            return source
        collector, provider = source

        def select() -> tuple[QuickFix, str] | OperationResult:
            located, error = self.resolver.locate(file, project)
            if located is None:
                return _as_failure(error)
            offset, error = self.resolver.validator.to_offset(located.document, line, column)
            if offset is None:
                return _as_failure(error)
            try:
                problems = collector.problems_at(
                    provider, located.file_path, located.document, offset, diagnostic_message
                )
            except Exception as e:
                _host_log.warning(
                    "diagnostics_failed provider=%s file=%s error=%s",
                    provider.name,
                    located.file_path,
                    str(e),
                    extra={"provider": provider.name, "file": located.file_path},
                    exc_info=True,
                )
                return OperationResult.failed(OperationError.internal(e, label="Failed to collect diagnostics"))
            if not problems:
                return OperationResult.failed(
                    OperationError.diagnostic_not_found(located.file_path, line, column, diagnostic_message)
                )
            problem = problems[0]
            if not problem.fixes:
                return OperationResult.failed(OperationError.no_quick_fix(problem.message))
            if fix_id >= len(problem.fixes):
                return OperationResult.failed(OperationError.invalid_fix_id(fix_id, len(problem.fixes)))
            return problem.fixes[fix_id], located.file_path

        started = time.monotonic()
        selected = self._query("Apply Quick Fix", self.default_timeout, select)
        if isinstance(selected, OperationResult):
            return selected
        fix, file_path = selected
        return self._mutate(
            f"Apply Quick Fix: {fix.name}",
            lambda: apply_quick_fix(fix, file_path),
            _remaining(started, self.default_timeout),
        )
