"""Problems reported by the host's analyzers and the quick fixes they offer.

Two providers can back a query: the cached one returns what the editor's
background analysis already found, and the inspection one runs a fresh
analysis pass. Only the cached provider is required; without an inspection
provider a ``runInspections`` request fails as CAPABILITY_UNAVAILABLE.

Results are ordered by severity first (errors before warnings), then by
file and position, and cut to the requested limit. Fix ids are indices into
a diagnostic's fix list and are only meaningful for the text they were
computed on.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from idebridge.core.constants import DEFAULT_DIAGNOSTICS_LIMIT, DIAGNOSTICS_SCAN_FACTOR, OP_DIAGNOSTICS
from idebridge.core.errors import OperationError
from idebridge.core.types import AppliedFix, Diagnostic, DiagnosticsReport, FixInfo, OperationResult
from idebridge.host.document import Document
from idebridge.host.executor import MutationCancelled

_host_log = logging.getLogger("idebridge.host")


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    WEAK_WARNING = "WEAK_WARNING"
    INFO = "INFO"
    HINT = "HINT"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def parse(cls, value: str) -> Severity | None:
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


_RANK = {severity: index for index, severity in enumerate(Severity)}


def parse_severity_filter(values: Iterable[str] | None) -> tuple[frozenset[Severity], list[str]]:
    """Split requested severity names into known levels and unrecognised names.

    An empty set means every severity is wanted.
    """
    wanted: set[Severity] = set()
    unknown: list[str] = []
    for value in values or ():
        severity = Severity.parse(value)
        if severity is None:
            unknown.append(value)
        else:
            wanted.add(severity)
    return frozenset(wanted), unknown


class QuickFix(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def family_name(self) -> str | None: ...

    @property
    def description(self) -> str | None: ...

    def is_available(self) -> bool: ...

    def apply(self) -> None: ...


@dataclass(frozen=True)
class Problem:
    """One highlighted range, as character offsets into the file text."""

    start_offset: int
    end_offset: int
    severity: Severity
    message: str
    source: str | None = None
    fixes: tuple[QuickFix, ...] = ()

    def covers(self, offset: int) -> bool:
        return self.start_offset <= offset <= self.end_offset


class DiagnosticsProvider(Protocol):
    name: str

    def collect(self, file_path: str, document: Document) -> Iterable[Problem]: ...


def to_diagnostic(problem: Problem, file_path: str, document: Document) -> Diagnostic:
    size = len(document.text)
    start = min(max(problem.start_offset, 0), size)
    end = min(max(problem.end_offset, start), size)
    line, column = document.position(start)
    end_line, end_column = document.position(end)
    return Diagnostic(
        file_path=file_path,
        line=line,
        column=column,
        end_line=end_line,
        end_column=end_column,
        severity=problem.severity.value,
        message=problem.message,
        source=problem.source,
        fixes=tuple(
            FixInfo(index, fix.name, fix.family_name, fix.description) for index, fix in enumerate(problem.fixes)
        ),
    )


def collect_files(root: Path, max_files: int) -> list[str]:
    """Regular files under ``root`` in a stable order; hidden entries and symlinks are skipped."""
    found: list[str] = []
    for directory, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
        for filename in sorted(filenames):
            path = Path(directory, filename)
            if filename.startswith(".") or path.is_symlink():
                continue
            found.append(path.as_posix())
            if len(found) >= max_files:
                return found
    return found


def result_message(scope: str, returned: int, total: int, truncated: bool) -> str:
    if total == 0:
        return f"No diagnostics found in {scope}"
    if truncated:
        return f"Found {total} diagnostic(s) in {scope} (showing first {returned})"
    return f"Found {total} diagnostic(s) in {scope}"


def apply_quick_fix(fix: QuickFix, file_path: str) -> OperationResult:
    """Apply ``fix``; runs as a mutation body on the executor's worker."""
    if not fix.is_available():
        return OperationResult.failed(OperationError.fix_unavailable(fix.name))
    try:
        fix.apply()
    except MutationCancelled:
        raise
    except Exception as e:
        _host_log.warning(
            "quick_fix_failed fix=%s file=%s error=%s",
            fix.name,
            file_path,
            str(e),
            extra={"fix": fix.name, "file": file_path},
            exc_info=True,
        )
        return OperationResult.failed(OperationError.internal(e, label="Failed to apply fix"))
    return AppliedFix(
        success=True,
        message=f"Applied fix '{fix.name}'",
        affected_files=(file_path,),
        fix_name=fix.name,
    )


class DiagnosticsCollector:
    def __init__(
        self,
        cached: DiagnosticsProvider,
        inspections: DiagnosticsProvider | None = None,
        document_loader: Callable[[Path], Document] = Document.from_path,
        scan_factor: int = DIAGNOSTICS_SCAN_FACTOR,
    ) -> None:
        self.cached = cached
        self.inspections = inspections
        self.document_loader = document_loader
        self.scan_factor = scan_factor

    def provider(self, run_inspections: bool) -> tuple[DiagnosticsProvider | None, OperationError | None]:
        if not run_inspections:
            return self.cached, None
        if self.inspections is None:
            return None, OperationError.capability_unavailable(
                "any", OP_DIAGNOSTICS, "Running inspections is not supported by this IDE. Omit 'runInspections'."
            )
        return self.inspections, None

    def collect(
        self,
        provider: DiagnosticsProvider,
        files: Iterable[str],
        scope: str,
        severities: frozenset[Severity] = frozenset(),
        limit: int = DEFAULT_DIAGNOSTICS_LIMIT,
    ) -> OperationResult:
        wanted = limit * self.scan_factor
        found: list[Diagnostic] = []
        try:
            for file_path in files:
                try:
                    document = self.document_loader(Path(file_path))
                except OSError as e:
                    _host_log.debug("diagnostics_skip file=%s error=%s", file_path, str(e), extra={"file": file_path})
                    continue
                for problem in provider.collect(file_path, document):
                    if severities and problem.severity not in severities:
                        continue
                    found.append(to_diagnostic(problem, file_path, document))
                if len(found) >= wanted:
                    break
        except Exception as e:
            _host_log.warning(
                "diagnostics_failed provider=%s scope=%s error=%s",
                provider.name,
                scope,
                str(e),
                extra={"provider": provider.name, "scope": scope},
                exc_info=True,
            )
            return OperationResult.failed(OperationError.internal(e, label="Failed to collect diagnostics"))

        found.sort(key=lambda d: (Severity(d.severity).rank, d.file_path, d.line, d.column))
        shown = tuple(found[:limit])
        truncated = len(found) > limit
        return DiagnosticsReport(
            success=True,
            message=result_message(scope, len(shown), len(found), truncated),
            diagnostics=shown,
            total_count=len(found),
            truncated=truncated,
        )

    def problems_at(
        self,
        provider: DiagnosticsProvider,
        file_path: str,
        document: Document,
        offset: int,
        diagnostic_message: str | None = None,
    ) -> list[Problem]:
        """Problems whose range covers ``offset``, optionally matching a message exactly (ignoring padding)."""
        expected = diagnostic_message.strip() if diagnostic_message is not None else None
        return [
            problem
            for problem in provider.collect(file_path, document)
            if problem.covers(offset) and (expected is None or problem.message.strip() == expected)
        ]
