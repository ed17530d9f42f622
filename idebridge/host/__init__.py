"""In-IDE host side: coordinate resolution, capability dispatch and serialized mutations."""

from idebridge.host.capabilities import UNSUPPORTED, Available, CapabilityRegistry, Unavailable
from idebridge.host.diagnostics import DiagnosticsCollector, DiagnosticsProvider, Problem, QuickFix, Severity
from idebridge.host.engine import Engine, MoveOptions, RenameOptions
from idebridge.host.executor import (
    CancellationToken,
    MutationExecutor,
    MutationState,
    PendingMutation,
    ReadLockTimeout,
    ResultCallback,
    current_token,
)
from idebridge.host.handlers import RefactoringService
from idebridge.host.resolver import EntityReference, EntityResolver, ResolvedRange
from idebridge.host.validation import CoordinateValidator
from idebridge.host.workspace import HostContext, Workspace

__all__ = [
    "Available",
    "CancellationToken",
    "CapabilityRegistry",
    "CoordinateValidator",
    "DiagnosticsCollector",
    "DiagnosticsProvider",
    "Engine",
    "EntityReference",
    "EntityResolver",
    "HostContext",
    "MoveOptions",
    "MutationExecutor",
    "MutationState",
    "PendingMutation",
    "Problem",
    "QuickFix",
    "ReadLockTimeout",
    "RefactoringService",
    "RenameOptions",
    "ResolvedRange",
    "ResultCallback",
    "Severity",
    "UNSUPPORTED",
    "Unavailable",
    "Workspace",
    "current_token",
]
