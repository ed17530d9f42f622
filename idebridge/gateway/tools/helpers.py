"""Helper functions for gateway tools."""

from collections.abc import Callable
from typing import Any

from idebridge.core.constants import MAX_USAGE_PREVIEW_CHARS
from idebridge.core.errors import OperationError
from idebridge.core.types import Diagnostic, InstanceDescriptor, Usage
from idebridge.gateway.client import InstanceClient
from idebridge.gateway.routing import NotFoundDiagnostic, OwnershipRouter

Snapshot = Callable[[], tuple[InstanceDescriptor, ...]]
ClientFactory = Callable[[str], InstanceClient]


def validate_position(line: Any, column: Any, prefix: str = "") -> tuple[bool, str | None]:
    """Check that a 1-based (line, column) pair is made of positive integers."""
    for label, value in ((f"{prefix}line", line), (f"{prefix}column", column)):
        if isinstance(value, bool) or not isinstance(value, int):
            return False, f"{label} must be an integer, got {type(value).__name__}"
        if value < 1:
            return False, f"{label} must be >= 1 (coordinates are 1-based), got {value}"
    return True, None


def validate_text(value: Any, message: str) -> tuple[bool, str | None]:
    if not isinstance(value, str) or not value.strip():
        return False, message
    return True, None


def invalid(message: str | None) -> dict[str, Any]:
    return OperationError.invalid_argument(message or "Invalid argument").to_dict()


def route_and_call(
    snapshot: Snapshot,
    router: OwnershipRouter,
    client_factory: ClientFactory,
    file: str,
    path: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Take a fresh snapshot, route ``file`` to its owner and POST ``payload`` there."""
    match = router.route(file, snapshot())
    if isinstance(match, NotFoundDiagnostic):
        return match.to_dict()
    response = client_factory(match.instance.endpoint).post(path, payload)
    response.setdefault("instance", match.instance.instance_kind)
    return response


def format_usages(usages: list[Usage]) -> str:
    if not usages:
        return "No usages found"
    blocks = []
    for usage in usages:
        block = f"{usage.file_path}:{usage.line}:{usage.column}"
        preview = usage.preview.strip()
        if len(preview) > MAX_USAGE_PREVIEW_CHARS:
            preview = preview[: MAX_USAGE_PREVIEW_CHARS - 3] + "..."
        if preview:
            block += f"\n  {preview}"
        blocks.append(block)
    return f"Found {len(usages)} usage(s):\n\n" + "\n\n".join(blocks)


def format_diagnostics(diagnostics: list[Diagnostic], total: int, truncated: bool) -> str:
    if not diagnostics:
        return "No diagnostics found"
    blocks = []
    for diagnostic in diagnostics:
        location = f"{diagnostic.file_path}:{diagnostic.line}:{diagnostic.column}"
        block = f"[{diagnostic.severity}] {location} {diagnostic.message}"
        for fix in diagnostic.fixes:
            block += f"\n  fix {fix.fix_id}: {fix.name}"
        blocks.append(block)
    header = f"Found {total} diagnostic(s)"
    if truncated:
        header += f" (showing first {len(diagnostics)})"
    return header + ":\n\n" + "\n\n".join(blocks)


def format_status(instances: tuple[InstanceDescriptor, ...]) -> str:
    if not instances:
        return "No JetBrains IDEs are running.\n\nStart an IDE with the idebridge plugin installed."
    sections = []
    for instance in instances:
        lines = [f"{instance.instance_kind} {instance.version} ({instance.endpoint})"]
        if instance.workspaces:
            lines.append("  Projects:")
            lines.extend(f"    - {w.display_name}: {w.root_path}" for w in instance.workspaces)
        else:
            lines.append("  Projects: (none)")
        lines.append(f"  Indexing: {'in progress' if instance.indexing_in_progress else 'complete'}")
        languages = sorted(name for name, enabled in instance.language_plugins.items() if enabled)
        lines.append(f"  Languages: {', '.join(languages) if languages else '(none)'}")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)
