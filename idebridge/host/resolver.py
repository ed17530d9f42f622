"""Coordinate-to-entity resolution inside one instance.

Resolution runs in a fixed order: file, owning workspace, index readiness,
line bounds, column bounds, offset, and finally the semantic lookup. Bounds
checks always precede offset arithmetic, and reference-following always
precedes the ancestor walk so a click on a usage lands on the declaration.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from idebridge.core.errors import OperationError
from idebridge.core.languages import Language, detect_language
from idebridge.host.document import Document
from idebridge.host.validation import CoordinateValidator
from idebridge.host.workspace import HostContext, Workspace


class SemanticElement(Protocol):
    """A node of the host's syntax tree. ``name`` is None for anonymous nodes."""

    @property
    def name(self) -> str | None: ...

    @property
    def kind(self) -> str: ...

    @property
    def file_path(self) -> str: ...

    @property
    def offset(self) -> int: ...

    @property
    def parent(self) -> SemanticElement | None: ...


class SymbolReference(Protocol):
    def resolve(self) -> SemanticElement | None: ...


class SemanticModel(Protocol):
    """Read-only semantic queries the host exposes to the resolver."""

    def reference_at(self, file_path: str, offset: int) -> SymbolReference | None: ...

    def element_at(self, file_path: str, offset: int) -> SemanticElement | None: ...


@dataclass(frozen=True)
class EntityReference:
    """Handle to a resolved entity. Valid only for the request that produced it."""

    element: SemanticElement
    workspace: Workspace
    file_path: str
    offset: int
    language: Language
    document: Document

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.element.name,
            "kind": self.element.kind,
            "file": self.element.file_path,
            "offset": self.element.offset,
            "language": self.language.value,
            "workspace": self.workspace.name,
        }
        if self.element.file_path == self.file_path:
            line, column = self.document.position(self.element.offset)
            payload["line"] = line
            payload["column"] = column
        return payload


@dataclass(frozen=True)
class LocatedFile:
    """An existing file, its owning workspace and its loaded text."""

    file_path: str
    workspace: Workspace
    document: Document
    language: Language


@dataclass(frozen=True)
class ResolvedRange:
    workspace: Workspace
    file_path: str
    document: Document
    start_offset: int
    end_offset: int
    language: Language


def nearest_named(element: SemanticElement | None) -> SemanticElement | None:
    """Walk from ``element`` up through its ancestors to the first named node."""
    current = element
    while current is not None:
        if current.name:
            return current
        current = current.parent
    return None


class EntityResolver:
    def __init__(
        self,
        context: HostContext,
        model: SemanticModel,
        validator: CoordinateValidator | None = None,
        document_loader: Callable[[Path], Document] = Document.from_path,
    ) -> None:
        self.context = context
        self.model = model
        self.validator = validator or CoordinateValidator()
        self.document_loader = document_loader

    def locate(
        self, file_path: str, workspace_hint: str | None = None
    ) -> tuple[LocatedFile | None, OperationError | None]:
        """Steps 1-3 of resolution: existing file, owning workspace, index readiness.

        The path is made canonical first (absolute, ``..`` collapsed, symlinks
        followed) so ownership is decided on the file actually touched.
        """
        try:
            path = Path(file_path.replace("\\", "/")).expanduser().resolve(strict=True)
        except (OSError, RuntimeError):
            return None, OperationError.file_not_found(file_path)
        if not path.is_file():
            return None, OperationError.file_not_found(file_path)
        resolved_path = path.as_posix()

        workspace, error = self.context.resolve_workspace(resolved_path, workspace_hint)
        if error is not None or workspace is None:
            return None, error

        if self.context.is_indexing(workspace):
            return None, OperationError.index_rebuilding(workspace.name)

        try:
            document = self.document_loader(path)
        except OSError:
            return None, OperationError.file_not_found(file_path)
        return LocatedFile(resolved_path, workspace, document, detect_language(resolved_path)), None

    def resolve(
        self,
        file_path: str,
        line: int,
        column: int,
        workspace_hint: str | None = None,
    ) -> tuple[EntityReference | None, OperationError | None]:
        located, error = self.locate(file_path, workspace_hint)
        if located is None:
            return None, error
        resolved_path, workspace, document = located.file_path, located.workspace, located.document

        offset, error = self.validator.to_offset(document, line, column)
        if offset is None:
            return None, error

        target: SemanticElement | None = None
        reference = self.model.reference_at(resolved_path, offset)
        if reference is not None:
            target = reference.resolve()
        if target is None:
            element = self.model.element_at(resolved_path, offset)
            if element is None:
                return None, OperationError.element_not_found(file_path, line, column)
            target = nearest_named(element) or element

        return (
            EntityReference(
                element=target,
                workspace=workspace,
                file_path=resolved_path,
                offset=offset,
                language=located.language,
                document=document,
            ),
            None,
        )

    def resolve_range(
        self,
        file_path: str,
        start: tuple[int, int],
        end: tuple[int, int],
        workspace_hint: str | None = None,
    ) -> tuple[ResolvedRange | None, OperationError | None]:
        located, error = self.locate(file_path, workspace_hint)
        if located is None:
            return None, error

        offsets, error = self.validator.validate_range(located.document, start, end)
        if offsets is None:
            return None, error
        return (
            ResolvedRange(
                workspace=located.workspace,
                file_path=located.file_path,
                document=located.document,
                start_offset=offsets[0],
                end_offset=offsets[1],
                language=located.language,
            ),
            None,
        )
