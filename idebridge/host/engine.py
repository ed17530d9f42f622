"""The Engine collaborator: language-specific program transformations.

Implementations live with the host (they wrap the IDE's own refactoring
processors). Each declares the languages and operations it implements; the
capability registry only ever routes those combinations to it.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass

from idebridge.core.constants import OP_EXTRACT_METHOD, OP_FIND_USAGES, OP_MOVE, OP_RENAME
from idebridge.core.errors import EngineError
from idebridge.core.languages import Language
from idebridge.core.types import OperationResult, Usage
from idebridge.host.resolver import EntityReference, ResolvedRange


@dataclass(frozen=True)
class RenameOptions:
    search_in_comments: bool = False
    search_text_occurrences: bool = False


@dataclass(frozen=True)
class MoveOptions:
    search_in_comments: bool = False
    search_in_non_code_files: bool = False


class Engine(ABC):
    """Base class for language engines.

    Subclasses override the operations they list in ``operations``. The
    mutating ones run on the host's mutation worker and may poll
    ``idebridge.host.executor.current_token()`` to stop early after a timeout.
    Failures are raised as ``EngineError`` (or any exception); callers convert
    them into failed results.
    """

    languages: tuple[Language, ...] = ()
    operations: tuple[str, ...] = (OP_RENAME, OP_FIND_USAGES, OP_MOVE, OP_EXTRACT_METHOD)

    def is_available(self) -> bool:
        """Whether the language support this engine wraps is loaded right now."""
        return True

    def rename(
        self, entity: EntityReference, new_name: str, options: RenameOptions
    ) -> OperationResult:
        raise EngineError(f"{type(self).__name__} does not implement {OP_RENAME}")

    def find_references(self, entity: EntityReference) -> list[Usage]:
        raise EngineError(f"{type(self).__name__} does not implement {OP_FIND_USAGES}")

    def move(self, entity: EntityReference, destination: str, options: MoveOptions) -> OperationResult:
        raise EngineError(f"{type(self).__name__} does not implement {OP_MOVE}")

    def extract_operation(self, file_range: ResolvedRange, new_name: str) -> OperationResult:
        raise EngineError(f"{type(self).__name__} does not implement {OP_EXTRACT_METHOD}")
