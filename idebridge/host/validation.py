"""Pure bounds checks for source coordinates.

Coordinates are 1-based. A column may sit one past the last character of a
line (the end-of-line caret position). Out-of-range values are terminal
errors and are never clamped.
"""

from idebridge.core.errors import OperationError
from idebridge.host.document import Document


class CoordinateValidator:
    """Validates (line, column) pairs against a document's extents."""

    def validate_line(self, document: Document, line: int) -> OperationError | None:
        if line < 1 or line > document.line_count:
            return OperationError.line_out_of_bounds(line, document.line_count)
        return None

    def validate_column(self, document: Document, line: int, column: int) -> OperationError | None:
        max_column = document.line_length(line) + 1
        if column < 1 or column > max_column:
            return OperationError.column_out_of_bounds(line, column, max_column)
        return None

    def to_offset(
        self, document: Document, line: int, column: int
    ) -> tuple[int | None, OperationError | None]:
        """Validate line then column, and only then compute the offset."""
        error = self.validate_line(document, line)
        if error is not None:
            return None, error
        error = self.validate_column(document, line, column)
        if error is not None:
            return None, error
        return document.line_start(line) + column - 1, None

    def validate_range(
        self,
        document: Document,
        start: tuple[int, int],
        end: tuple[int, int],
    ) -> tuple[tuple[int, int] | None, OperationError | None]:
        """Validate both ends of a selection and return (start_offset, end_offset)."""
        start_offset, error = self.to_offset(document, *start)
        if error is not None:
            return None, error
        end_offset, error = self.to_offset(document, *end)
        if error is not None:
            return None, error
        if start_offset > end_offset:  # type: ignore[operator]
            return None, OperationError.invalid_argument(
                f"Range start {start[0]}:{start[1]} is after range end {end[0]}:{end[1]}",
                argument="range",
            )
        return (start_offset, end_offset), None
