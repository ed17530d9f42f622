"""Line table over a text buffer.

Line endings are normalized to ``\\n`` on load, so offsets index the
normalized text. A trailing newline terminates the last line rather than
opening a new one; an empty buffer has one empty line.
"""

from __future__ import annotations

from bisect import bisect_right
from pathlib import Path


class Document:
    def __init__(self, text: str) -> None:
        self.text = text.replace("\r\n", "\n").replace("\r", "\n")
        starts = [0]
        for index, char in enumerate(self.text):
            if char == "\n":
                starts.append(index + 1)
        if len(starts) > 1 and starts[-1] == len(self.text):
            starts.pop()
        self._line_starts = starts

    @classmethod
    def from_path(cls, path: Path) -> Document:
        return cls(path.read_text(encoding="utf-8", errors="replace"))

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_start(self, line: int) -> int:
        """Offset of the first character of a 1-based line."""
        return self._line_starts[line - 1]

    def line_end(self, line: int) -> int:
        """Offset just past the last character of a 1-based line, excluding the newline."""
        if line < self.line_count:
            return self._line_starts[line] - 1
        end = len(self.text)
        if self.text.endswith("\n"):
            end -= 1
        return end

    def line_length(self, line: int) -> int:
        return self.line_end(line) - self.line_start(line)

    def line_text(self, line: int) -> str:
        return self.text[self.line_start(line) : self.line_end(line)]

    def position(self, offset: int) -> tuple[int, int]:
        """1-based (line, column) of an offset."""
        line = bisect_right(self._line_starts, offset)
        line = max(1, min(line, self.line_count))
        return line, offset - self.line_start(line) + 1
