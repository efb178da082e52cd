"""Line-oriented cursor used when rewriting generated patch text."""

from __future__ import annotations

from typing import Callable, List

LinePredicate = Callable[[str], bool]
LineHandler = Callable[[str], None]


class ScannerEof(Exception):
    """Raised when the scanner runs out of lines."""


def split_lines(text: str) -> List[str]:
    """Split ``text`` on ``\\n`` only, dropping a single trailing terminator.

    Carriage returns stay attached to their line so CRLF content survives a
    split/join round trip.
    """

    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class LineScanner:
    """Cursor over the lines of a text buffer.

    ``line_number`` is 1-based and always refers to the next line that
    :meth:`pop` will return.
    """

    def __init__(self, text: str) -> None:
        self._lines = split_lines(text)
        self._position = 0

    @property
    def line_number(self) -> int:
        return self._position + 1

    def at_end(self) -> bool:
        return self._position >= len(self._lines)

    def peek(self) -> str:
        if self.at_end():
            raise ScannerEof()
        return self._lines[self._position]

    def pop(self) -> str:
        line = self.peek()
        self._position += 1
        return line

    def remaining(self) -> List[str]:
        return self._lines[self._position :]

    def take_while(self, matcher: LinePredicate, handler: LineHandler) -> None:
        while not self.at_end() and matcher(self._lines[self._position]):
            handler(self.pop())

    def skip_while(self, matcher: LinePredicate) -> None:
        self.take_while(matcher, lambda _line: None)

    def skip_whitespace(self) -> None:
        self.skip_while(lambda line: not line.strip())

    def take_until(self, matcher: LinePredicate, handler: LineHandler) -> str:
        """Pass lines to ``handler`` until one satisfies ``matcher`` and return it.

        The matching line is consumed but not handed to ``handler``. Raises
        :class:`ScannerEof` when no line matches.
        """

        while True:
            line = self.pop()
            if matcher(line):
                return line
            handler(line)


__all__ = ["LineScanner", "ScannerEof", "split_lines"]
