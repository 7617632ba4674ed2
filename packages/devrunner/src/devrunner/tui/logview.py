"""
LogView: a scrollable rich renderable holding a process's decoded output.

The view keeps raw output lines (ANSI escapes intact) and decodes only the
lines it is about to paint, so a long session costs one AnsiDecoder pass
per visible line per frame rather than per line ever written.

- With autoscroll on, the last lines that fit are painted
- With autoscroll off, painting starts at a saved line offset; turning
  autoscroll off freezes the offset at whatever was on screen
- With wrap off, long lines are cropped at the right edge
"""

from __future__ import annotations

from rich.ansi import AnsiDecoder
from rich.console import Console, ConsoleOptions, RenderResult
from rich.text import Text


def _visible(line: str) -> str:
    """Apply carriage returns the way a terminal would for a single line."""
    line = line.rstrip("\r")
    if "\r" in line:
        line = line.rsplit("\r", 1)[1]
    return line


class LogView:
    """
    Line-oriented ANSI text widget.

    Only the UI loop may call into a LogView; producers hand it text through
    the controller's draw queue.
    """

    def __init__(self, max_lines: int | None = None) -> None:
        self.max_lines = max_lines
        self.wrap = False
        self.autoscroll = True
        self.offset = 0
        self._lines: list[str] = []
        self._partial = ""
        self._tail_top = 0
        self._last_height = 1

    @property
    def line_count(self) -> int:
        return len(self._lines) + (1 if self._partial else 0)

    def write(self, text: str) -> None:
        """Append decoded output. A trailing unterminated line stays open."""
        if not text:
            return
        pieces = (self._partial + text).split("\n")
        self._partial = pieces.pop()
        self._lines.extend(pieces)
        self._evict()

    def _evict(self) -> None:
        if self.max_lines is None:
            return
        excess = len(self._lines) - self.max_lines
        if excess <= 0:
            return
        del self._lines[:excess]
        self.offset = max(0, self.offset - excess)
        self._tail_top = max(0, self._tail_top - excess)

    def set_wrap(self, wrap: bool) -> None:
        self.wrap = wrap

    def set_autoscroll(self, autoscroll: bool) -> None:
        if self.autoscroll and not autoscroll:
            self.offset = self._tail_top
        self.autoscroll = autoscroll

    def scroll_to_head(self) -> None:
        self.offset = 0

    def scroll_to_tail(self) -> None:
        self.offset = max(0, self.line_count - self._last_height)

    def scroll_by(self, delta: int) -> None:
        self.offset = min(max(0, self.offset + delta), max(0, self.line_count - 1))

    def _all_lines(self) -> list[str]:
        return self._lines + [self._partial] if self._partial else self._lines

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        height = options.height or options.max_height
        width = options.max_width
        self._last_height = max(1, height)
        lines = self._all_lines()
        decoder = AnsiDecoder()

        if self.autoscroll:
            rows, top = self._tail_rows(console, decoder, lines, width, height)
            self._tail_top = top
        else:
            top = min(self.offset, max(0, len(lines) - 1))
            rows = self._head_rows(console, decoder, lines[top:], width, height)

        text = Text("\n").join(rows)
        text.no_wrap = True
        text.overflow = "crop"
        yield text

    def _rows(self, console: Console, decoder: AnsiDecoder, line: str, width: int) -> list[Text]:
        decoded = decoder.decode_line(_visible(line))
        if not self.wrap:
            return [decoded]
        return list(decoded.wrap(console, width, overflow="fold")) or [Text()]

    def _tail_rows(
        self,
        console: Console,
        decoder: AnsiDecoder,
        lines: list[str],
        width: int,
        height: int,
    ) -> tuple[list[Text], int]:
        """Rows for the last `height` screen lines, and the index of the first line shown."""
        if not self.wrap:
            top = max(0, len(lines) - height)
            return [decoder.decode_line(_visible(line)) for line in lines[top:]], top

        # Wrapped lines take a variable number of rows; measure back from the
        # end, then decode forward so styles carry from line to line
        measured = 0
        top = len(lines)
        while top > 0 and measured < height:
            top -= 1
            measured += len(self._rows(console, AnsiDecoder(), lines[top], width))
        rows = self._head_rows(console, decoder, lines[top:], width, None)
        return rows[-height:], top

    def _head_rows(
        self,
        console: Console,
        decoder: AnsiDecoder,
        lines: list[str],
        width: int,
        height: int | None,
    ) -> list[Text]:
        rows: list[Text] = []
        for line in lines:
            if height is not None and len(rows) >= height:
                break
            rows.extend(self._rows(console, decoder, line, width))
        return rows if height is None else rows[:height]
