"""LogExporter: mirror a runner's captured output into a plain-text file.

Export is best effort. A file that cannot be opened or written is logged
and export stops for that run; the child and its pane are not affected.
"""

from __future__ import annotations

import codecs
import logging
import re
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)

# CSI sequences (colours, cursor movement, erase) and OSC sequences
ANSI_ESCAPE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")

# An escape sequence cut off at the end of a chunk
_PARTIAL_ESCAPE = re.compile(r"\x1b(?:\[[0-?]*[ -/]*|\][^\x07\x1b]*\x1b?)?\Z")

# Longest unfinished sequence held back before it is written out as text
MAX_PENDING = 4096


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_ESCAPE.sub("", text)


class LogExporter:
    """
    Append-only log file for one runner.

    Opened when the child starts, closed when it exits. A restart reopens
    the same file in append mode so the file holds every run of the session.

    Chunks are decoded incrementally, so a UTF-8 character or an escape
    sequence split across two reads is exported intact.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.error: str | None = None
        self._file: TextIO | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> bool:
        """
        Open the file for appending.

        Returns:
            False if the file could not be opened; the reason is kept in error
        """
        if self._file is not None:
            return True
        self._decoder.reset()
        self._pending = ""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("a", encoding="utf-8")
        except OSError as e:
            self.error = e.strerror or str(e)
            logger.warning("cannot export logs to %s: %s", self.path, self.error)
            return False
        self.error = None
        logger.info("exporting logs to %s", self.path)
        return True

    def write(self, data: bytes) -> None:
        if self._file is None:
            return
        text = self._pending + self._decoder.decode(data)
        self._pending = ""
        partial = _PARTIAL_ESCAPE.search(text)
        if partial is not None and len(text) - partial.start() <= MAX_PENDING:
            self._pending = text[partial.start():]
            text = text[: partial.start()]
        self._write(strip_ansi(text))

    def close(self) -> None:
        if self._file is None:
            return
        self._write(strip_ansi(self._pending + self._decoder.decode(b"", final=True)))
        self._pending = ""
        if self._file is not None:
            self._release()

    def _write(self, text: str) -> None:
        if not text or self._file is None:
            return
        try:
            self._file.write(text)
            self._file.flush()
        except OSError as e:
            self.error = e.strerror or str(e)
            logger.warning("log export to %s failed, export stopped: %s", self.path, self.error)
            self._release()

    def _release(self) -> None:
        handle, self._file = self._file, None
        try:
            handle.close()
        except OSError as e:
            logger.warning("error closing exported log %s: %s", self.path, e)
