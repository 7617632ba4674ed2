"""
KeyboardTask for async keyboard (and mouse wheel) input.

- Puts the terminal in cbreak mode with ISIG cleared, so Ctrl+C arrives
  as a key instead of raising SIGINT in the middle of a frame
- Reads with select() and a short timeout inside the default executor so
  the worker thread always returns quickly on shutdown
- Optionally enables SGR mouse reporting so wheel events can scroll
- parse_keys() turns each raw read into key names the views understand
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import select
import sys
import termios
import tty
from typing import Callable

logger = logging.getLogger(__name__)

MOUSE_ON = "\x1b[?1000h\x1b[?1002h\x1b[?1006h"
MOUSE_OFF = "\x1b[?1000l\x1b[?1002l\x1b[?1006l"

READ_TIMEOUT = 0.3
# How long to wait for the rest of an escape sequence
ESCAPE_TIMEOUT = 0.05

_ARROWS = {"A": "up", "B": "down", "C": "right", "D": "left"}

# ESC [ < button ; x ; y (M press | m release)
_SGR_MOUSE = re.compile(r"\x1b\[<(\d+);(\d+);(\d+)([Mm])")
# Any other CSI sequence, or an SS3 sequence (ESC O x)
_CSI = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1bO.")
# Input ending part way through an escape sequence
_INCOMPLETE = re.compile(rb"\x1b(?:\[[0-?]*[ -/]*|O)?\Z")


def parse_keys(data: str) -> list[str]:
    """
    Split one read from the terminal into key names.

    Args:
        data: Characters read from stdin in a single chunk

    Returns:
        Key names in order: "ctrl+c", "enter", "escape", "up", "down",
        "left", "right", "wheel_up", "wheel_down", or the character itself
    """
    keys: list[str] = []
    i = 0
    while i < len(data):
        char = data[i]
        if char == "\x1b":
            mouse = _SGR_MOUSE.match(data, i)
            if mouse is not None:
                button = int(mouse.group(1))
                if button & 64 and mouse.group(4) == "M":
                    keys.append("wheel_down" if button & 1 else "wheel_up")
                i = mouse.end()
                continue
            sequence = _CSI.match(data, i)
            if sequence is not None:
                final = sequence.group()[-1]
                if final in _ARROWS:
                    keys.append(_ARROWS[final])
                i = sequence.end()
                continue
            keys.append("escape")
        elif char == "\x03":
            keys.append("ctrl+c")
        elif char in ("\r", "\n"):
            keys.append("enter")
        elif char.isprintable():
            keys.append(char)
        i += 1
    return keys


def _read_with_timeout(fd: int, timeout: float) -> str | None:
    """
    Read whatever input is pending, waiting at most `timeout` seconds.

    Caller must have put the terminal in cbreak mode. A read that ends part
    way through an escape sequence waits briefly for the remaining bytes, so
    an arrow key split across reads is not seen as a lone Escape.
    """
    if not select.select([fd], [], [], timeout)[0]:
        return None
    data = os.read(fd, 1024)
    while _INCOMPLETE.search(data) and select.select([fd], [], [], ESCAPE_TIMEOUT)[0]:
        more = os.read(fd, 1024)
        if not more:
            break
        data += more
    return data.decode("utf-8", errors="ignore")


class KeyboardTask:
    """
    Async keyboard reader for the view controller's TaskGroup.

    Example:
        keyboard = KeyboardTask(on_key=controller.handle_key, mouse=True)
        tg.create_task(keyboard.run())
        # Later:
        keyboard.stop()
    """

    def __init__(self, on_key: Callable[[str], None], mouse: bool = False) -> None:
        """
        Initialize keyboard task.

        Args:
            on_key: Callback invoked with each key name
            mouse: Enable SGR mouse reporting for wheel scrolling
        """
        self._on_key = on_key
        self._mouse = mouse
        self._shutdown = asyncio.Event()
        self._old_settings: list | None = None

    async def run(self) -> None:
        """
        Main task loop. Run inside a TaskGroup.

        Terminal settings are changed once on entry and restored on exit,
        including when the task is cancelled.
        """
        if not sys.stdin.isatty():
            logger.warning("stdin is not a terminal, keyboard input disabled")
            await self._shutdown.wait()
            return

        loop = asyncio.get_running_loop()
        fd = sys.stdin.fileno()
        self._old_settings = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)
            attrs = termios.tcgetattr(fd)
            attrs[3] &= ~termios.ISIG
            termios.tcsetattr(fd, termios.TCSANOW, attrs)
            if self._mouse:
                self._write(MOUSE_ON)

            while not self._shutdown.is_set():
                try:
                    data = await loop.run_in_executor(
                        None,
                        lambda: _read_with_timeout(fd, READ_TIMEOUT),
                    )
                except asyncio.CancelledError:
                    break
                if data:
                    for key in parse_keys(data):
                        self._on_key(key)
        finally:
            if self._mouse:
                self._write(MOUSE_OFF)
            termios.tcsetattr(fd, termios.TCSADRAIN, self._old_settings)

    def stop(self) -> None:
        """Signal task to stop."""
        self._shutdown.set()

    @staticmethod
    def _write(sequence: str) -> None:
        sys.stdout.write(sequence)
        sys.stdout.flush()
