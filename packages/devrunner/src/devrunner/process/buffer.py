"""
LogBuffer for capturing child process output.

Append-only byte log with absolute offsets. Producers are a runner's two
stream readers; consumers are panes that remember their last-read offset
and ask for [last_read, size).

- Guarded by a threading.Lock, held only to append or to copy a slice
- size() never decreases, including in bounded mode
- Bounded mode evicts the oldest bytes; offsets stay absolute and a read
  that reaches into the evicted region gets a truncation marker instead
"""

import threading

TRUNCATED_MARKER = b"[truncated]\n"


class LogBuffer:
    """
    Single-producer, many-consumer byte log.

    Example:
        buffer = LogBuffer()
        buffer.append(b"hello\\n")
        data = buffer.slice(0, buffer.size())  # b"hello\\n"
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        """
        Initialize an empty buffer.

        Args:
            max_bytes: Retain at most this many bytes, or None for unbounded
        """
        if max_bytes is not None and max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self._data = bytearray()
        self._base = 0  # absolute offset of self._data[0]
        self._max_bytes = max_bytes
        self._lock = threading.Lock()

    def append(self, data: bytes) -> None:
        """Append bytes; never reorders or removes previously visible offsets."""
        if not data:
            return
        with self._lock:
            self._data += data
            if self._max_bytes is not None and len(self._data) > self._max_bytes:
                excess = len(self._data) - self._max_bytes
                del self._data[:excess]
                self._base += excess

    def size(self) -> int:
        """Total number of bytes ever appended."""
        with self._lock:
            return self._base + len(self._data)

    def slice(self, start: int, end: int) -> bytes:
        """
        Return a stable copy of the bytes in [start, end).

        Args:
            start: Absolute start offset
            end: Absolute end offset, at most size()

        Returns:
            The requested bytes. If start falls in the evicted region the
            result begins with TRUNCATED_MARKER followed by the retained part.

        Raises:
            ValueError: If the range is not 0 <= start <= end <= size()
        """
        with self._lock:
            size = self._base + len(self._data)
            if start < 0 or start > end or end > size:
                raise ValueError(f"invalid slice [{start}, {end}) of buffer with size {size}")
            if start >= self._base:
                return bytes(self._data[start - self._base : end - self._base])
            if end <= self._base:
                return TRUNCATED_MARKER
            return TRUNCATED_MARKER + bytes(self._data[: end - self._base])

    def text(self) -> str:
        """Decode the retained contents, replacing invalid UTF-8."""
        with self._lock:
            return self._data.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        return self.size()
