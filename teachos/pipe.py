"""A bounded byte pipe connecting a writer and a reader."""

from __future__ import annotations

import threading

PIPESIZE = 512


class Pipe:
    """A fixed-capacity pipe; writers block while it is full, readers while empty."""

    def __init__(self, size: int = PIPESIZE) -> None:
        if size < 1:
            raise ValueError("pipe size must be positive")
        self.size = size
        self.readopen = True
        self.writeopen = True
        self._data = bytearray()
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        """True once both ends have been closed."""
        return not self.readopen and not self.writeopen

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room; return the byte count.

        Raises BrokenPipeError if the pipe is full and the read end is closed.
        """
        payload = bytes(data)
        written = 0
        with self._cond:
            while written < len(payload):
                while len(self._data) == self.size:
                    if not self.readopen:
                        raise BrokenPipeError("pipe read end closed")
                    self._cond.notify_all()
                    self._cond.wait()
                take = min(self.size - len(self._data), len(payload) - written)
                self._data += payload[written:written + take]
                written += take
            self._cond.notify_all()
        return written

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while the pipe is empty and writable.

        Returns an empty result once the pipe is empty and the write end closed.
        """
        if n < 0:
            raise ValueError("read size must not be negative")
        with self._cond:
            while not self._data and self.writeopen:
                self._cond.wait()
            chunk = bytes(self._data[:n])
            del self._data[:n]
            self._cond.notify_all()
        return chunk

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()