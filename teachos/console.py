"""Console: line-edited keyboard input and character output."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterable
from typing import Any, TextIO

from teachos.fmt import format_cprintf

BACKSPACE = 0x100
INPUT_BUF = 128


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_CTRL_D = _ctrl("D")
_CTRL_H = _ctrl("H")
_CTRL_P = _ctrl("P")
_CTRL_U = _ctrl("U")
_DEL = 0x7F
_NEWLINE = ord("\n")
_RETURN = ord("\r")


class Console:
    """Echoes typed characters, edits the current line and hands out whole lines."""

    def __init__(
        self,
        output: TextIO | None = None,
        on_procdump: Callable[[], None] | None = None,
    ) -> None:
        self.output = io.StringIO() if output is None else output
        self.on_procdump = on_procdump
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def putc(self, c: int | str) -> None:
        """Write one character; BACKSPACE erases the previous one."""
        code = ord(c) if isinstance(c, str) else c
        if code == BACKSPACE:
            self.output.write("\b \b")
        else:
            self.output.write(chr(code))

    def printf(self, fmt: str, *args: Any) -> None:
        """Print using the kernel format directives %d, %x, %p, %s."""
        for ch in format_cprintf(fmt, *args):
            self.putc(ch)

    def interrupt(self, chars: Iterable[int] | str) -> None:
        """Handle typed input, one character code at a time."""
        codes = map(ord, chars) if isinstance(chars, str) else chars
        procdump = False
        for c in codes:
            if c == _CTRL_P:
                procdump = True
            elif c == _CTRL_U:
                while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != _NEWLINE:
                    self._e -= 1
                    self.putc(BACKSPACE)
            elif c in (_CTRL_H, _DEL):
                if self._e != self._w:
                    self._e -= 1
                    self.putc(BACKSPACE)
            elif c != 0 and self._e - self._r < INPUT_BUF:
                if c == _RETURN:
                    c = _NEWLINE
                self._buf[self._e % INPUT_BUF] = c
                self._e += 1
                self.putc(c)
                if c in (_NEWLINE, _CTRL_D) or self._e == self._r + INPUT_BUF:
                    self._w = self._e
        if procdump and self.on_procdump is not None:
            self.on_procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline.

        A ^D ends the read; if data came before it, the ^D is kept so that the
        next read returns nothing. Raises BlockingIOError when no finished
        line is waiting.
        """
        target = n
        out = bytearray()
        while n > 0:
            if self._r == self._w:
                if out:
                    break
                raise BlockingIOError("no console input available")
            c = self._buf[self._r % INPUT_BUF]
            self._r += 1
            if c == _CTRL_D:
                if n < target:
                    self._r -= 1
                break
            out.append(c)
            n -= 1
            if c == _NEWLINE:
                break
        return bytes(out)

    def write(self, data: bytes | str) -> int:
        """Write every byte of ``data``; return how many were written."""
        codes = data.encode("latin-1", "replace") if isinstance(data, str) else data
        for c in codes:
            self.putc(c & 0xFF)
        return len(codes)