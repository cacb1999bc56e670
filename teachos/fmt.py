"""Minimal printf-style formatting used by user programs and the kernel console."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from teachos.layout import KernelPanic

_MASK = 0xFFFFFFFF
_SIGN = 0x80000000


def format_int(value: int, base: int, signed: bool = True, upper: bool = False) -> str:
    """Render ``value`` as a 32-bit integer in ``base``."""
    if not 2 <= base <= 16:
        raise ValueError("base must be between 2 and 16")
    digits = "0123456789ABCDEF" if upper else "0123456789abcdef"
    x = value & _MASK
    negative = signed and bool(x & _SIGN)
    if negative:
        x = (-x) & _MASK
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _next(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise ValueError("not enough arguments for format string") from None


def _char(arg: Any) -> str:
    if isinstance(arg, str):
        if len(arg) != 1:
            raise ValueError("%c needs a single character")
        return arg
    return chr(arg & 0xFF)


def _render(fmt: str, args: tuple, upper: bool, allow_char: bool) -> str:
    pending = iter(args)
    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, "")
        if not c:
            break
        if c == "d":
            out.append(format_int(_next(pending), 10, True, upper))
        elif c in "xp":
            out.append(format_int(_next(pending), 16, False, upper))
        elif c == "s":
            s = _next(pending)
            out.append("(null)" if s is None else str(s))
        elif c == "c" and allow_char:
            out.append(_char(_next(pending)))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


def format_printf(fmt: str, *args: Any) -> str:
    """Format like the user-level printf: %d, %x, %p, %s, %c and %%."""
    return _render(fmt, args, upper=True, allow_char=True)


def format_cprintf(fmt: str, *args: Any) -> str:
    """Format like the kernel cprintf: %d, %x, %p, %s and %%."""
    if fmt is None:
        raise KernelPanic("null fmt")
    return _render(fmt, args, upper=False, allow_char=False)