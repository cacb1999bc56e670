"""PC keyboard scancode decoding."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntFlag


class Modifier(IntFlag):
    """Modifier and lock keys tracked by the decoder."""

    NONE = 0
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


def _table(base: Iterable[int], extras: dict[int, int]) -> tuple[int, ...]:
    table = [0] * 256
    for code, value in enumerate(base):
        table[code] = value
    for code, value in extras.items():
        table[code] = value
    return tuple(table)


_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_NORMAL_BASE = (
    "\0\x1b1234567890-=\b\t"
    "qwertyuiop[]\n\0as"
    "dfghjkl;'`\0\\zxcv"
    "bnm,./\0*\0 " + "\0" * 13 + "789-456+1230." + "\0" * 4
)

_SHIFT_BASE = (
    "\0\x1b!@#$%^&*()_+\b\t"
    "QWERTYUIOP{}\n\0AS"
    'DFGHJKL:"~\0|ZXCV'
    "BNM<>?\0*\0 " + "\0" * 13 + "789-456+1230." + "\0" * 4
)

_CTL_BASE = (
    [0] * 16
    + [_ctl(c) for c in "QWERTYUI"]
    + [_ctl("O"), _ctl("P"), 0, 0, ord("\r"), 0, _ctl("A"), _ctl("S")]
    + [_ctl(c) for c in "DFGHJKL"]
    + [0]
    + [0, 0, 0, _ctl("\\"), _ctl("Z"), _ctl("X"), _ctl("C"), _ctl("V")]
    + [_ctl("B"), _ctl("N"), _ctl("M"), 0, 0, _ctl("/"), 0, 0]
)

NORMAL_MAP = _table(map(ord, _NORMAL_BASE), {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
SHIFT_MAP = _table(map(ord, _SHIFT_BASE), {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
CTL_MAP = _table(_CTL_BASE, {0x9C: ord("\r"), 0xB5: _ctl("/"), **_SPECIAL})

SHIFT_CODE = _table(
    [],
    {
        0x1D: Modifier.CTL,
        0x2A: Modifier.SHIFT,
        0x36: Modifier.SHIFT,
        0x38: Modifier.ALT,
        0x9D: Modifier.CTL,
        0xB8: Modifier.ALT,
    },
)

TOGGLE_CODE = _table(
    [],
    {0x3A: Modifier.CAPSLOCK, 0x45: Modifier.NUMLOCK, 0x46: Modifier.SCROLLLOCK},
)

_CHARCODE = (NORMAL_MAP, SHIFT_MAP, CTL_MAP, CTL_MAP)


class KeyboardDecoder:
    """Turns a stream of scancodes into character codes."""

    def __init__(self) -> None:
        self._shift = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self._shift)

    def feed(self, scancode: int) -> int:
        """Consume one scancode; return the character code or 0 if none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scancode out of range: {scancode}")
        data = scancode
        if data == 0xE0:
            self._shift |= Modifier.E0ESC
            return 0
        if data & 0x80:
            if not self._shift & Modifier.E0ESC:
                data &= 0x7F
            self._shift &= ~(SHIFT_CODE[data] | Modifier.E0ESC)
            return 0
        if self._shift & Modifier.E0ESC:
            data |= 0x80
            self._shift &= ~Modifier.E0ESC

        self._shift |= SHIFT_CODE[data]
        self._shift ^= TOGGLE_CODE[data]
        c = _CHARCODE[self._shift & (Modifier.CTL | Modifier.SHIFT)][data]
        if self._shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def decode(self, scancodes: Iterable[int]) -> str:
        """Decode a sequence of scancodes into the characters they produce."""
        return "".join(chr(c) for c in map(self.feed, scancodes) if c)