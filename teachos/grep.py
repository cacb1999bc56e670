"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from typing import TextIO

_BUFSIZE = 1024


def match(pattern: str, text: str) -> bool:
    """Search for ``pattern`` anywhere in ``text``."""
    if pattern.startswith("^"):
        return match_here(pattern[1:], text)
    return any(match_here(pattern, text[i:]) for i in range(len(text) + 1))


def match_here(pattern: str, text: str) -> bool:
    """Search for ``pattern`` at the beginning of ``text``."""
    if not pattern:
        return True
    if len(pattern) > 1 and pattern[1] == "*":
        return match_star(pattern[0], pattern[2:], text)
    if pattern == "$":
        return text == ""
    if text and (pattern[0] == "." or pattern[0] == text[0]):
        return match_here(pattern[1:], text[1:])
    return False


def match_star(c: str, pattern: str, text: str) -> bool:
    """Search for ``c*pattern`` at the beginning of ``text``."""
    while True:
        if match_here(pattern, text):
            return True
        if not text or not (text[0] == c or c == "."):
            return False
        text = text[1:]


def grep_lines(pattern: str, stream: TextIO) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``.

    Reading goes through a fixed buffer; a chunk that holds no newline at all
    is discarded, and a final line without a newline is never reported.
    """
    pending = ""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split("\n")
        for line in lines:
            if match(pattern, line):
                yield line + "\n"
        pending = rest if lines else ""


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *paths = args
    if not paths:
        sys.stdout.writelines(grep_lines(pattern, sys.stdin))
        return 0
    for path in paths:
        try:
            handle = open(path, encoding="utf-8", errors="surrogateescape", newline="")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with handle:
            sys.stdout.writelines(grep_lines(pattern, handle))
    return 0


if __name__ == "__main__":
    sys.exit(main())