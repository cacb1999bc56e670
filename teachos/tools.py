"""User programs: ls, cat and echo, working on a file system."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from teachos.filesystem import FileSystem, Inode, Stat
from teachos.layout import DIRENT_SIZE, DIRSIZ, ROOTINO, DirEntry, FileType

_LS_BUF = 512
_CAT_BUF = 512


def fmtname(path: str) -> str:
    """The last element of ``path``, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


@contextmanager
def _opened(fs: FileSystem, path: str) -> Iterator[Inode]:
    with fs.log.transaction():
        root = fs.iget(ROOTINO)
        try:
            ip = fs.namei(path, root)
        finally:
            fs.iput(root)
    try:
        yield ip
    finally:
        with fs.log.transaction():
            fs.iput(ip)


def _stat_path(fs: FileSystem, path: str) -> Stat:
    with _opened(fs, path) as ip:
        fs.ilock(ip)
        try:
            return fs.stat(ip)
        finally:
            fs.iunlock(ip)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str) -> list[str]:
    """List ``path``: one line of name, type, inode number and size per entry.

    Raises OSError if ``path`` cannot be opened.
    """
    with _opened(fs, path) as ip:
        fs.ilock(ip)
        try:
            st = fs.stat(ip)
            raw = fs.readi(ip, 0, ip.size) if st.type == FileType.DIR else b""
        finally:
            fs.iunlock(ip)

    if st.type == FileType.FILE:
        return [_line(path, st)]
    if st.type != FileType.DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _LS_BUF:
        return ["ls: path too long"]

    lines = []
    whole = len(raw) // DIRENT_SIZE * DIRENT_SIZE
    for off in range(0, whole, DIRENT_SIZE):
        de = DirEntry.from_bytes(raw[off:off + DIRENT_SIZE])
        if de.inum == 0:
            continue
        child = f"{path}/{de.name}"
        try:
            child_stat = _stat_path(fs, child)
        except OSError:
            lines.append(f"ls: cannot stat {child}")
            continue
        lines.append(_line(child, child_stat))
    return lines


def cat(fs: FileSystem, path: str) -> bytes:
    """Return the whole content of ``path``; raises OSError if it cannot be opened."""
    out = bytearray()
    with _opened(fs, path) as ip:
        while True:
            fs.ilock(ip)
            try:
                chunk = fs.readi(ip, len(out), _CAT_BUF)
            finally:
                fs.iunlock(ip)
            if not chunk:
                break
            out += chunk
    return bytes(out)


def echo(args: Sequence[str]) -> str:
    """The arguments separated by spaces and ended by a newline."""
    if not args:
        return ""
    return " ".join(args) + "\n"