"""Open files: a table of reference-counted handles on pipes and inodes."""

from __future__ import annotations

import errno
import io
from dataclasses import dataclass
from enum import Enum, auto

from teachos.filesystem import FileSystem, Inode, Stat
from teachos.journal import MAXOPBLOCKS
from teachos.layout import BSIZE, KernelPanic
from teachos.pipe import Pipe

NFILE = 100


class FileKind(Enum):
    """What an open file refers to."""

    NONE = auto()
    PIPE = auto()
    INODE = auto()


@dataclass(eq=False)
class OpenFile:
    """One entry of the open file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed-size table of open files shared by all processes."""

    def __init__(
        self,
        fs: FileSystem | None = None,
        nfile: int = NFILE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        chunk = ((maxopblocks - 1 - 1 - 2) // 2) * BSIZE
        if chunk <= 0:
            raise ValueError("maxopblocks too small to write anything")
        self.fs = fs
        self._files = [OpenFile() for _ in range(nfile)]
        # Bound on bytes per transaction: inode, indirect block, bitmap
        # blocks and two blocks of slop for unaligned writes.
        self._chunk = chunk

    def _filesystem(self) -> FileSystem:
        if self.fs is None:
            raise KernelPanic("file table has no file system")
        return self.fs

    def alloc(self) -> OpenFile:
        """Take an unused entry, with one reference."""
        for f in self._files:
            if f.ref == 0:
                f.ref = 1
                return f
        raise OSError(errno.ENFILE, "file table overflow")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f`` and return it."""
        if f.ref < 1:
            raise KernelPanic("filedup")
        f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; release what ``f`` refers to on the last one."""
        if f.ref < 1:
            raise KernelPanic("fileclose")
        f.ref -= 1
        if f.ref > 0:
            return
        kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
        f.kind = FileKind.NONE
        f.pipe = None
        f.ip = None
        f.off = 0
        f.readable = False
        f.writable = False
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._filesystem()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise io.UnsupportedOperation("stat needs a file backed by an inode")
        fs = self._filesystem()
        fs.ilock(f.ip)
        try:
            return fs.stat(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its offset."""
        if not f.readable:
            raise io.UnsupportedOperation("file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._filesystem()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: OpenFile, data: bytes) -> int:
        """Write ``data`` to ``f`` at its offset; return the byte count."""
        if not f.writable:
            raise io.UnsupportedOperation("file not open for writing")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._filesystem()
            payload = bytes(data)
            written = 0
            while written < len(payload):
                chunk = payload[written:written + self._chunk]
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise KernelPanic("short filewrite")
                written += r
            return written
        raise KernelPanic("filewrite")

    def open_pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe; return its read end and its write end."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        pipe = Pipe()
        rf.kind, rf.readable, rf.writable, rf.pipe = FileKind.PIPE, True, False, pipe
        wf.kind, wf.readable, wf.writable, wf.pipe = FileKind.PIPE, False, True, pipe
        return rf, wf