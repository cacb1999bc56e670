"""Write-ahead redo log that makes multi-block updates atomic."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from contextlib import contextmanager

from teachos.bufcache import BufferCache
from teachos.disk import Buffer
from teachos.layout import BSIZE, KernelPanic, Superblock

MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3

_INT = struct.Struct("<i")


class Log:
    """Groups block writes into transactions committed through an on-disk log.

    The log area starts with a header block (a count and the home block
    numbers) followed by one log block per logged block.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        superblock: Superblock,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if _INT.size * (1 + logsize) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = superblock.logstart
        self.size = superblock.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self.recover()

    def _read_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        try:
            (n,) = _INT.unpack_from(buf.data)
            if not 0 <= n <= self.logsize:
                raise KernelPanic("corrupt log header")
            self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))
        finally:
            self.cache.release(buf)

    def _write_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        n = len(self.blocks)
        buf.data[:_INT.size * (1 + n)] = struct.pack(f"<i{n}i", n, *self.blocks)
        self.cache.write(buf)
        self.cache.release(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, home in enumerate(self.blocks):
            log_buf = self.cache.read(self.dev, self.start + tail + 1)
            home_buf = self.cache.read(self.dev, home)
            src, dst = (home_buf, log_buf) if to_log else (log_buf, home_buf)
            dst.data[:] = src.data
            self.cache.write(dst)
            self.cache.release(home_buf if to_log else log_buf)
            self.cache.release(dst)

    def _install(self) -> None:
        self._copy_blocks(to_log=False)

    def _commit(self) -> None:
        if self.blocks:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._install()
            self.blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk and clear the log."""
        self._read_head()
        self._install()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation."""
        if self.committing:
            raise KernelPanic("begin_op: log is committing")
        if len(self.blocks) + (self.outstanding + 1) * self.maxopblocks > self.logsize:
            raise KernelPanic("begin_op: log space exhausted")
        self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; commit once none is outstanding."""
        self.outstanding -= 1
        if self.committing:
            raise KernelPanic("log.committing")
        if self.outstanding == 0:
            self.committing = True
            try:
                self._commit()
            finally:
                self.committing = False

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= self.logsize or len(self.blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        if buf.blockno not in self.blocks:
            self.blocks.append(buf.blockno)
        buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the enclosed block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()