"""Buffer cache: an MRU-ordered set of cached disk blocks."""

from __future__ import annotations

from teachos.disk import Buffer, MemoryDisk
from teachos.layout import KernelPanic

NBUF = 30


class BufferCache:
    """Caches disk blocks and hands out locked buffers for them.

    Read a block with :meth:`read`, write it back with :meth:`write` and hand
    it back with :meth:`release`. Only one holder may lock a buffer at a time.
    """

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        # Most recently used first.
        self._buffers = [Buffer() for _ in range(nbuf)]

    @staticmethod
    def _lock(buf: Buffer) -> None:
        if buf.locked:
            raise KernelPanic(f"buffer for block {buf.blockno} already locked")
        buf.locked = True

    def _get(self, dev: int, blockno: int) -> Buffer:
        for buf in self._buffers:
            if buf.dev == dev and buf.blockno == blockno:
                self._lock(buf)
                buf.refcnt += 1
                return buf

        # A dirty buffer with no references is still pinned by the log.
        for buf in reversed(self._buffers):
            if buf.refcnt == 0 and not buf.dirty:
                buf.dev = dev
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 1
                self._lock(buf)
                return buf
        raise KernelPanic("bget: no buffers")

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the contents of the block."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self.disk.rw(buf)
        return buf

    def write(self, buf: Buffer) -> None:
        """Write the contents of a locked buffer to disk."""
        if not buf.locked:
            raise KernelPanic("bwrite")
        buf.dirty = True
        self.disk.rw(buf)

    def release(self, buf: Buffer) -> None:
        """Unlock a buffer; once unreferenced it becomes most recently used."""
        if not buf.locked:
            raise KernelPanic("brelse")
        buf.locked = False
        buf.refcnt -= 1
        if buf.refcnt == 0:
            self._buffers.remove(buf)
            self._buffers.insert(0, buf)