"""Block buffers and a disk that keeps its blocks in memory."""

from __future__ import annotations

from dataclasses import dataclass, field

from teachos.layout import BSIZE, KernelPanic


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    valid: bool = False
    dirty: bool = False
    locked: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))


class MemoryDisk:
    """A disk whose blocks live in a byte array."""

    def __init__(self, image: bytes, dev: int = 1) -> None:
        self._image = bytearray(image)
        self.dev = dev
        self.nblocks = len(self._image) // BSIZE

    @property
    def image(self) -> bytes:
        """The current contents of the disk."""
        return bytes(self._image)

    def rw(self, buf: Buffer) -> None:
        """Sync ``buf`` with the disk.

        A dirty buffer is written out and marked clean; a buffer that is not
        yet valid is filled from the disk. Either way it ends up valid.
        """
        if not buf.locked:
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise KernelPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.dirty:
            buf.dirty = False
            self._image[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self._image[start:start + BSIZE]
        buf.valid = True