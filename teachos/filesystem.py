"""Inodes, directories and path names on top of the buffer cache and the log."""

from __future__ import annotations

import errno
import struct
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from teachos.bufcache import BufferCache
from teachos.disk import Buffer
from teachos.journal import Log
from teachos.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    KernelPanic,
    Superblock,
    bitmap_block,
    inode_block,
)

NINODE = 50

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


@dataclass
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode plus its cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    locked: bool = False
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))


def _name_key(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")[:DIRSIZ]


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and
    ``name`` is cut to DIRSIZ characters, or None if no element is left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Block allocation, the inode cache, file content, directories and paths.

    Every operation that modifies the disk must run inside a transaction of
    the log, as must every :meth:`iput`.
    """

    def __init__(
        self,
        cache: BufferCache,
        log: Log,
        dev: int = 1,
        devices: Mapping[int, Any] | None = None,
    ) -> None:
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devices: Mapping[int, Any] = {} if devices is None else devices
        self._inodes = [Inode() for _ in range(NINODE)]
        with self._block(1) as buf:
            self.sb = Superblock.from_bytes(bytes(buf.data))

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buffer]:
        buf = self.cache.read(self.dev, blockno)
        try:
            yield buf
        finally:
            self.cache.release(buf)

    def _dinode_location(self, inum: int) -> tuple[int, int]:
        return inode_block(inum, self.sb), (inum % IPB) * DINODE_SIZE

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self._block(bno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)

    def balloc(self) -> int:
        """Allocate a zeroed disk block and return its number."""
        for base in range(0, self.sb.size, BPB):
            with self._block(bitmap_block(base, self.sb)) as buf:
                limit = min(BPB, self.sb.size - base)
                bi = next(
                    (i for i in range(limit) if not buf.data[i // 8] & (1 << (i % 8))),
                    None,
                )
                if bi is None:
                    continue
                buf.data[bi // 8] |= 1 << (bi % 8)
                self.log.write(buf)
            self._bzero(base + bi)
            return base + bi
        raise KernelPanic("balloc: out of blocks")

    def bfree(self, b: int) -> None:
        """Mark disk block ``b`` free."""
        with self._block(bitmap_block(b, self.sb)) as buf:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.write(buf)

    # Inodes.

    def ialloc(self, file_type: FileType | int) -> Inode:
        """Allocate an inode of ``file_type``; returned referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            blockno, offset = self._dinode_location(inum)
            with self._block(blockno) as buf:
                din = DiskInode.from_bytes(bytes(buf.data[offset:offset + DINODE_SIZE]))
                if din.type != 0:
                    continue
                fresh = DiskInode(type=int(file_type))
                buf.data[offset:offset + DINODE_SIZE] = fresh.to_bytes()
                self.log.write(buf)
            return self.iget(inum)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy the in-memory inode to disk."""
        blockno, offset = self._dinode_location(ip.inum)
        din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self._block(blockno) as buf:
            buf.data[offset:offset + DINODE_SIZE] = din.to_bytes()
            self.log.write(buf)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum`` with one more reference; no disk read."""
        empty = None
        for ip in self._inodes:
            if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                ip.ref += 1
                return ip
            if empty is None and ip.ref == 0:
                empty = ip
        if empty is None:
            raise KernelPanic("iget: no inodes")
        empty.dev = self.dev
        empty.inum = inum
        empty.ref = 1
        empty.valid = False
        return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        if ip.locked:
            raise KernelPanic("ilock: already locked")
        ip.locked = True
        if not ip.valid:
            blockno, offset = self._dinode_location(ip.inum)
            with self._block(blockno) as buf:
                din = DiskInode.from_bytes(bytes(buf.data[offset:offset + DINODE_SIZE]))
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.locked or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.locked = False

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if nothing refers to it."""
        if ip.locked:
            raise KernelPanic("iput: inode locked")
        ip.locked = True
        try:
            if ip.valid and ip.nlink == 0 and ip.ref == 1:
                self.itrunc(ip)
                ip.type = 0
                self.iupdate(ip)
                ip.valid = False
        finally:
            ip.locked = False
        ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def bmap(self, ip: Inode, bn: int) -> int:
        """Disk block holding block ``bn`` of ``ip``, allocating it if missing."""
        if bn < 0:
            raise KernelPanic("bmap: out of range")
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self.balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self.balloc()
            with self._block(ip.addrs[NDIRECT]) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self.balloc()
                    _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                    self.log.write(buf)
            return addr
        raise KernelPanic("bmap: out of range")

    def itrunc(self, ip: Inode) -> None:
        """Discard the content of ``ip``."""
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self.bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self._block(ip.addrs[NDIRECT]) as buf:
                indirect = _INDIRECT.unpack_from(buf.data)
            for addr in indirect:
                if addr:
                    self.bfree(addr)
            self.bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stat(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str) -> Any:
        device = self.devices.get(ip.major)
        handler = getattr(device, op, None)
        if handler is None:
            raise OSError(errno.ENODEV, f"no {op} for device {ip.major}")
        return handler

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            return self._device(ip, "read")(n)
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError(f"cannot read {n} bytes at offset {off}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            with self._block(self.bmap(ip, off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += buf.data[start:start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count."""
        if ip.type == FileType.DEV:
            return self._device(ip, "write")(data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"cannot write at offset {off}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        pos = 0
        while pos < n:
            with self._block(self.bmap(ip, off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(n - pos, BSIZE - start)
                buf.data[start:start + m] = data[pos:pos + m]
                self.log.write(buf)
            pos += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in directory ``dp``; return its inode and entry offset."""
        if dp.type != FileType.DIR:
            raise KernelPanic("dirlookup not DIR")
        key = _name_key(name)
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlookup read")
            de = DirEntry.from_bytes(raw)
            if de.inum != 0 and _name_key(de.name) == key:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add an entry ``name`` -> ``inum`` to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        slot = dp.size
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlink read")
            if DirEntry.from_bytes(raw).inum == 0:
                slot = off
                break
        if self.writei(dp, DirEntry(inum, name).to_bytes(), slot) != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str]:
        if path.startswith("/"):
            ip = self.iget(ROOTINO)
        elif cwd is None:
            raise ValueError("a relative path needs a current directory")
        else:
            ip = self.idup(cwd)
        name = ""
        while (elem := skipelem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                raise NotADirectoryError(name)
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                raise FileNotFoundError(name)
            ip = found[0]
        if parent:
            self.iput(ip)
            raise FileNotFoundError("path has no final element")
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Look up ``path``; return its inode referenced but unlocked."""
        return self._namex(path, False, cwd)[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Return the parent directory of ``path`` and the final element."""
        return self._namex(path, True, cwd)