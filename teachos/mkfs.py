"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable
from pathlib import Path

from teachos.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
    inode_block,
)

DEFAULT_FS_SIZE = 1000
DEFAULT_NLOG = 30
DEFAULT_NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh disk image: boot, superblock, log, inodes, bitmap, data."""

    def __init__(
        self,
        fs_size: int = DEFAULT_FS_SIZE,
        nlog: int = DEFAULT_NLOG,
        ninodes: int = DEFAULT_NINODES,
    ) -> None:
        self.fs_size = fs_size
        self.nlog = nlog
        self.nbitmap = fs_size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        if self.nmeta >= fs_size:
            raise ValueError("file system too small for its metadata")
        self.nblocks = fs_size - self.nmeta
        self.sb = Superblock(
            size=fs_size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.image = bytearray(fs_size * BSIZE)
        self._write_block(1, self.sb.to_bytes().ljust(BSIZE, b"\0"))
        self.free_inode = 1
        self.free_block = self.nmeta

    def _check_block(self, bn: int) -> None:
        if not 0 <= bn < self.fs_size:
            raise ValueError(f"block {bn} out of range")

    def _read_block(self, bn: int) -> bytes:
        self._check_block(bn)
        return bytes(self.image[bn * BSIZE:(bn + 1) * BSIZE])

    def _write_block(self, bn: int, data: bytes) -> None:
        self._check_block(bn)
        if len(data) != BSIZE:
            raise ValueError("a block write needs exactly one block of data")
        self.image[bn * BSIZE:(bn + 1) * BSIZE] = data

    def _alloc_block(self) -> int:
        bn = self.free_block
        if bn >= self.fs_size:
            raise ValueError("out of data blocks")
        self.free_block += 1
        return bn

    def _inode_offset(self, inum: int) -> int:
        return inode_block(inum, self.sb) * BSIZE + (inum % IPB) * DINODE_SIZE

    def read_inode(self, inum: int) -> DiskInode:
        start = self._inode_offset(inum)
        return DiskInode.from_bytes(bytes(self.image[start:start + DINODE_SIZE]))

    def write_inode(self, inum: int, dinode: DiskInode) -> None:
        start = self._inode_offset(inum)
        self.image[start:start + DINODE_SIZE] = dinode.to_bytes()

    def alloc_inode(self, file_type: FileType) -> int:
        """Allocate the next inode with one link and no content."""
        inum = self.free_inode
        if inum >= self.sb.ninodes:
            raise ValueError("out of inodes")
        self.free_inode += 1
        self.write_inode(inum, DiskInode(type=int(file_type), nlink=1, size=0))
        return inum

    def append(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the content of inode ``inum``."""
        din = self.read_inode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._read_block(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self._write_block(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                target = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._read_block(target))
            start = off - fbn * BSIZE
            block[start:start + n1] = data[pos:pos + n1]
            self._write_block(target, bytes(block))
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def _write_bitmap(self, used: int) -> None:
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        full, rest = divmod(used, 8)
        bitmap = bytearray(BSIZE)
        bitmap[:full] = b"\xff" * full
        if rest:
            bitmap[full] = (1 << rest) - 1
        self._write_block(self.sb.bmapstart, bytes(bitmap))

    def build(self, files: Iterable[tuple[str, bytes]]) -> bytes:
        """Create the root directory, add ``(name, content)`` files, return the image."""
        root = self.alloc_inode(FileType.DIR)
        if root != ROOTINO:
            raise ValueError("root directory must be the first inode")
        self.append(root, DirEntry(root, ".").to_bytes())
        self.append(root, DirEntry(root, "..").to_bytes())

        for name, content in files:
            if "/" in name:
                raise ValueError(f"file name may not contain '/': {name}")
            if name.startswith("_"):
                name = name[1:]
            inum = self.alloc_inode(FileType.FILE)
            self.append(root, DirEntry(inum, name).to_bytes())
            self.append(inum, content)

        din = self.read_inode(root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self.write_inode(root, din)

        self._write_bitmap(self.free_block)
        return bytes(self.image)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args

    files = []
    for name in names:
        try:
            files.append((name, Path(name).read_bytes()))
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fs_size}"
    )
    try:
        image = builder.build(files)
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(f"balloc: first {builder.free_block} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")

    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())