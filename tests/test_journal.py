import struct

import pytest

from teachos.bufcache import BufferCache
from teachos.disk import MemoryDisk
from teachos.journal import Log
from teachos.layout import BSIZE, KernelPanic, Superblock
from teachos.mkfs import ImageBuilder

DATA_BLOCK = 150


def _image():
    return bytearray(ImageBuilder(fs_size=200, nlog=30, ninodes=200).build([]))


def _setup(image=None, nbuf=30):
    image = _image() if image is None else image
    sb = Superblock.from_bytes(bytes(image[BSIZE:2 * BSIZE]))
    disk = MemoryDisk(bytes(image), dev=1)
    cache = BufferCache(disk, nbuf=nbuf)
    return disk, cache, Log(cache, 1, sb), sb


def _block(disk, blockno):
    return disk.image[blockno * BSIZE:(blockno + 1) * BSIZE]


def test_transaction_commits_to_home_location():
    disk, cache, log, sb = _setup()
    with log.transaction():
        buf = cache.read(1, DATA_BLOCK)
        buf.data[:4] = b"abcd"
        log.write(buf)
        cache.release(buf)
        assert _block(disk, DATA_BLOCK)[:4] == b"\0\0\0\0"
    assert _block(disk, DATA_BLOCK)[:4] == b"abcd"
    assert _block(disk, sb.logstart + 1)[:4] == b"abcd"
    assert _block(disk, sb.logstart)[:4] == b"\0\0\0\0"
    assert log.blocks == []
    assert log.outstanding == 0


def test_repeated_write_is_absorbed():
    _, cache, log, _ = _setup()
    with log.transaction():
        buf = cache.read(1, DATA_BLOCK)
        log.write(buf)
        log.write(buf)
        cache.release(buf)
        assert log.blocks == [DATA_BLOCK]


def test_recovery_installs_committed_blocks():
    image = _image()
    sb = Superblock.from_bytes(bytes(image[BSIZE:2 * BSIZE]))
    header = sb.logstart * BSIZE
    image[header:header + 8] = struct.pack("<ii", 1, DATA_BLOCK)
    first_log = (sb.logstart + 1) * BSIZE
    image[first_log:first_log + 4] = b"LOGD"
    disk, _, log, _ = _setup(image)
    assert _block(disk, DATA_BLOCK)[:4] == b"LOGD"
    assert _block(disk, sb.logstart)[:4] == b"\0\0\0\0"
    assert log.blocks == []


def test_write_outside_transaction_panics():
    _, cache, log, _ = _setup()
    buf = cache.read(1, DATA_BLOCK)
    with pytest.raises(KernelPanic, match="outside of trans"):
        log.write(buf)


def test_begin_op_refuses_when_log_space_runs_out():
    _, _, log, _ = _setup()
    for _ in range(3):
        log.begin_op()
    assert log.outstanding == 3
    with pytest.raises(KernelPanic):
        log.begin_op()


def test_too_big_transaction_panics():
    _, cache, log, _ = _setup(nbuf=40)
    with pytest.raises(KernelPanic, match="too big a transaction"):
        with log.transaction():
            for blockno in range(100, 130):
                buf = cache.read(1, blockno)
                log.write(buf)
                cache.release(buf)
    assert log.blocks == []


def test_oversized_header_panics():
    disk = MemoryDisk(bytes(_image()), dev=1)
    cache = BufferCache(disk)
    sb = Superblock.from_bytes(disk.image[BSIZE:2 * BSIZE])
    with pytest.raises(KernelPanic, match="too big logheader"):
        Log(cache, 1, sb, logsize=200)