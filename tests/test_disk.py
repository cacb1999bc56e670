import pytest

from teachos.disk import Buffer, MemoryDisk
from teachos.layout import BSIZE, KernelPanic


def _image(nblocks=3):
    return b"".join(bytes([i]) * BSIZE for i in range(nblocks))


def test_read_fills_buffer_from_image():
    disk = MemoryDisk(_image(), dev=1)
    buf = Buffer(dev=1, blockno=2, locked=True)
    disk.rw(buf)
    assert bytes(buf.data) == bytes([2]) * BSIZE
    assert buf.valid
    assert not buf.dirty


def test_write_stores_buffer_and_marks_clean():
    disk = MemoryDisk(_image(), dev=1)
    buf = Buffer(dev=1, blockno=1, locked=True, dirty=True)
    buf.data[:] = b"z" * BSIZE
    disk.rw(buf)
    assert disk.image[BSIZE:2 * BSIZE] == b"z" * BSIZE
    assert disk.image[:BSIZE] == bytes([0]) * BSIZE
    assert buf.valid
    assert not buf.dirty


def test_block_count_ignores_partial_block():
    disk = MemoryDisk(_image(2) + b"xx")
    assert disk.nblocks == 2


def test_unlocked_buffer_panics():
    disk = MemoryDisk(_image())
    with pytest.raises(KernelPanic, match="not locked"):
        disk.rw(Buffer(dev=1, blockno=0))


def test_clean_valid_buffer_panics():
    disk = MemoryDisk(_image())
    with pytest.raises(KernelPanic, match="nothing to do"):
        disk.rw(Buffer(dev=1, blockno=0, locked=True, valid=True))


def test_wrong_device_panics():
    disk = MemoryDisk(_image(), dev=1)
    with pytest.raises(KernelPanic, match="not for disk"):
        disk.rw(Buffer(dev=2, blockno=0, locked=True))


def test_block_out_of_range_panics():
    disk = MemoryDisk(_image(3))
    with pytest.raises(KernelPanic, match="out of range"):
        disk.rw(Buffer(dev=1, blockno=3, locked=True))