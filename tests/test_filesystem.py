import pytest

from teachos.bufcache import BufferCache
from teachos.disk import MemoryDisk
from teachos.filesystem import NINODE, FileSystem, Inode, Stat, skipelem
from teachos.journal import Log
from teachos.layout import (
    BSIZE,
    DIRSIZ,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    FileType,
    KernelPanic,
    Superblock,
)
from teachos.mkfs import ImageBuilder

README = b"hello world\n"
CAT = b"cat program"
FILES = [("readme", README), ("_cat", CAT)]


def mount(image, devices=None):
    disk = MemoryDisk(image)
    cache = BufferCache(disk, 50)
    sb = Superblock.from_bytes(image[BSIZE:2 * BSIZE])
    log = Log(cache, disk.dev, sb)
    return disk, FileSystem(cache, log, disk.dev, devices)


@pytest.fixture
def builder():
    b = ImageBuilder()
    b.build(FILES)
    return b


@pytest.fixture
def env(builder):
    return mount(bytes(builder.image))


def read_all(fs, ip):
    fs.ilock(ip)
    try:
        return fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlock(ip)


def create(fs, name, content, file_type=FileType.FILE):
    root = fs.namei("/")
    with fs.log.transaction():
        ip = fs.ialloc(file_type)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.writei(ip, content, 0)
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
        fs.iunlock(ip)
    return ip


@pytest.mark.parametrize(
    "path, expected",
    [("a/bb/c", ("a", "bb/c")), ("///a//bb", ("a", "bb")), ("a", ("a", ""))],
)
def test_skipelem_examples(path, expected):
    assert skipelem(path) == expected


@pytest.mark.parametrize("path", ["", "////"])
def test_skipelem_nothing_left(path):
    assert skipelem(path) is None


def test_skipelem_truncates_long_names():
    long = "x" * (DIRSIZ + 3)
    assert skipelem(long + "/y") == (long[:DIRSIZ], "y")


def test_superblock_is_read(builder, env):
    _, fs = env
    assert fs.sb == builder.sb


def test_root_is_a_directory(env):
    _, fs = env
    root = fs.namei("/")
    fs.ilock(root)
    st = fs.stat(root)
    fs.iunlock(root)
    assert root.inum == ROOTINO
    assert st.type == FileType.DIR
    assert st.ino == ROOTINO


def test_read_file_from_image(env):
    _, fs = env
    assert read_all(fs, fs.namei("/readme")) == README


def test_leading_underscore_is_stripped(env):
    _, fs = env
    assert read_all(fs, fs.namei("/cat")) == CAT


def test_relative_lookup_uses_cwd(env):
    _, fs = env
    root = fs.namei("/")
    ip = fs.namei("readme", root)
    assert ip.inum == fs.namei("/readme").inum


def test_relative_lookup_without_cwd(env):
    _, fs = env
    with pytest.raises(ValueError):
        fs.namei("readme")


def test_missing_path(env):
    _, fs = env
    with pytest.raises(FileNotFoundError):
        fs.namei("/nothing")


def test_path_through_a_file(env):
    _, fs = env
    with pytest.raises(NotADirectoryError):
        fs.namei("/readme/x")


def test_nameiparent(env):
    _, fs = env
    parent, name = fs.nameiparent("/newfile")
    assert parent.inum == ROOTINO
    assert name == "newfile"
    with pytest.raises(FileNotFoundError):
        fs.nameiparent("/")


def test_created_file_survives_remount(env):
    disk, fs = env
    content = bytes(range(256)) * 3
    create(fs, "notes", content)
    assert read_all(fs, fs.namei("/notes")) == content
    _, fs2 = mount(disk.image)
    assert read_all(fs2, fs2.namei("/notes")) == content


def test_long_name_matches_on_prefix(env):
    _, fs = env
    long = "averyveryverylongname"
    ip = create(fs, long, b"z")
    assert fs.namei("/" + long[:DIRSIZ]).inum == ip.inum
    root = fs.namei("/")
    fs.ilock(root)
    found, _ = fs.dirlookup(root, long)
    fs.iunlock(root)
    assert found.inum == ip.inum


def test_dirlink_duplicate(env):
    _, fs = env
    root = fs.namei("/")
    with fs.log.transaction():
        fs.ilock(root)
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "readme", ROOTINO)
        fs.iunlock(root)


def test_dirlookup_on_file_panics(env):
    _, fs = env
    ip = fs.namei("/readme")
    fs.ilock(ip)
    with pytest.raises(KernelPanic):
        fs.dirlookup(ip, "x")


def test_readi_limits(env):
    _, fs = env
    ip = fs.namei("/readme")
    fs.ilock(ip)
    assert fs.readi(ip, 0, 1000) == README
    assert fs.readi(ip, 6, 1000) == README[6:]
    assert fs.readi(ip, ip.size, 10) == b""
    with pytest.raises(ValueError):
        fs.readi(ip, ip.size + 1, 1)


def test_writei_limits(env):
    _, fs = env
    ip = create(fs, "f", b"abc")
    with fs.log.transaction():
        fs.ilock(ip)
        with pytest.raises(ValueError):
            fs.writei(ip, b"x", ip.size + 1)
        with pytest.raises(ValueError):
            fs.writei(ip, bytes(MAXFILE * BSIZE + 1), 0)
        assert fs.writei(ip, b"de", ip.size) == 2
        fs.iunlock(ip)
    assert read_all(fs, ip) == b"abcde"


def test_writei_outside_transaction(env):
    _, fs = env
    ip = fs.namei("/readme")
    fs.ilock(ip)
    with pytest.raises(KernelPanic):
        fs.writei(ip, b"x", 0)


def test_balloc_bfree_reuse(env):
    _, fs = env
    with fs.log.transaction():
        b = fs.balloc()
        fs.bfree(b)
        assert fs.balloc() == b
        fs.bfree(b)
        with pytest.raises(KernelPanic):
            fs.bfree(b)


def test_bmap_indirect(env):
    _, fs = env
    ip = create(fs, "big", b"")
    with fs.log.transaction():
        fs.ilock(ip)
        addr = fs.bmap(ip, NDIRECT)
        assert ip.addrs[NDIRECT] != 0
        assert addr != ip.addrs[NDIRECT]
        assert fs.bmap(ip, NDIRECT) == addr
        with pytest.raises(KernelPanic):
            fs.bmap(ip, MAXFILE)
        fs.iunlock(ip)


def test_iput_frees_unlinked_inode(env):
    _, fs = env
    with fs.log.transaction():
        ip = fs.ialloc(FileType.FILE)
        inum = ip.inum
        fs.ilock(ip)
        fs.writei(ip, b"data", 0)
        first_block = ip.addrs[0]
        fs.iunlock(ip)
        fs.iput(ip)
    with fs.log.transaction():
        again = fs.ialloc(FileType.FILE)
        assert again.inum == inum
        fs.ilock(again)
        assert again.size == 0
        assert again.addrs[0] == 0
        fs.iunlock(again)
        assert fs.balloc() == first_block


def test_iget_shares_and_counts(env):
    _, fs = env
    a = fs.iget(ROOTINO)
    b = fs.iget(ROOTINO)
    assert a is b
    assert a.ref == 2
    assert fs.idup(a) is a
    assert a.ref == 3


def test_iget_cache_exhausted(env):
    _, fs = env
    for inum in range(1, NINODE + 1):
        fs.iget(inum)
    with pytest.raises(KernelPanic):
        fs.iget(NINODE + 1)


def test_lock_misuse_panics(env):
    _, fs = env
    with pytest.raises(KernelPanic):
        fs.ilock(Inode())
    root = fs.namei("/")
    with pytest.raises(KernelPanic):
        fs.iunlock(root)
    fs.ilock(root)
    with pytest.raises(KernelPanic):
        fs.ilock(root)


class FakeDevice:
    def __init__(self):
        self.written = bytearray()

    def read(self, n):
        return b"k" * n

    def write(self, data):
        self.written += data
        return len(data)


def test_device_inode(builder):
    device = FakeDevice()
    _, fs = mount(bytes(builder.image), {1: device})
    with fs.log.transaction():
        ip = fs.ialloc(FileType.DEV)
        fs.ilock(ip)
        ip.major = 1
        fs.iupdate(ip)
    assert fs.readi(ip, 0, 3) == b"kkk"
    assert fs.writei(ip, b"out", 0) == 3
    assert bytes(device.written) == b"out"
    ip.major = 2
    with pytest.raises(OSError):
        fs.readi(ip, 0, 1)


def test_stat_of_file(env):
    _, fs = env
    ip = fs.namei("/readme")
    fs.ilock(ip)
    st = fs.stat(ip)
    assert st == Stat(ip.dev, ip.inum, int(FileType.FILE), 1, len(README))