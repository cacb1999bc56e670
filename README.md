# teachos

`teachos` is a small, self-contained model of a teaching operating system's
storage and I/O core. It runs entirely in memory. You can build a disk image,
mount it on an in-memory disk, and read and write its files from ordinary
Python.

## What is inside

| Module               | What it provides                                                                                   |
|----------------------|----------------------------------------------------------------------------------------------------|
| `teachos.layout`     | On-disk format: `Superblock`, `DiskInode`, `DirEntry`, `FileType`, `inode_block`, `bitmap_block`, and `KernelPanic` |
| `teachos.mkfs`       | `ImageBuilder`, which lays out a fresh file-system image and copies files into its root directory |
| `teachos.disk`       | `MemoryDisk` and `Buffer`, a block device backed by an in-memory image                            |
| `teachos.bufcache`   | `BufferCache`, a most-recently-used cache of disk blocks                                           |
| `teachos.journal`    | `Log`, a write-ahead redo log with recovery and grouped transactions                               |
| `teachos.filesystem` | `FileSystem`, `Inode`, `Stat` and `skipelem`: inodes, block allocation, directories and path lookup |
| `teachos.files`      | `FileTable`, `OpenFile` and `FileKind`: reference-counted open files over inodes and pipes        |
| `teachos.pipe`       | `Pipe`, a bounded byte pipe that blocks writers when full and readers when empty                   |
| `teachos.kalloc`     | `PageAllocator`, a free-list page allocator                                                        |
| `teachos.console`    | `Console`, line-edited console input and character output                                          |
| `teachos.kbd`        | `KeyboardDecoder` and `Modifier`, which turn PC keyboard scancodes into characters                |
| `teachos.fmt`        | `format_int`, `format_printf` and `format_cprintf`, two small printf dialects                      |
| `teachos.grep`       | `match`, `match_here`, `match_star` and `grep_lines`, a pattern matcher for `^ . * $`              |
| `teachos.tools`      | `ls`, `cat`, `echo` and `fmtname`, user-level tools run against a `FileSystem`                     |

Faults that would halt a real kernel are raised as
`teachos.layout.KernelPanic`. Ordinary failures use the usual Python
exceptions, such as `FileNotFoundError`, `FileExistsError`,
`NotADirectoryError`, `BlockingIOError` and `MemoryError`.

## Installation

```
pip install .
```

To run the test suite as well:

```
pip install ".[test]"
pytest
```

## Command-line use

Build a file-system image (1000 blocks, 200 inodes) holding some files in its
root directory:

```
teachos-mkfs fs.img README.md notes.txt
```

A leading underscore in a file name is dropped when the file is stored, so
`_cat` is stored as `cat`. File names may not contain `/`.

Print the lines of files, or of standard input, that match a simple pattern.
The pattern syntax supports `^`, `.`, `*` and `$`:

```
teachos-grep '^de.*s$' words.txt
teachos-grep 'a.c' < words.txt
```

Only newline-terminated lines are reported.

## Library use

Pattern matching:

```python
from teachos.grep import match

match("^ab*c$", "abbbc")   # True
match("x.z", "wxyz")       # True
match("^q", "aq")          # False
```

Building an image in memory, mounting it and reading it back:

```python
from teachos.mkfs import ImageBuilder
from teachos.disk import MemoryDisk
from teachos.bufcache import BufferCache
from teachos.journal import Log
from teachos.filesystem import FileSystem
from teachos.tools import ls, cat

builder = ImageBuilder()
image = builder.build([("hello.txt", b"hi\n")])

disk = MemoryDisk(image)              # device 1
cache = BufferCache(disk)
log = Log(cache, 1, builder.sb)       # recovers any committed transaction
fs = FileSystem(cache, log)

for line in ls(fs, "/"):              # name, type, inode number, size
    print(line)
cat(fs, "/hello.txt")                 # b"hi\n"
```

`FileSystem` offers `ialloc`, `iget`, `ilock`, `iunlock`, `iput`, `readi`,
`writei`, `dirlookup`, `dirlink`, `namei` and `nameiparent`. Every change to
the disk, and every `iput`, must run inside a transaction:

```python
with log.transaction():
    ...
```

Updates made within a transaction are written to the log first and installed
at their home blocks when the last outstanding operation ends. The current
contents of the disk are available as `disk.image`.

`FileTable` puts reference-counted open files on top of a `FileSystem` and
of `Pipe` objects; `FileTable.open_pipe()` returns a read end and a write end.

## What it does not do

`teachos` has no processes, scheduler, system-call layer or shell. The file
system never touches a real block device: `MemoryDisk` holds the image in
memory, and the image is written to a file only by `teachos-mkfs`. `ls`,
`cat` and `echo` are library functions, not commands. `Console` writes to a
text stream rather than to screen hardware, and `Console.read` raises
`BlockingIOError` instead of waiting when no finished line is available.