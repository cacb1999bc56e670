"""An in-memory teaching operating-system core: disk layout, image builder, buffer cache, journal, file system, open files, pipes, page allocator, console, keyboard decoding and user tools."""

__version__ = "0.1.0"