"""Physical page allocator handing out fixed-size pages from a free list."""

from __future__ import annotations

import threading

from teachos.layout import KernelPanic

PGSIZE = 4096


class PageAllocator:
    """Allocates whole pages from the address range ``[start, end)``.

    Pages are kept on a free list; the most recently freed page is handed
    out first.
    """

    def __init__(self, start: int, end: int, page_size: int = PGSIZE) -> None:
        if page_size <= 0:
            raise ValueError("page size must be positive")
        self.start = start
        self.end = end
        self.page_size = page_size
        self._lock = threading.Lock()
        self._free: list[int] = []
        first = -(-start // page_size) * page_size
        for addr in range(first, end - page_size + 1, page_size):
            self.free(addr)

    def __len__(self) -> int:
        """Number of pages currently free."""
        return len(self._free)

    def free(self, addr: int) -> None:
        """Return the page at ``addr`` to the free list."""
        if addr % self.page_size or addr < self.start or addr >= self.end:
            raise KernelPanic("kfree")
        with self._lock:
            self._free.append(addr)

    def alloc(self) -> int:
        """Take one page off the free list and return its address."""
        with self._lock:
            if not self._free:
                raise MemoryError("out of physical pages")
            return self._free.pop()