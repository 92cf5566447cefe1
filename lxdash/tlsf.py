"""Two-level segregated fit allocator over a simulated address space.

Pointers are plain integers into a growable byte store; 0 is never a valid
address. Block headers are kept beside the data, so writes through the
public API cannot corrupt the allocator's bookkeeping.
"""

from dataclasses import dataclass

from lxdash.tlsf_bits import (
    ALIGN_SIZE,
    BLOCK_HEADER_OVERHEAD,
    BLOCK_HEADER_SIZE,
    BLOCK_SIZE_MAX,
    BLOCK_SIZE_MIN,
    FL_INDEX_COUNT,
    SL_INDEX_COUNT,
    adjust_request_size,
    align_down,
    align_up,
    ffs,
    mapping_insert,
    mapping_search,
)

_WORD_MASK = 0xFFFFFFFF
# User data starts this far past the block header address.
_BLOCK_START_OFFSET = 2 * BLOCK_HEADER_OVERHEAD
_POOL_OVERHEAD = 2 * BLOCK_HEADER_OVERHEAD


class PoolError(ValueError):
    """A memory pool could not be added, removed or walked."""


@dataclass(eq=False)
class _Block:
    addr: int
    size: int
    free: bool = False
    prev_free: bool = False
    prev_phys: "_Block | None" = None

    @property
    def ptr(self):
        return self.addr + _BLOCK_START_OFFSET

    @property
    def is_last(self):
        return self.size == 0


def _default_walker(ptr, size, used):
    state = "used" if used else "free"
    print(f"\t{ptr:#x} {state} size: {size:x} ({ptr - _BLOCK_START_OFFSET:#x})")


class Tlsf:
    """A TLSF allocator that can manage one or more memory pools."""

    def __init__(self, pool_bytes=None):
        self._memory = bytearray()
        self._headers = {}
        self._pools = {}
        self._fl_bitmap = 0
        self._sl_bitmap = [0] * FL_INDEX_COUNT
        # Each free list keeps its head at the end.
        self._free_lists = [[[] for _ in range(SL_INDEX_COUNT)] for _ in range(FL_INDEX_COUNT)]
        self.pool = None if pool_bytes is None else self.add_pool(pool_bytes)

    # ----------------------------------------------------------- block links
    def _next(self, block):
        return self._headers[block.addr + BLOCK_HEADER_OVERHEAD + block.size]

    def _link_next(self, block):
        nxt = self._next(block)
        nxt.prev_phys = block
        return nxt

    def _mark_as_free(self, block):
        nxt = self._link_next(block)
        nxt.prev_free = True
        block.free = True

    def _mark_as_used(self, block):
        self._next(block).prev_free = False
        block.free = False

    # ------------------------------------------------------------ free lists
    def _remove_free_block(self, block, fl, sl):
        lst = self._free_lists[fl][sl]
        lst.remove(block)
        if not lst:
            self._sl_bitmap[fl] &= ~(1 << sl)
            if not self._sl_bitmap[fl]:
                self._fl_bitmap &= ~(1 << fl)

    def _insert_free_block(self, block, fl, sl):
        self._free_lists[fl][sl].append(block)
        self._fl_bitmap |= 1 << fl
        self._sl_bitmap[fl] |= 1 << sl

    def _block_remove(self, block):
        self._remove_free_block(block, *mapping_insert(block.size))

    def _block_insert(self, block):
        self._insert_free_block(block, *mapping_insert(block.size))

    def _search_suitable_block(self, fl, sl):
        sl_map = self._sl_bitmap[fl] & ((~0 << sl) & _WORD_MASK)
        if not sl_map:
            fl_map = self._fl_bitmap & ((~0 << (fl + 1)) & _WORD_MASK)
            if not fl_map:
                return None, fl, sl
            fl = ffs(fl_map)
            sl_map = self._sl_bitmap[fl]
        sl = ffs(sl_map)
        return self._free_lists[fl][sl][-1], fl, sl

    # ------------------------------------------------- splitting and merging
    @staticmethod
    def _can_split(block, size):
        return block.size >= BLOCK_HEADER_SIZE + size

    def _split(self, block, size):
        remaining = _Block(block.addr + BLOCK_HEADER_OVERHEAD + size,
                           block.size - (size + BLOCK_HEADER_OVERHEAD))
        self._headers[remaining.addr] = remaining
        block.size = size
        self._mark_as_free(remaining)
        return remaining

    def _absorb(self, prev, block):
        prev.size += block.size + BLOCK_HEADER_OVERHEAD
        del self._headers[block.addr]
        self._link_next(prev)
        return prev

    def _merge_prev(self, block):
        if block.prev_free:
            prev = block.prev_phys
            self._block_remove(prev)
            block = self._absorb(prev, block)
        return block

    def _merge_next(self, block):
        nxt = self._next(block)
        if nxt.free:
            self._block_remove(nxt)
            block = self._absorb(block, nxt)
        return block

    def _trim_free(self, block, size):
        if self._can_split(block, size):
            remaining = self._split(block, size)
            self._link_next(block)
            remaining.prev_free = True
            self._block_insert(remaining)

    def _trim_used(self, block, size):
        if self._can_split(block, size):
            remaining = self._split(block, size)
            remaining.prev_free = False
            remaining = self._merge_next(remaining)
            self._block_insert(remaining)

    def _trim_free_leading(self, block, size):
        remaining = block
        if self._can_split(block, size):
            remaining = self._split(block, size - BLOCK_HEADER_OVERHEAD)
            remaining.prev_free = True
            self._link_next(block)
            self._block_insert(block)
        return remaining

    def _locate_free(self, size):
        if not size:
            return None
        fl, sl = mapping_search(size)
        if fl >= FL_INDEX_COUNT:
            return None
        block, fl, sl = self._search_suitable_block(fl, sl)
        if block is not None:
            self._remove_free_block(block, fl, sl)
        return block

    def _prepare_used(self, block, size):
        self._trim_free(block, size)
        self._mark_as_used(block)
        return block.ptr

    def _used_block(self, ptr):
        block = self._headers.get(ptr - _BLOCK_START_OFFSET)
        if block is None or block.is_last:
            raise ValueError(f"{ptr:#x} is not an allocated pointer")
        if block.free:
            raise ValueError(f"block at {ptr:#x} is already free")
        return block

    def _pool_head(self, pool):
        if pool not in self._pools:
            raise PoolError(f"{pool!r} is not a pool of this allocator")
        return self._headers[pool - BLOCK_HEADER_OVERHEAD]

    def _iter_pool(self, pool):
        block = self._pool_head(pool)
        while not block.is_last:
            yield block
            block = self._next(block)

    # ------------------------------------------------------------ public API
    def add_pool(self, size):
        """Add a new region of ``size`` bytes and return its pool address."""
        pool_bytes = align_down(size - _POOL_OVERHEAD, ALIGN_SIZE)
        if pool_bytes < BLOCK_SIZE_MIN or pool_bytes > BLOCK_SIZE_MAX:
            raise PoolError(
                f"memory size must be between {_POOL_OVERHEAD + BLOCK_SIZE_MIN} "
                f"and {_POOL_OVERHEAD + BLOCK_SIZE_MAX} bytes"
            )
        mem = align_up(len(self._memory), ALIGN_SIZE) + 2 * ALIGN_SIZE
        self._memory.extend(bytes(mem + size - len(self._memory)))

        block = _Block(mem - BLOCK_HEADER_OVERHEAD, pool_bytes, free=True)
        self._headers[block.addr] = block
        self._block_insert(block)
        sentinel = _Block(block.addr + BLOCK_HEADER_OVERHEAD + pool_bytes, 0, prev_free=True)
        self._headers[sentinel.addr] = sentinel
        self._link_next(block)
        self._pools[mem] = size
        return mem

    def remove_pool(self, pool):
        """Withdraw a pool; every block in it must have been freed."""
        block = self._pool_head(pool)
        nxt = self._next(block)
        if not block.free or nxt.free or not nxt.is_last:
            raise PoolError(f"pool {pool:#x} still has allocations")
        self._block_remove(block)
        del self._headers[nxt.addr]
        del self._headers[block.addr]
        del self._pools[pool]

    def malloc(self, size):
        """Allocate ``size`` bytes; None for a zero request, MemoryError when full."""
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            return None
        adjust = adjust_request_size(size, ALIGN_SIZE)
        block = self._locate_free(adjust)
        if block is None:
            raise MemoryError(f"cannot allocate {size} bytes")
        return self._prepare_used(block, adjust)

    def memalign(self, align, size):
        """Allocate ``size`` bytes at an address that is a multiple of ``align``."""
        if size < 0:
            raise ValueError("size must not be negative")
        adjust = adjust_request_size(size, ALIGN_SIZE)
        gap_minimum = BLOCK_HEADER_SIZE
        size_with_gap = adjust_request_size(adjust + align + gap_minimum, align)
        if size == 0:
            return None
        aligned_size = size_with_gap if adjust and align > ALIGN_SIZE else adjust
        block = self._locate_free(aligned_size)
        if block is None:
            raise MemoryError(f"cannot allocate {size} bytes aligned to {align}")

        ptr = block.ptr
        aligned = align_up(ptr, align)
        gap = aligned - ptr
        if gap and gap < gap_minimum:
            offset = max(gap_minimum - gap, align)
            aligned = align_up(aligned + offset, align)
            gap = aligned - ptr
        if gap:
            block = self._trim_free_leading(block, gap)
        return self._prepare_used(block, adjust)

    def realloc(self, ptr, size):
        """Resize an allocation, moving it if needed; the contents are kept.

        A None pointer allocates; a zero size frees and returns None. On
        MemoryError the original allocation is left untouched.
        """
        if ptr is not None and size == 0:
            self.free(ptr)
            return None
        if ptr is None:
            return self.malloc(size)
        if size < 0:
            raise ValueError("size must not be negative")

        block = self._used_block(ptr)
        nxt = self._next(block)
        cursize = block.size
        combined = cursize + nxt.size + BLOCK_HEADER_OVERHEAD
        adjust = adjust_request_size(size, ALIGN_SIZE)
        if not adjust:
            raise MemoryError(f"cannot allocate {size} bytes")

        if adjust > cursize and (not nxt.free or adjust > combined):
            new_ptr = self.malloc(size)
            count = min(cursize, size)
            self._memory[new_ptr:new_ptr + count] = self._memory[ptr:ptr + count]
            self.free(ptr)
            return new_ptr

        if adjust > cursize:
            self._merge_next(block)
            self._mark_as_used(block)
        self._trim_used(block, adjust)
        return ptr

    def free(self, ptr):
        """Release an allocation; None is ignored."""
        if ptr is None:
            return
        block = self._used_block(ptr)
        self._mark_as_free(block)
        block = self._merge_prev(block)
        block = self._merge_next(block)
        self._block_insert(block)

    def block_size(self, ptr):
        """Internal size of the block behind ``ptr`` (not the requested size)."""
        if ptr is None:
            return 0
        block = self._headers.get(ptr - _BLOCK_START_OFFSET)
        if block is None:
            raise ValueError(f"{ptr:#x} is not a block pointer")
        return block.size

    def read(self, ptr, length):
        """Return ``length`` bytes from the start of an allocation."""
        block = self._used_block(ptr)
        if length < 0 or length > block.size:
            raise ValueError(f"cannot read {length} bytes from a {block.size}-byte block")
        return bytes(self._memory[ptr:ptr + length])

    def write(self, ptr, data):
        """Copy ``data`` to the start of an allocation."""
        block = self._used_block(ptr)
        data = bytes(data)
        if len(data) > block.size:
            raise ValueError(f"cannot write {len(data)} bytes into a {block.size}-byte block")
        self._memory[ptr:ptr + len(data)] = data

    def walk_pool(self, pool, walker=None):
        """Call ``walker(ptr, size, used)`` for each block of a pool in address order."""
        walker = walker or _default_walker
        for block in list(self._iter_pool(pool)):
            walker(block.ptr, block.size, not block.free)

    def check(self):
        """Verify free lists and bitmaps; 0 if sound, negative failure count otherwise."""
        status = 0

        def insist(condition):
            nonlocal status
            if not condition:
                status -= 1

        for i in range(FL_INDEX_COUNT):
            for j in range(SL_INDEX_COUNT):
                fl_map = self._fl_bitmap & (1 << i)
                sl_list = self._sl_bitmap[i]
                sl_map = sl_list & (1 << j)
                blocks = self._free_lists[i][j]
                if not fl_map:
                    insist(not sl_map)
                if not sl_map:
                    insist(not blocks)
                    continue
                insist(sl_list)
                insist(blocks)
                for block in reversed(blocks):
                    nxt = self._next(block)
                    insist(block.free)
                    insist(not block.prev_free)
                    insist(not nxt.free)
                    insist(nxt.prev_free)
                    insist(block.size >= BLOCK_SIZE_MIN)
                    insist(mapping_insert(block.size) == (i, j))
        return status

    def check_pool(self, pool):
        """Verify the physical chain of a pool; 0 if sound, negative otherwise."""
        status = 0
        prev_status = False
        for block in self._iter_pool(pool):
            if prev_status != block.prev_free:
                status -= 1
            prev_status = block.free
        return status

    def usage(self):
        """Return ``(used, capacity)`` in bytes across all pools."""
        used = sum(
            block.size + BLOCK_HEADER_OVERHEAD
            for pool in self._pools
            for block in self._iter_pool(pool)
            if not block.free
        )
        return used, sum(self._pools.values())