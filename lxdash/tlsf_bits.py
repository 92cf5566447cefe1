"""Bit scanning, alignment and size-class mapping for the TLSF allocator.

The layout follows the 64-bit configuration: sizes and addresses are
aligned to 8 bytes, and the first-level index covers sizes up to 2**32.
"""

SL_INDEX_COUNT_LOG2 = 5
ALIGN_SIZE_LOG2 = 3
ALIGN_SIZE = 1 << ALIGN_SIZE_LOG2
FL_INDEX_MAX = 32
SL_INDEX_COUNT = 1 << SL_INDEX_COUNT_LOG2
FL_INDEX_SHIFT = SL_INDEX_COUNT_LOG2 + ALIGN_SIZE_LOG2
FL_INDEX_COUNT = FL_INDEX_MAX - FL_INDEX_SHIFT + 1
SMALL_BLOCK_SIZE = 1 << FL_INDEX_SHIFT

POINTER_SIZE = 8
SIZE_FIELD_SIZE = 8
BLOCK_HEADER_SIZE = 3 * POINTER_SIZE + SIZE_FIELD_SIZE
BLOCK_HEADER_OVERHEAD = SIZE_FIELD_SIZE
BLOCK_SIZE_MIN = BLOCK_HEADER_SIZE - POINTER_SIZE
BLOCK_SIZE_MAX = 1 << FL_INDEX_MAX

_WORD_MASK = 0xFFFFFFFF
_SIZE_MASK = 0xFFFFFFFFFFFFFFFF


def ffs(word):
    """Index of the lowest set bit of a 32-bit word, or -1 if none is set."""
    word &= _WORD_MASK
    return (word & -word).bit_length() - 1


def fls(word):
    """Index of the highest set bit of a 32-bit word, or -1 if none is set."""
    return (word & _WORD_MASK).bit_length() - 1


def fls_sizet(size):
    """Index of the highest set bit of a 64-bit size, or -1 if it is zero."""
    return (size & _SIZE_MASK).bit_length() - 1


def _check_power_of_two(align):
    if align <= 0 or align & (align - 1):
        raise ValueError(f"alignment must be a power of two, got {align}")


def align_up(x, align):
    """Round ``x`` up to a multiple of the power-of-two ``align``."""
    _check_power_of_two(align)
    return (x + (align - 1)) & ~(align - 1)


def align_down(x, align):
    """Round ``x`` down to a multiple of the power-of-two ``align``."""
    _check_power_of_two(align)
    return x - (x & (align - 1))


def adjust_request_size(size, align):
    """Align a request size and raise it to the minimum block size.

    Returns 0 for a zero request or one too large to be indexed.
    """
    if not size:
        return 0
    aligned = align_up(size, align)
    if aligned >= BLOCK_SIZE_MAX:
        return 0
    return max(aligned, BLOCK_SIZE_MIN)


def mapping_insert(size):
    """Return the (first-level, second-level) list indices for a block size."""
    if size < SMALL_BLOCK_SIZE:
        return 0, size // (SMALL_BLOCK_SIZE // SL_INDEX_COUNT)
    fl = fls_sizet(size)
    sl = (size >> (fl - SL_INDEX_COUNT_LOG2)) ^ (1 << SL_INDEX_COUNT_LOG2)
    return fl - (FL_INDEX_SHIFT - 1), sl


def mapping_search(size):
    """Like :func:`mapping_insert`, but rounded up to the next size class."""
    if size >= SMALL_BLOCK_SIZE:
        size += (1 << (fls_sizet(size) - SL_INDEX_COUNT_LOG2)) - 1
    return mapping_insert(size)