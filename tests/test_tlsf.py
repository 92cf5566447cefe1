import random

import pytest

from lxdash.tlsf import PoolError, Tlsf
from lxdash.tlsf_bits import ALIGN_SIZE, BLOCK_HEADER_OVERHEAD, BLOCK_SIZE_MIN


def _blocks(t, pool):
    seen = []
    t.walk_pool(pool, lambda ptr, size, used: seen.append((ptr, size, used)))
    return seen


def _assert_sound(t, pool):
    assert t.check() == 0
    assert t.check_pool(pool) == 0
    blocks = _blocks(t, pool)
    for (_, _, used_a), (_, _, used_b) in zip(blocks, blocks[1:]):
        assert used_a or used_b, "adjacent free blocks should have coalesced"


def _span(blocks):
    return sum(size for _, size, _ in blocks) + BLOCK_HEADER_OVERHEAD * (len(blocks) - 1)


def _try_alloc(t, size, aligned):
    try:
        return t.memalign(64, size) if aligned else t.malloc(size)
    except MemoryError:
        return None


def test_fresh_pool_is_one_free_block():
    t = Tlsf(4096)
    assert _blocks(t, t.pool) == [(t.pool, 4080, False)]
    _assert_sound(t, t.pool)


def test_malloc_alignment_and_size():
    t = Tlsf(4096)
    for request in (1, 7, 8, 24, 100):
        ptr = t.malloc(request)
        assert ptr % ALIGN_SIZE == 0
        assert t.block_size(ptr) >= max(request, BLOCK_SIZE_MIN)
    _assert_sound(t, t.pool)


def test_malloc_zero_returns_none():
    t = Tlsf(1024)
    assert t.malloc(0) is None
    assert t.usage()[0] == 0


def test_negative_size_rejected():
    t = Tlsf(1024)
    with pytest.raises(ValueError):
        t.malloc(-1)


def test_exhaustion_raises_memory_error():
    t = Tlsf(1024)
    with pytest.raises(MemoryError):
        t.malloc(4096)
    _assert_sound(t, t.pool)


def test_free_restores_single_block():
    t = Tlsf(4096)
    initial = _blocks(t, t.pool)
    ptrs = [t.malloc(n) for n in (16, 40, 200, 64)]
    assert t.usage()[0] > 0
    for ptr in (ptrs[1], ptrs[3], ptrs[0], ptrs[2]):
        t.free(ptr)
        _assert_sound(t, t.pool)
    assert _blocks(t, t.pool) == initial
    assert t.usage()[0] == 0


def test_free_none_is_ignored():
    t = Tlsf(1024)
    t.free(None)
    assert t.check() == 0


def test_double_free_raises():
    t = Tlsf(1024)
    ptr = t.malloc(32)
    t.free(ptr)
    with pytest.raises(ValueError):
        t.free(ptr)


def test_walk_span_is_constant():
    t = Tlsf(4096)
    total = _span(_blocks(t, t.pool))
    a = t.malloc(100)
    t.malloc(50)
    t.free(a)
    blocks = _blocks(t, t.pool)
    assert len(blocks) >= 3
    assert _span(blocks) == total


def test_write_read_round_trip():
    t = Tlsf(2048)
    ptr = t.malloc(64)
    t.write(ptr, b"hello world")
    assert t.read(ptr, 11) == b"hello world"


def test_write_beyond_block_raises():
    t = Tlsf(2048)
    ptr = t.malloc(32)
    with pytest.raises(ValueError):
        t.write(ptr, bytes(t.block_size(ptr) + 1))
    with pytest.raises(ValueError):
        t.read(ptr, t.block_size(ptr) + 1)


def test_read_unknown_pointer_raises():
    t = Tlsf(2048)
    with pytest.raises(ValueError):
        t.read(t.pool + 3, 1)


def test_realloc_grows_in_place_when_next_is_free():
    t = Tlsf(4096)
    ptr = t.malloc(64)
    t.write(ptr, b"abc")
    grown = t.realloc(ptr, 512)
    assert grown == ptr
    assert t.block_size(grown) >= 512
    assert t.read(grown, 3) == b"abc"
    _assert_sound(t, t.pool)


def test_realloc_moves_and_keeps_contents():
    t = Tlsf(4096)
    a = t.malloc(64)
    t.malloc(64)
    payload = bytes(range(64))
    t.write(a, payload)
    moved = t.realloc(a, 512)
    assert moved != a and t.read(moved, 64) == payload
    with pytest.raises(ValueError):
        t.read(a, 1)
    _assert_sound(t, t.pool)


def test_realloc_shrinks_in_place():
    t = Tlsf(4096)
    ptr = t.malloc(512)
    t.write(ptr, b"keep")
    shrunk = t.realloc(ptr, 32)
    assert shrunk == ptr
    assert t.block_size(ptr) < 512
    assert t.read(ptr, 4) == b"keep"
    _assert_sound(t, t.pool)


def test_realloc_none_and_zero():
    t = Tlsf(2048)
    ptr = t.realloc(None, 40)
    assert t.block_size(ptr) >= 40
    assert t.realloc(ptr, 0) is None
    assert t.usage()[0] == 0


def test_realloc_failure_leaves_original():
    t = Tlsf(1024)
    ptr = t.malloc(64)
    t.malloc(64)
    t.write(ptr, b"xyz")
    with pytest.raises(MemoryError):
        t.realloc(ptr, 8192)
    assert t.read(ptr, 3) == b"xyz"


@pytest.mark.parametrize("align", [16, 64, 256, 1024])
def test_memalign_alignment(align):
    t = Tlsf(16384)
    t.malloc(8)
    ptr = t.memalign(align, 100)
    assert ptr % align == 0
    assert t.block_size(ptr) >= 100
    _assert_sound(t, t.pool)
    t.free(ptr)
    _assert_sound(t, t.pool)


def test_memalign_rejects_non_power_of_two():
    t = Tlsf(4096)
    with pytest.raises(ValueError):
        t.memalign(24, 10)


def test_add_pool_too_small():
    t = Tlsf(1024)
    with pytest.raises(PoolError):
        t.add_pool(8)
    with pytest.raises(PoolError):
        Tlsf(16)


def test_second_pool_serves_allocations():
    t = Tlsf(1024)
    with pytest.raises(MemoryError):
        t.malloc(3000)
    second = t.add_pool(4096)
    ptr = t.malloc(3000)
    assert second <= ptr < second + 4096
    assert t.usage()[1] == 1024 + 4096
    _assert_sound(t, second)


def test_remove_pool():
    t = Tlsf(1024)
    second = t.add_pool(2048)
    ptr = t.malloc(1500)
    with pytest.raises(PoolError):
        t.remove_pool(second)
    t.free(ptr)
    t.remove_pool(second)
    with pytest.raises(PoolError):
        t.walk_pool(second)
    with pytest.raises(MemoryError):
        t.malloc(1500)
    assert t.check() == 0


def test_default_walker_prints(capsys):
    t = Tlsf(1024)
    t.malloc(16)
    t.walk_pool(t.pool)
    out = capsys.readouterr().out
    assert "used" in out and "free" in out


def test_random_workload_keeps_invariants():
    rng = random.Random(1234)
    t = Tlsf(65536)
    live = {}
    mismatched_reads = []
    check_results = []
    frees = 0
    for step in range(400):
        if live and rng.random() < 0.45:
            ptr = rng.choice(list(live))
            expected = live.pop(ptr)
            if t.read(ptr, len(expected)) != expected:
                mismatched_reads.append(ptr)
            t.free(ptr)
            frees += 1
        else:
            size = rng.randint(1, 700)
            ptr = _try_alloc(t, size, rng.random() >= 0.8)
            if ptr is not None:
                data = bytes([step % 256]) * size
                t.write(ptr, data)
                live[ptr] = data
        check_results.append((t.check(), t.check_pool(t.pool)))
    assert frees > 0
    assert mismatched_reads == []
    assert check_results == [(0, 0)] * 400
    assert live
    remaining = list(live.items())
    contents = [t.read(ptr, len(data)) for ptr, data in remaining]
    assert contents == [data for _, data in remaining]
    for ptr, _ in remaining:
        t.free(ptr)
    assert t.usage()[0] == 0
    assert len(_blocks(t, t.pool)) == 1