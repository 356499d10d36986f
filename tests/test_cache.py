import pytest

from coremodel.cache import CacheError, CacheFuncModel, SimpleCacheLine, TreePLRU


def test_line_size_must_be_power_of_two():
    with pytest.raises(CacheError):
        SimpleCacheLine(48)


def test_line_reset_makes_valid():
    line = SimpleCacheLine(64)
    assert line.valid is False
    line.reset(0x1000)
    assert line.valid is True
    assert line.addr == 0x1000


def test_line_read_and_write_unsupported():
    line = SimpleCacheLine(64)
    with pytest.raises(CacheError):
        line.read(0, 4)
    with pytest.raises(CacheError):
        line.write(0, b"\x00")


def test_plru_rejects_non_power_of_two():
    with pytest.raises(CacheError):
        TreePLRU(3)


def test_plru_touch_out_of_range():
    with pytest.raises(CacheError):
        TreePLRU(4).touch(4)


@pytest.mark.parametrize("ways", [2, 4, 8])
def test_plru_victim_never_just_touched(ways):
    plru = TreePLRU(ways)
    for way in range(ways):
        plru.touch(way)
        assert plru.victim() != way


def test_plru_in_order_touch_evicts_first():
    plru = TreePLRU(8)
    for way in range(8):
        plru.touch(way)
    assert plru.victim() == 0


def test_plru_single_way():
    plru = TreePLRU(1)
    plru.touch(0)
    assert plru.victim() == 0


def test_invalid_geometry():
    with pytest.raises(CacheError):
        CacheFuncModel(1, 64, 32)


def test_block_addr_aligns_to_line():
    cache = CacheFuncModel(32, 64, 8)
    assert cache.block_addr(0x1234) == 0x1200
    assert cache.block_addr(0x1200) == 0x1200


def test_miss_then_hit_after_allocate():
    cache = CacheFuncModel(32, 64, 8)
    assert cache.peek_line(0x4000) is None
    line = cache.line_for_replacement(0x4000)
    cache.allocate_with_mru_update(line, 0x4000)
    assert cache.peek_line(0x4000) is line
    assert cache.peek_line(0x4010) is line


def test_allocate_to_wrong_set_raises():
    cache = CacheFuncModel(32, 64, 8)
    line = cache.line_for_replacement(0x0)
    with pytest.raises(CacheError):
        cache.allocate_with_mru_update(line, 0x40)


def test_preload_and_dump_round_trip():
    cache = CacheFuncModel(32, 64, 8)
    addresses = [0x1000, 0x2040, 0x30C0]
    assert cache.preload(addresses) is True
    for addr in addresses:
        assert cache.peek_line(addr) is not None
    dumped = sorted(entry["pa"] for entry in cache.dump_preload()["lines"])
    assert dumped == sorted(f"0x{a:x}" for a in addresses)


def test_filling_a_set_beyond_associativity_evicts():
    cache = CacheFuncModel(1, 64, 2)
    stride = 64 * cache.num_sets
    cache.preload([0, stride, 2 * stride])
    present = [cache.peek_line(a) is not None for a in (0, stride, 2 * stride)]
    assert present == [False, True, True]


def test_touch_mru_protects_line():
    cache = CacheFuncModel(1, 64, 2)
    stride = 64 * cache.num_sets
    cache.preload([0, stride])
    cache.touch_mru(cache.peek_line(0))
    cache.preload([2 * stride])
    assert cache.peek_line(0) is not None
    assert cache.peek_line(stride) is None


def test_invalid_check_prefers_empty_way():
    cache = CacheFuncModel(1, 64, 2)
    first = cache.line_for_replacement_with_invalid_check(0)
    cache.allocate_with_mru_update(first, 0)
    second = cache.line_for_replacement_with_invalid_check(64 * cache.num_sets)
    assert second is not first
    assert second.valid is False


def test_dump_of_empty_cache():
    assert CacheFuncModel(1, 64, 2).dump_preload() == {"lines": []}