"""A set-associative functional cache model with tree pseudo-LRU replacement."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

log = logging.getLogger(__name__)


class CacheError(RuntimeError):
    """Raised for invalid cache geometry or unsupported line operations."""


def _is_power_of_2(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


class SimpleCacheLine:
    """One cache line: its address, tag and valid and modified bits."""

    def __init__(self, line_size: int) -> None:
        if not _is_power_of_2(line_size):
            raise CacheError(f"DCache line size must be a power of 2. line_size={line_size}")
        self.line_size = line_size
        self.valid = False
        self.modified = False
        self.addr = 0
        self.tag = 0
        self.set_index = 0
        self.way = 0

    def reset(self, addr: int) -> None:
        """Make the line valid and hold ``addr``."""
        self.valid = True
        self.addr = addr

    def read(self, offset: int, size: int) -> bytes:
        """Functional data is not modelled."""
        raise CacheError("cache line data reads are not supported")

    def write(self, offset: int, data: bytes) -> None:
        """Functional data is not modelled."""
        raise CacheError("cache line data writes are not supported")

    def __repr__(self) -> str:
        return f"SimpleCacheLine(addr={self.addr:#x}, valid={self.valid})"


class TreePLRU:
    """Tree pseudo-LRU state for one set of ``num_ways`` ways."""

    def __init__(self, num_ways: int) -> None:
        if not _is_power_of_2(num_ways):
            raise CacheError(f"associativity must be a power of 2, got {num_ways}")
        self.num_ways = num_ways
        self._levels = num_ways.bit_length() - 1
        self._bits = [0] * (num_ways - 1)

    def touch(self, way: int) -> None:
        """Mark ``way`` as most recently used."""
        if not 0 <= way < self.num_ways:
            raise CacheError(f"way {way} out of range for {self.num_ways} ways")
        node = 0
        for level in range(self._levels - 1, -1, -1):
            bit = (way >> level) & 1
            self._bits[node] = 1 - bit
            node = 2 * node + 1 + bit

    def victim(self) -> int:
        """The way the tree points at as least recently used."""
        node = 0
        way = 0
        for _ in range(self._levels):
            bit = self._bits[node]
            way = (way << 1) | bit
            node = 2 * node + 1 + bit
        return way


class CacheFuncModel:
    """A functional cache of ``cache_size_kb`` KB with the given line size and ways."""

    def __init__(
        self,
        cache_size_kb: int,
        line_size: int,
        associativity: int,
        name: str = "l1cache",
    ) -> None:
        if not _is_power_of_2(line_size):
            raise CacheError(f"DCache line size must be a power of 2. line_size={line_size}")
        if not _is_power_of_2(associativity):
            raise CacheError(f"associativity must be a power of 2, got {associativity}")
        num_sets = cache_size_kb * 1024 // (line_size * associativity)
        if not _is_power_of_2(num_sets):
            raise CacheError(
                f"cache of {cache_size_kb} KB with {line_size}-byte lines and "
                f"{associativity} ways has no power-of-2 number of sets"
            )
        self.name = name
        self.line_size = line_size
        self.associativity = associativity
        self.num_sets = num_sets
        self._sets: list[list[SimpleCacheLine]] = []
        for set_index in range(num_sets):
            lines = []
            for way in range(associativity):
                line = SimpleCacheLine(line_size)
                line.set_index = set_index
                line.way = way
                lines.append(line)
            self._sets.append(lines)
        self._replacement = [TreePLRU(associativity) for _ in range(num_sets)]

    def __str__(self) -> str:
        return self.name

    def __iter__(self) -> Iterator[list[SimpleCacheLine]]:
        return iter(self._sets)

    def block_addr(self, addr: int) -> int:
        """``addr`` aligned down to the start of its line."""
        return addr & ~(self.line_size - 1)

    def _set_index(self, addr: int) -> int:
        return (addr // self.line_size) % self.num_sets

    def _tag(self, addr: int) -> int:
        return addr // (self.line_size * self.num_sets)

    def peek_line(self, addr: int) -> SimpleCacheLine | None:
        """The valid line holding ``addr``, without touching replacement state."""
        tag = self._tag(addr)
        for line in self._sets[self._set_index(addr)]:
            if line.valid and line.tag == tag:
                return line
        return None

    def touch_mru(self, line: SimpleCacheLine) -> None:
        """Make ``line`` the most recently used in its set."""
        self._replacement[line.set_index].touch(line.way)

    def line_for_replacement(self, addr: int) -> SimpleCacheLine:
        """The line the replacement policy would evict for ``addr``."""
        set_index = self._set_index(addr)
        return self._sets[set_index][self._replacement[set_index].victim()]

    def line_for_replacement_with_invalid_check(self, addr: int) -> SimpleCacheLine:
        """An invalid line in the set of ``addr`` if any, else the replacement victim."""
        for line in self._sets[self._set_index(addr)]:
            if not line.valid:
                return line
        return self.line_for_replacement(addr)

    def allocate_with_mru_update(self, line: SimpleCacheLine, addr: int) -> None:
        """Fill ``line`` with ``addr`` and make it the most recently used."""
        if line.set_index != self._set_index(addr):
            raise CacheError(f"line in set {line.set_index} cannot hold address {addr:#x}")
        line.reset(addr)
        line.modified = False
        line.tag = self._tag(addr)
        self.touch_mru(line)

    def preload(self, addresses: Iterable[int]) -> bool:
        """Fill the cache with each address in turn."""
        for va in addresses:
            line = self.line_for_replacement(va)
            log.info("%s : Preloading VA: %#x", self, va)
            self.allocate_with_mru_update(line, va)
            if self.peek_line(va) is None:
                raise CacheError(f"preloaded address {va:#x} is not present")
        return True

    def dump_preload(self) -> dict[str, list[dict[str, str]]]:
        """The valid lines in preload form: ``{"lines": [{"pa": "0x..."}]}``."""
        return {
            "lines": [
                {"pa": f"0x{line.addr:x}"}
                for lines in self._sets
                for line in lines
                if line.valid
            ]
        }