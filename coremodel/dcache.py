"""The L1 data cache unit: lookup pipeline, MSHR file and refills from L2."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from coremodel.cache import CacheFuncModel
from coremodel.pipes import Inst

log = logging.getLogger(__name__)


class DCacheError(RuntimeError):
    """Raised when the data cache is configured or driven inconsistently."""


class CacheState(enum.Enum):
    """Outcome of a cache access."""

    NO_ACCESS = enum.auto()
    HIT = enum.auto()
    MISS = enum.auto()


class PipelineStage(enum.IntEnum):
    """Stages of the data cache pipeline."""

    LOOKUP = 0
    DATA_READ = 1
    DEALLOCATE = 2


NUM_STAGES = len(PipelineStage)


@dataclass(eq=False)
class MSHREntry:
    """A miss status holding register: one outstanding line fill."""

    line_size: int
    valid: bool = True
    modified: bool = False
    data_arrived: bool = False
    mem_request: MemoryAccess | None = None


@dataclass(eq=False)
class MemoryAccess:
    """A memory access request travelling between the LSU, the data cache and L2."""

    inst: Inst
    cache_state: CacheState = CacheState.NO_ACCESS
    is_refill: bool = False
    data_ready: bool = False
    mshr_entry: MSHREntry | None = None

    @property
    def phy_addr(self) -> int:
        """Physical address of the access."""
        return self.inst.target_addr

    @property
    def is_cache_hit(self) -> bool:
        """Whether the access hit."""
        return self.cache_state is CacheState.HIT

    def __str__(self) -> str:
        return f"memacc({self.inst}, addr={self.phy_addr:#x}, {self.cache_state.name})"


class DCache:
    """An L1 data cache with a three-stage pipeline and a file of MSHRs.

    ``send_lsu_ack`` receives every acknowledgement sent back to the LSU and
    ``send_l2_req`` every miss request sent to L2; both are also recorded in
    :attr:`lsu_acks` and :attr:`l2_requests`.  Time advances with :meth:`step`.
    """

    def __init__(
        self,
        *,
        l1_line_size: int = 64,
        l1_size_kb: int = 32,
        l1_associativity: int = 8,
        l1_always_hit: bool = False,
        mshr_entries: int = 8,
        send_lsu_ack: Callable[[MemoryAccess | None], None] | None = None,
        send_l2_req: Callable[[MemoryAccess], None] | None = None,
    ) -> None:
        if mshr_entries <= 0:
            raise DCacheError("There must be atleast 1 MSHR entry")
        self.l1_always_hit = l1_always_hit
        self.cache_line_size = l1_line_size
        self.num_mshr_entries = mshr_entries
        self.l1_cache = CacheFuncModel(l1_size_kb, l1_line_size, l1_associativity)

        self._send_lsu_ack = send_lsu_ack
        self._send_l2_req = send_l2_req
        self.lsu_acks: list[MemoryAccess | None] = []
        self.l2_requests: list[MemoryAccess] = []

        self.cycle = 0
        self.l2cache_busy = False
        self.dcache_l2cache_credits = 0
        self.dl1_cache_hits = 0
        self.dl1_cache_misses = 0

        self.pipeline: list[MemoryAccess | None] = [None] * NUM_STAGES
        self._incoming: MemoryAccess | None = None
        self._mshr_file: list[MSHREntry] = []
        self._l2_access: MemoryAccess | None = None
        self._lsu_access: MemoryAccess | None = None
        self._arbitrate_pending = False
        self._mshr_due: int | None = None

    # ------------------------------------------------------------------
    # State views

    @property
    def mshr_file(self) -> list[MSHREntry]:
        """The allocated MSHR entries, oldest first."""
        return list(self._mshr_file)

    @property
    def mshr_free(self) -> int:
        """Number of free MSHR entries."""
        return self.num_mshr_entries - len(self._mshr_file)

    @property
    def mshr_request_due(self) -> int | None:
        """Cycle at which an MSHR request is scheduled, if any."""
        return self._mshr_due

    @property
    def hit_miss_ratio(self) -> float:
        """DL1 hits divided by DL1 misses."""
        if self.dl1_cache_misses == 0:
            return float("inf") if self.dl1_cache_hits else float("nan")
        return self.dl1_cache_hits / self.dl1_cache_misses

    # ------------------------------------------------------------------
    # Helpers

    def _ack(self, access: MemoryAccess | None) -> None:
        self.lsu_acks.append(access)
        if self._send_lsu_ack is not None:
            self._send_lsu_ack(access)

    def _request_l2(self, access: MemoryAccess) -> None:
        self.l2_requests.append(access)
        if self._send_l2_req is not None:
            self._send_l2_req(access)

    def _schedule_mshr_request(self, delay: int) -> None:
        due = self.cycle + delay
        if self._mshr_due is None or due < self._mshr_due:
            self._mshr_due = due

    def _mshr_valid(self, access: MemoryAccess) -> bool:
        entry = access.mshr_entry
        return entry is not None and any(e is entry for e in self._mshr_file)

    def _erase_mshr(self, access: MemoryAccess) -> None:
        entry = access.mshr_entry
        self._mshr_file = [e for e in self._mshr_file if e is not entry]

    def _allocate_mshr_entry(self, access: MemoryAccess) -> None:
        if len(self._mshr_file) >= self.num_mshr_entries:
            raise DCacheError("Appending mshr causes overflows!")
        entry = MSHREntry(self.cache_line_size)
        self._mshr_file.append(entry)
        access.mshr_entry = entry

    def _reload_cache(self, phy_addr: int) -> None:
        line = self.l1_cache.line_for_replacement_with_invalid_check(phy_addr)
        self.l1_cache.allocate_with_mru_update(line, phy_addr)
        log.debug("DCache reload complete!")

    def _data_lookup(self, access: MemoryAccess) -> bool:
        addr = access.phy_addr
        if self.l1_always_hit:
            log.debug("DL1 DCache HIT all the time: phyAddr=%#x", addr)
            self.dl1_cache_hits += 1
            return True
        line = self.l1_cache.peek_line(addr)
        hit = line is not None and line.valid
        if hit:
            self.l1_cache.touch_mru(line)
            log.debug("DL1 DCache HIT: phyAddr=%#x", addr)
            self.dl1_cache_hits += 1
        else:
            log.debug("DL1 DCache MISS: phyAddr=%#x", addr)
            self.dl1_cache_misses += 1
        return hit

    # ------------------------------------------------------------------
    # Port handlers

    def receive_lsu_request(self, access: MemoryAccess) -> None:
        """Accept a lookup request from the LSU; arbitration happens this cycle."""
        log.debug("Received memory access request from LSU %s", access)
        self._lsu_access = access
        self._arbitrate_pending = True

    def receive_l2_response(self, access: MemoryAccess) -> None:
        """Accept a refill from L2, releasing its MSHR and the L2 request slot."""
        log.debug("Received cache refill %s", access)
        access.is_refill = True
        self._l2_access = access
        if self._mshr_valid(access):
            log.debug("Removing mshr entry for %s", access)
            self._erase_mshr(access)
        self.l2cache_busy = False
        self._arbitrate_pending = True

    def receive_l2_ack(self, ack: int) -> None:
        """Record the credits L2 reports for its request buffer."""
        self.dcache_l2cache_credits = ack

    def arbitrate(self) -> MemoryAccess:
        """Choose between a pending refill and an LSU request; refills win.

        The chosen access enters the pipeline on the next cycle; both pending
        requests are cleared and an MSHR request is scheduled for the next cycle.
        """
        self._arbitrate_pending = False
        if self._l2_access is not None:
            chosen = self._l2_access
            log.debug("Received Refill request %s", chosen)
        elif self._lsu_access is not None:
            chosen = self._lsu_access
            log.debug("Received LSU request %s", chosen)
        else:
            raise DCacheError("arbitration with no pending request")
        self._incoming = chosen
        self._l2_access = None
        self._lsu_access = None
        self._schedule_mshr_request(1)
        return chosen

    # ------------------------------------------------------------------
    # Pipeline stages

    def handle_lookup(self, access: MemoryAccess) -> None:
        """Lookup stage: tag check, MSHR allocation and line-fill buffer handling."""
        log.debug("%s in Lookup stage", access)
        if access.is_refill:
            log.debug("Incoming cache refill %s", access)
            return

        if self._data_lookup(access):
            access.cache_state = CacheState.HIT
            self._ack(access)
            return

        if not self._mshr_valid(access):
            if self.mshr_free == 0:
                access.cache_state = CacheState.MISS
                self._ack(access)
                return
            log.debug("Creating new MSHR Entry %s", access)
            self._allocate_mshr_entry(access)

        entry = access.mshr_entry
        assert entry is not None
        block = self.block_addr(access)
        if access.inst.is_store:
            log.debug("Write to Line fill buffer (ST), block address:%#x", block)
            entry.modified = True
            entry.mem_request = access
            access.cache_state = CacheState.HIT
        elif entry.data_arrived:
            log.debug("Hit on Line fill buffer (LD), block address:%#x", block)
            access.cache_state = CacheState.HIT
        else:
            log.debug("Load miss inst to LMQ; block address:%#x", block)
            entry.mem_request = access
            access.cache_state = CacheState.MISS
        self._ack(access)

    def handle_data_read(self, access: MemoryAccess) -> None:
        """Data read stage: install refills, mark hits ready, send misses to L2."""
        log.debug("%s in read stage", access)
        if access.is_refill:
            self._reload_cache(access.phy_addr)
            return

        if access.is_cache_hit:
            access.data_ready = True
        elif not self.l2cache_busy:
            self._request_l2(access)
            self.l2cache_busy = True
        else:
            self._schedule_mshr_request(1)
        self._ack(access)

    def handle_deallocate(self, access: MemoryAccess) -> None:
        """Deallocate stage: for a refill, wake the dependent load and free its MSHR."""
        log.debug("%s in deallocate stage", access)
        if access.is_refill:
            if self._mshr_valid(access):
                assert access.mshr_entry is not None
                self._ack(access.mshr_entry.mem_request)
                log.debug("Removing mshr entry for %s", access)
                self._erase_mshr(access)
            return
        log.debug("Deallocating pipeline for %s", access)

    def mshr_request(self) -> MemoryAccess | None:
        """If L2 is free, send it the oldest MSHR still waiting for data."""
        if self.l2cache_busy:
            return None
        for entry in self._mshr_file:
            request = entry.mem_request
            if entry.valid and not entry.data_arrived and request is not None:
                log.debug("Sending mshr request when not busy %s", request)
                self._request_l2(request)
                self.l2cache_busy = True
                return request
        return None

    def block_addr(self, access: MemoryAccess) -> int:
        """Address of the cache block the access falls in."""
        return self.l1_cache.block_addr(access.inst.target_addr)

    # ------------------------------------------------------------------
    # Time

    def step(self) -> None:
        """Advance one cycle: arbitrate, move the pipeline and run its stages."""
        if self._arbitrate_pending:
            self.arbitrate()
        self.cycle += 1
        self.pipeline = [self._incoming, *self.pipeline[:-1]]
        self._incoming = None

        handlers = (self.handle_lookup, self.handle_data_read, self.handle_deallocate)
        for stage, handler in zip(PipelineStage, handlers):
            access = self.pipeline[stage]
            if access is not None:
                handler(access)

        if self._mshr_due is not None and self._mshr_due <= self.cycle:
            self._mshr_due = None
            self.mshr_request()