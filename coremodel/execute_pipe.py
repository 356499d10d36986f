"""A single execution pipe: latency, vector multi-pass execution, completion and flush."""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Callable, Protocol

from coremodel.pipes import FlushCriteria, Inst, InstStatus, TargetPipe

log = logging.getLogger(__name__)

_UINT32_MASK = 0xFFFFFFFF
_MISPREDICT_ONE_IN = 20


class ExecutePipeError(RuntimeError):
    """Raised when the execution pipe is driven into an impossible state."""


class _RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def passes_needed(vl: int, vlmax: int, lmul: int, uop_id: int, adder_num: int) -> int:
    """Number of passes a vector integer uop needs through the adders.

    The active elements of the uop are the non-tail elements that fall in
    it; the pass count is their number divided by ``adder_num`` using
    32-bit unsigned integer arithmetic.
    """
    if adder_num <= 0:
        raise ValueError("the number of vector adders must be positive")
    if lmul <= 0:
        raise ValueError("LMUL must be positive")
    elems_per_uop = (vlmax // lmul) & _UINT32_MASK
    remaining = (vl - elems_per_uop * (uop_id - 1)) & _UINT32_MASK
    active = min(elems_per_uop, remaining)
    return active // adder_num


class _Kind(enum.Enum):
    ISSUE = enum.auto()
    EXECUTE = enum.auto()
    COMPLETE = enum.auto()


@dataclass(eq=False)
class _Event:
    due: int
    seq: int
    kind: _Kind
    inst: Inst


class ExecutePipe:
    """Executes one instruction at a time and reports its completion.

    Time advances with :meth:`step`. ``send_credits`` receives one credit per
    completed instruction; ``send_vset`` receives blocking vset instructions
    once they have executed so decode can resume.
    """

    def __init__(
        self,
        name: str = "exe0",
        *,
        iq_name: str = "",
        ignore_inst_execute_time: bool = False,
        execute_time: int = 1,
        enable_random_misprediction: bool = False,
        contains_branch_unit: bool = False,
        valu_adder_num: int = 8,
        send_credits: Callable[[int], None] | None = None,
        send_vset: Callable[[Inst], None] | None = None,
        rng: _RandomSource | None = None,
    ) -> None:
        self.name = name
        self.iq_name = iq_name
        self.ignore_inst_execute_time = ignore_inst_execute_time
        self.execute_time = execute_time
        self.enable_random_misprediction = enable_random_misprediction and contains_branch_unit
        self.valu_adder_num = valu_adder_num
        self._send_credits = send_credits
        self._send_vset = send_vset
        self._rng: _RandomSource = rng if rng is not None else random.Random()

        self.cycle = 0
        self.total_insts_executed = 0
        self.scoreboard_ready: dict[str, int] = {}
        self._busy = False
        self._num_passes_needed = 0
        self._curr_num_pass = 0
        self._events: list[_Event] = []
        self._seq = 0

    @property
    def busy(self) -> bool:
        """Whether an instruction occupies the pipe."""
        return self._busy

    @property
    def pending_events(self) -> int:
        """Issue, execute and completion events not yet fired."""
        return len(self._events)

    def can_accept(self) -> bool:
        """Whether the pipe is free for a new instruction."""
        return not self._busy

    def _schedule(self, kind: _Kind, inst: Inst, delay: int) -> None:
        self._seq += 1
        self._events.append(_Event(self.cycle + delay, self._seq, kind, inst))

    def insert_inst(self, inst: Inst) -> None:
        """Start executing ``inst`` (or its next pass) in this pipe."""
        if self._num_passes_needed == 0:
            inst.status = InstStatus.SCHEDULED
            if self._busy:
                raise ExecutePipeError(
                    "ExecutePipe is receiving a new instruction when it's already busy!!"
                )

        exe_time = self.execute_time if self.ignore_inst_execute_time else inst.execute_time

        if not inst.is_vset and inst.is_vector and inst.pipe is TargetPipe.VINT:
            if self._num_passes_needed == 0:
                num_passes = passes_needed(
                    inst.vl, inst.vlmax, inst.lmul, inst.uop_id, self.valu_adder_num
                )
                if num_passes > 1:
                    self._num_passes_needed = num_passes
                    self._curr_num_pass = 1
                    log.debug(
                        "Inst %s needs %d passes, beginning pass %d",
                        inst, num_passes, self._curr_num_pass,
                    )
            else:
                self._curr_num_pass += 1
                if self._curr_num_pass > self._num_passes_needed:
                    raise ExecutePipeError(
                        "Instruction with multiple passes incremented for more than the "
                        f"total number of passes needed for instruction: {inst}"
                    )
                log.debug(
                    "Inst %s beginning pass %d of %d",
                    inst, self._curr_num_pass, self._num_passes_needed,
                )

        log.debug("Executing: %s for %d", inst, exe_time + self.cycle)
        if exe_time == 0:
            raise ExecutePipeError(f"instruction {inst} has an execute time of zero")

        self._busy = True
        self._schedule(_Kind.EXECUTE, inst, exe_time)

    def execute_inst(self, inst: Inst) -> None:
        """Finish a pass of ``inst``; after the last pass, schedule completion."""
        if self._num_passes_needed != 0 and self._curr_num_pass < self._num_passes_needed:
            self._schedule(_Kind.ISSUE, inst, 0)
            return

        if self._num_passes_needed != 0:
            self._curr_num_pass = 0
            self._num_passes_needed = 0

        log.debug("Executed inst: %s", inst)
        if inst.is_vset and inst.blocking_vset:
            log.debug(
                "Forwarding VSET CSRs back to decode, LMUL: %d SEW: %d VTA: %s VL: %d",
                inst.lmul, inst.sew, inst.vta, inst.vl,
            )
            if self._send_vset is not None:
                self._send_vset(inst)

        if inst.dest_regfile is not None:
            current = self.scoreboard_ready.get(inst.dest_regfile, 0)
            self.scoreboard_ready[inst.dest_regfile] = current | inst.dest_bits

        if self.enable_random_misprediction and inst.is_branch:
            if self._rng.randrange(_MISPREDICT_ONE_IN) == 0:
                log.debug("Randomly injecting a mispredicted branch: %s", inst)
                inst.mispredicted = True

        self._busy = False
        self.total_insts_executed += 1
        self._schedule(_Kind.COMPLETE, inst, 1)

    def complete_inst(self, inst: Inst) -> None:
        """Mark ``inst`` completed and return a credit to the scheduler."""
        inst.status = InstStatus.COMPLETED
        log.debug("Completing inst: %s", inst)
        if self._send_credits is not None:
            self._send_credits(1)

    def flush(self, criteria: FlushCriteria) -> None:
        """Cancel pending passes and the flushed instructions' execution and completion."""
        log.debug("Got flush for criteria: %s", criteria)
        self._events = [
            event
            for event in self._events
            if event.kind is not _Kind.ISSUE and not criteria.included_in_flush(event.inst)
        ]
        if not any(event.kind is _Kind.EXECUTE for event in self._events):
            self._busy = False

    def step(self) -> list[Inst]:
        """Advance one cycle, firing every event due; return instructions completed."""
        self.cycle += 1
        completed: list[Inst] = []
        while True:
            due = [event for event in self._events if event.due <= self.cycle]
            if not due:
                return completed
            event = min(due, key=lambda e: (e.due, e.seq))
            self._events.remove(event)
            if event.kind is _Kind.ISSUE:
                self.insert_inst(event.inst)
            elif event.kind is _Kind.EXECUTE:
                self.execute_inst(event.inst)
            else:
                self.complete_inst(event.inst)
                completed.append(event.inst)

    def __repr__(self) -> str:
        return f"ExecutePipe({self.name!r}, busy={self._busy})"