"""Execution pipe targets, instructions, flush criteria and core extensions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar


class TopologyError(ValueError):
    """Raised when a core topology description is inconsistent."""


class TargetPipe(enum.IntEnum):
    """Execution pipe an instruction is routed to."""

    BR = 0
    CMOV = 1
    DIV = 2
    FADDSUB = 3
    FLOAT = 4
    FMAC = 5
    I2F = 6
    F2I = 7
    INT = 8
    LSU = 9
    MUL = 10
    VINT = 11
    VFIXED = 12
    VMASK = 13
    VMUL = 14
    VDIV = 15
    VSET = 16
    SYS = 17
    UNKNOWN = 18

    def __str__(self) -> str:
        return self.name


N_TARGET_PIPES = len(TargetPipe) - 1

_PIPES_BY_NAME = {
    pipe.name.lower(): pipe for pipe in TargetPipe if pipe is not TargetPipe.UNKNOWN
}


def parse_target_pipe(name: str) -> TargetPipe:
    """Return the pipe target named in a topology file, such as ``"int"``."""
    try:
        return _PIPES_BY_NAME[name.strip().lower()]
    except KeyError:
        raise TopologyError(f"unknown pipe target: {name!r}") from None


def pipe_range(entry) -> range:
    """Return the execution pipe indices an issue queue entry covers.

    ``["0"]`` maps to pipe 0 alone; ``["1", "3"]`` maps to pipes 1 through 3.
    """
    if not entry:
        raise TopologyError("issue queue mapping entry is empty")
    try:
        start = int(entry[0])
        end = int(entry[1]) if len(entry) > 1 else start
    except ValueError:
        raise TopologyError(f"issue queue mapping is not numeric: {list(entry)!r}") from None
    return range(start, end + 1)


class InstStatus(enum.Enum):
    """Lifecycle status of an instruction."""

    FETCHED = enum.auto()
    DECODED = enum.auto()
    RENAMED = enum.auto()
    DISPATCHED = enum.auto()
    SCHEDULED = enum.auto()
    COMPLETED = enum.auto()
    RETIRED = enum.auto()
    FLUSHED = enum.auto()


@dataclass(eq=False)
class Inst:
    """An instruction travelling through the core model."""

    unique_id: int = 0
    pipe: TargetPipe = TargetPipe.UNKNOWN
    execute_time: int = 1
    status: InstStatus = InstStatus.FETCHED
    is_vector: bool = False
    is_vset: bool = False
    is_branch: bool = False
    is_store: bool = False
    blocking_vset: bool = False
    mispredicted: bool = False
    uop_id: int = 1
    vl: int = 0
    vlmax: int = 0
    lmul: int = 1
    sew: int = 8
    vta: bool = False
    dest_regfile: str | None = None
    dest_bits: int = 0
    target_addr: int = 0

    def __str__(self) -> str:
        return f"uid:{self.unique_id} {self.pipe} {self.status.name}"


@dataclass(frozen=True)
class FlushCriteria:
    """Describes which instructions a flush removes."""

    inst: Inst
    inclusive: bool = False

    def included_in_flush(self, inst: Inst) -> bool:
        """Whether ``inst`` is younger than (or, if inclusive, equal to) the flush point."""
        if self.inclusive:
            return inst.unique_id >= self.inst.unique_id
        return inst.unique_id > self.inst.unique_id

    def __str__(self) -> str:
        kind = "inclusive" if self.inclusive else "exclusive"
        return f"{kind} flush at uid:{self.inst.unique_id}"


_Topology = list[list[str]]


@dataclass
class CoreExtensions:
    """Per-core topology preferences shared by dispatch and execute."""

    name: ClassVar[str] = "core_extensions"

    execution_topology: _Topology = field(default_factory=list)
    pipelines: _Topology = field(default_factory=list)
    issue_queue_to_pipe_map: _Topology = field(default_factory=list)
    exe_pipe_rename: _Topology = field(default_factory=list)
    issue_queue_rename: _Topology = field(default_factory=list)

    _PARAMETERS: ClassVar[tuple[str, ...]] = (
        "execution_topology",
        "pipelines",
        "issue_queue_to_pipe_map",
        "exe_pipe_rename",
        "issue_queue_rename",
    )

    def get(self, name: str) -> _Topology:
        """Return the topology parameter called ``name``."""
        if name not in self._PARAMETERS:
            raise TopologyError(f"unknown core extension parameter: {name!r}")
        return getattr(self, name)

    @staticmethod
    def _renamed(default: str, rename: _Topology, index: int, what: str) -> str:
        if not rename:
            return default
        if index >= len(rename) or len(rename[index]) < 2 or rename[index][0] != default:
            raise TopologyError(
                f"Rename mapping for {what} is not in order or the original unit name "
                f"is not equal to the unit name, check spelling! (expected {default!r})"
            )
        return rename[index][1]

    def issue_queue_name(self, index: int) -> str:
        """Name of issue queue ``index``, after any rename."""
        return self._renamed(f"iq{index}", self.issue_queue_rename, index, "issue queue")

    def exe_pipe_name(self, index: int) -> str:
        """Name of execution pipe ``index``, after any rename."""
        return self._renamed(f"exe{index}", self.exe_pipe_rename, index, "execute pipe")

    def pipe_to_issue_queue(self) -> list[int]:
        """For each execution pipe, in mapping order, the issue queue feeding it."""
        return [
            iq_num
            for iq_num, entry in enumerate(self.issue_queue_to_pipe_map)
            for _ in pipe_range(entry)
        ]