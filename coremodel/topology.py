"""Core topologies: the units a core is built from and how their ports connect."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence, Union

from coremodel.pipes import CoreExtensions, TopologyError, pipe_range

GROUP_NAME_NONE = ""
GROUP_IDX_NONE = 0xFFFFFFFF

PortBinding = tuple[str, str]
ExtensionsArg = Union[CoreExtensions, Sequence[CoreExtensions], Mapping[int, CoreExtensions]]


@dataclass(frozen=True)
class UnitInfo:
    """A resource unit in the device tree; ``*`` in names stands for the core index."""

    name: str
    parent_name: str
    human_name: str
    group_name: str
    group_id: int
    factory: str
    is_private_subtree: bool = False


@dataclass(frozen=True)
class PortConnectionInfo:
    """A binding between an output port and an input port."""

    output_port_name: str
    input_port_name: str


@dataclass
class CPUTopology:
    """Describes the units and port connections of a processor."""

    num_cores: int = 1
    topology_name: str = ""
    units: list[UnitInfo] = field(default_factory=list)
    port_connections: list[PortConnectionInfo] = field(default_factory=list)

    def bind_tree(self, core_extensions: ExtensionsArg) -> list[PortBinding]:
        """Topology-specific bindings made after the generic ones; none by default."""
        return []


def _extensions_for(core_extensions: ExtensionsArg, core_num: int) -> CoreExtensions:
    if isinstance(core_extensions, CoreExtensions):
        return core_extensions
    try:
        return core_extensions[core_num]
    except (IndexError, KeyError):
        raise TopologyError(f"no core extensions for core {core_num}") from None


def _unit(name: str, parent: str, human: str, factory: str, private: bool = False) -> UnitInfo:
    return UnitInfo(name, parent, human, GROUP_NAME_NONE, GROUP_IDX_NONE, factory, private)


_SIMPLE_PORTS = (
    ("cpu.core*.fetch.ports.out_fetch_queue_write", "cpu.core*.decode.ports.in_fetch_queue_write"),
    ("cpu.core*.fetch.ports.in_fetch_queue_credits", "cpu.core*.decode.ports.out_fetch_queue_credits"),
    ("cpu.core*.decode.ports.out_uop_queue_write", "cpu.core*.rename.ports.in_uop_queue_append"),
    ("cpu.core*.decode.ports.in_uop_queue_credits", "cpu.core*.rename.ports.out_uop_queue_credits"),
    ("cpu.core*.rename.ports.out_dispatch_queue_write", "cpu.core*.dispatch.ports.in_dispatch_queue_write"),
    ("cpu.core*.rename.ports.in_dispatch_queue_credits", "cpu.core*.dispatch.ports.out_dispatch_queue_credits"),
    ("cpu.core*.dispatch.ports.out_lsu_write", "cpu.core*.lsu.ports.in_lsu_insts"),
    ("cpu.core*.dispatch.ports.in_lsu_credits", "cpu.core*.lsu.ports.out_lsu_credits"),
    ("cpu.core*.dispatch.ports.out_reorder_buffer_write", "cpu.core*.rob.ports.in_reorder_buffer_write"),
    ("cpu.core*.dispatch.ports.in_reorder_buffer_credits", "cpu.core*.rob.ports.out_reorder_buffer_credits"),
    ("cpu.core*.lsu.ports.out_cache_lookup_req", "cpu.core*.dcache.ports.in_lsu_lookup_req"),
    ("cpu.core*.dcache.ports.out_lsu_lookup_ack", "cpu.core*.lsu.ports.in_cache_lookup_ack"),
    ("cpu.core*.dcache.ports.out_lsu_lookup_req", "cpu.core*.lsu.ports.in_cache_lookup_req"),
    ("cpu.core*.dcache.ports.out_lsu_free_req", "cpu.core*.lsu.ports.in_cache_free_req"),
    ("cpu.core*.dcache.ports.out_l2cache_req", "cpu.core*.l2cache.ports.in_dcache_l2cache_req"),
    ("cpu.core*.dcache.ports.in_l2cache_ack", "cpu.core*.l2cache.ports.out_l2cache_dcache_ack"),
    ("cpu.core*.dcache.ports.in_l2cache_resp", "cpu.core*.l2cache.ports.out_l2cache_dcache_resp"),
    ("cpu.core*.l2cache.ports.out_l2cache_biu_req", "cpu.core*.biu.ports.in_biu_req"),
    ("cpu.core*.biu.ports.out_biu_ack", "cpu.core*.l2cache.ports.in_biu_l2cache_ack"),
    ("cpu.core*.biu.ports.out_biu_resp", "cpu.core*.l2cache.ports.in_biu_l2cache_resp"),
    ("cpu.core*.lsu.ports.out_mmu_lookup_req", "cpu.core*.mmu.ports.in_lsu_lookup_req"),
    ("cpu.core*.mmu.ports.out_lsu_lookup_ack", "cpu.core*.lsu.ports.in_mmu_lookup_ack"),
    ("cpu.core*.mmu.ports.out_lsu_lookup_req", "cpu.core*.lsu.ports.in_mmu_lookup_req"),
    ("cpu.core*.mmu.ports.out_lsu_free_req", "cpu.core*.lsu.ports.in_mmu_free_req"),
    ("cpu.core*.biu.ports.out_mss_req_sync", "cpu.core*.mss.ports.in_mss_req_sync"),
    ("cpu.core*.biu.ports.in_mss_ack_sync", "cpu.core*.mss.ports.out_mss_ack_sync"),
    ("cpu.core*.rob.ports.out_retire_flush", "cpu.core*.flushmanager.ports.in_flush_request"),
    ("cpu.core*.rob.ports.out_rob_retire_ack", "cpu.core*.lsu.ports.in_rob_retire_ack"),
    ("cpu.core*.rob.ports.out_rob_retire_ack_rename", "cpu.core*.rename.ports.in_rename_retire_ack"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.dispatch.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.decode.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_lower", "cpu.core*.decode.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.rename.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.rob.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.lsu.ports.in_reorder_flush"),
    ("cpu.core*.flushmanager.ports.out_flush_upper", "cpu.core*.fetch.ports.in_fetch_flush_redirect"),
    ("cpu.core*.flushmanager.ports.out_flush_lower", "cpu.core*.fetch.ports.in_fetch_flush_redirect"),
)


def _simple_units() -> list[UnitInfo]:
    return [
        _unit("core*", "cpu", "Core *", "core"),
        _unit("flushmanager", "cpu.core*", "Flush Manager", "flushmanager"),
        _unit("fetch", "cpu.core*", "Fetch Unit", "fetch"),
        _unit("decode", "cpu.core*", "Decode Unit", "decode"),
        _unit("vec_uop_gen", "cpu.core*.decode", "Vector Uop Generator", "vec_uop_gen"),
        _unit("rename", "cpu.core*", "Rename Unit", "rename"),
        _unit("dispatch", "cpu.core*", "Dispatch Unit", "dispatch"),
        UnitInfo("execute", "cpu.core*", "Execution Pipes", "execute", 0, "execute"),
        _unit("dcache", "cpu.core*", "Data Cache Unit", "dcache"),
        _unit("mmu", "cpu.core*", "MMU Unit", "mmu"),
        _unit("tlb", "cpu.core*.mmu", "TLB Unit", "tlb", private=True),
        _unit("lsu", "cpu.core*", "Load-Store Unit", "lsu"),
        _unit("l2cache", "cpu.core*", "L2Cache Unit", "l2cache"),
        _unit("biu", "cpu.core*", "Bus Interface Unit", "biu"),
        _unit("mss", "cpu.core*", "Memory Sub-System", "mss"),
        _unit("rob", "cpu.core*", "ROB Unit", "rob"),
        _unit("preloader", "cpu.core*", "Preloader Facility", "preloader"),
        _unit("mavis", "cpu.core*", "Mavis Decoding Functional Unit", "mavis"),
    ]


@dataclass
class CoreTopologySimple(CPUTopology):
    """The simple single-cluster core topology."""

    def __post_init__(self) -> None:
        if not self.units:
            self.units = _simple_units()
        if not self.port_connections:
            self.port_connections = [PortConnectionInfo(o, i) for o, i in _SIMPLE_PORTS]

    def bind_tree(self, core_extensions: ExtensionsArg) -> list[PortBinding]:
        """Bindings between dispatch, flush manager, decode and the execution pipes."""
        bindings: list[PortBinding] = []
        for core_num in range(self.num_cores):
            ext = _extensions_for(core_extensions, core_num)
            bindings.extend(self._bind_core(f"cpu.core{core_num}", ext))
        return bindings

    @staticmethod
    def _bind_core(core_node: str, ext: CoreExtensions) -> list[PortBinding]:
        bindings: list[PortBinding] = []
        dispatch_ports = f"{core_node}.dispatch.ports"
        flush_upper = f"{core_node}.flushmanager.ports.out_flush_upper"
        execute = f"{core_node}.execute"
        vset_in_decode = f"{core_node}.decode.ports.in_vset_inst"
        pipelines = ext.pipelines

        for pipe_idx in range(len(pipelines)):
            unit_name = ext.exe_pipe_name(pipe_idx)
            bindings.append((f"{execute}.{unit_name}.ports.in_reorder_flush", flush_upper))

        for iq_num, entry in enumerate(ext.issue_queue_to_pipe_map):
            iq_name = ext.issue_queue_name(iq_num)
            iq_ports = f"{execute}.{iq_name}.ports"
            bindings.append((f"{iq_ports}.out_scheduler_credits",
                             f"{dispatch_ports}.in_{iq_name}_credits"))
            bindings.append((f"{iq_ports}.in_execute_write",
                             f"{dispatch_ports}.out_{iq_name}_write"))
            exe_pipe_in = f"{iq_ports}.in_execute_pipe"

            for pipe_idx in pipe_range(entry):
                if not 0 <= pipe_idx < len(pipelines):
                    raise TopologyError(
                        f"issue queue {iq_name} maps to undefined pipe {pipe_idx}"
                    )
                targets = pipelines[pipe_idx]
                if len(set(targets)) != len(targets):
                    raise TopologyError("Duplicate pipe definitions, double check yaml file")
                exe_name = ext.exe_pipe_name(pipe_idx)
                bindings.append((exe_pipe_in, f"{execute}.{exe_name}.ports.out_execute_pipe"))
                if "vset" in targets:
                    bindings.append((vset_in_decode, f"{execute}.{exe_name}.ports.out_vset"))

            bindings.append((f"{iq_ports}.in_reorder_flush", flush_upper))
        return bindings


_TOPOLOGIES = {"simple": CoreTopologySimple}


def allocate_topology(name: str) -> CPUTopology:
    """Create the topology called ``name``."""
    try:
        cls = _TOPOLOGIES[name]
    except KeyError:
        raise TopologyError(f"This topology in unrecognized: {name}") from None
    return cls(topology_name=name)