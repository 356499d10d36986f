import pytest

from coremodel.pipes import CoreExtensions, TopologyError
from coremodel.topology import (
    GROUP_NAME_NONE,
    CoreTopologySimple,
    CPUTopology,
    PortConnectionInfo,
    UnitInfo,
    allocate_topology,
)


def _extensions(**kwargs):
    base = dict(
        pipelines=[["int"], ["int", "div"], ["vset"]],
        issue_queue_to_pipe_map=[["0"], ["1", "2"]],
    )
    base.update(kwargs)
    return CoreExtensions(**base)


def test_allocate_simple():
    topo = allocate_topology("simple")
    assert isinstance(topo, CoreTopologySimple)
    assert topo.topology_name == "simple"
    assert topo.num_cores == 1


def test_allocate_unknown_raises():
    with pytest.raises(TopologyError, match="unrecognized: bogus"):
        allocate_topology("bogus")


def test_units_layout():
    topo = CoreTopologySimple()
    names = [u.name for u in topo.units]
    assert names[0] == "core*"
    assert names[-1] == "mavis"
    assert len(names) == len(set(names))
    private = [u.name for u in topo.units if u.is_private_subtree]
    assert private == ["tlb"]
    execute = next(u for u in topo.units if u.name == "execute")
    assert execute.group_name == "execute"
    assert execute.group_id == 0
    others = [u for u in topo.units if u.name != "execute"]
    assert all(u.group_name == GROUP_NAME_NONE for u in others)


def test_unit_parents_reference_wildcard_core():
    topo = CoreTopologySimple()
    vec = next(u for u in topo.units if u.name == "vec_uop_gen")
    assert vec.parent_name == "cpu.core*.decode"
    assert isinstance(topo.units[0], UnitInfo)


def test_port_connections():
    topo = CoreTopologySimple()
    first = topo.port_connections[0]
    assert first == PortConnectionInfo(
        "cpu.core*.fetch.ports.out_fetch_queue_write",
        "cpu.core*.decode.ports.in_fetch_queue_write",
    )
    for conn in topo.port_connections:
        assert conn.output_port_name.startswith("cpu.core*.")
        assert ".ports." in conn.input_port_name


def test_base_bind_tree_is_empty():
    assert CPUTopology().bind_tree(_extensions()) == []


def test_bind_tree_single_core():
    topo = CoreTopologySimple()
    bindings = topo.bind_tree(_extensions())
    flush = "cpu.core0.flushmanager.ports.out_flush_upper"
    for exe in ("exe0", "exe1", "exe2"):
        assert (f"cpu.core0.execute.{exe}.ports.in_reorder_flush", flush) in bindings
    assert (
        "cpu.core0.execute.iq1.ports.out_scheduler_credits",
        "cpu.core0.dispatch.ports.in_iq1_credits",
    ) in bindings
    assert (
        "cpu.core0.execute.iq0.ports.in_execute_write",
        "cpu.core0.dispatch.ports.out_iq0_write",
    ) in bindings
    assert (
        "cpu.core0.execute.iq1.ports.in_execute_pipe",
        "cpu.core0.execute.exe2.ports.out_execute_pipe",
    ) in bindings
    vset = [b for b in bindings if b[0] == "cpu.core0.decode.ports.in_vset_inst"]
    assert vset == [("cpu.core0.decode.ports.in_vset_inst", "cpu.core0.execute.exe2.ports.out_vset")]
    assert ("cpu.core0.execute.iq1.ports.in_reorder_flush", flush) in bindings


def test_bind_tree_multiple_cores():
    topo = CoreTopologySimple(num_cores=2)
    bindings = topo.bind_tree(_extensions())
    core0 = [b for b in bindings if b[0].startswith("cpu.core0.")]
    core1 = [b for b in bindings if b[0].startswith("cpu.core1.")]
    assert len(core0) == len(core1)
    assert len(core0) + len(core1) == len(bindings)


def test_bind_tree_per_core_extensions():
    topo = CoreTopologySimple(num_cores=2)
    small = CoreExtensions(pipelines=[["int"]], issue_queue_to_pipe_map=[["0"]])
    bindings = topo.bind_tree([_extensions(), small])
    assert not any("cpu.core1.execute.exe1" in b[0] for b in bindings)
    assert any("cpu.core0.execute.exe1" in b[0] for b in bindings)


def test_bind_tree_renames():
    ext = _extensions(
        exe_pipe_rename=[["exe0", "alu0"], ["exe1", "alu1"], ["exe2", "vs0"]],
        issue_queue_rename=[["iq0", "int_q"], ["iq1", "mix_q"]],
    )
    bindings = CoreTopologySimple().bind_tree(ext)
    assert (
        "cpu.core0.execute.mix_q.ports.in_execute_pipe",
        "cpu.core0.execute.vs0.ports.out_execute_pipe",
    ) in bindings
    assert not any(".exe0." in b[0] or ".iq0." in b[0] for b in bindings)


def test_bind_tree_bad_rename_raises():
    ext = _extensions(exe_pipe_rename=[["exe1", "alu0"], ["exe0", "alu1"], ["exe2", "x"]])
    with pytest.raises(TopologyError, match="Rename mapping"):
        CoreTopologySimple().bind_tree(ext)


def test_bind_tree_duplicate_pipe_raises():
    ext = _extensions(pipelines=[["int", "int"], ["int"], ["vset"]])
    with pytest.raises(TopologyError, match="Duplicate pipe"):
        CoreTopologySimple().bind_tree(ext)


def test_bind_tree_missing_core_extensions_raises():
    with pytest.raises(TopologyError):
        CoreTopologySimple(num_cores=2).bind_tree([_extensions()])