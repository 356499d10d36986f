# coremodel

Building blocks for a cycle-level performance model of an out-of-order
processor core. The package describes how a core is put together and
models the behaviour of some of its units. It is a library only and
installs no commands.

## Modules

- `coremodel.pipes`: shared types. `TargetPipe` lists the execution pipe
  targets and `parse_target_pipe("int")` turns a topology name into one.
  `Inst` is an instruction and `InstStatus` its lifecycle status.
  `FlushCriteria` decides which instructions a flush removes. `CoreExtensions`
  holds a core's `pipelines`, `issue_queue_to_pipe_map` and optional
  `issue_queue_rename` / `exe_pipe_rename`. `pipe_range(["1", "3"])` gives
  the pipe indices an issue queue covers. Inconsistent topologies raise
  `TopologyError`.
- `coremodel.topology`: `UnitInfo` and `PortConnectionInfo` describe units
  and port bindings, with `*` standing for the core index.
  `allocate_topology("simple")` returns a `CoreTopologySimple`. Its
  `bind_tree(core_extensions)` returns the extra port bindings between
  dispatch, decode, the flush manager and the execution pipes. Any other
  topology name raises `TopologyError`.
- `coremodel.execute`: `ExecuteFactory.configure(extensions)` lays out the
  `IssueQueueLayout` and `ExecutePipeLayout` nodes. `bind_late()` attaches the
  pipes to their issue queues and maps each target pipe to the pipes that
  serve it.
- `coremodel.dispatcher`: `Dispatcher` tracks the credits and the per-cycle
  bandwidth towards one execution unit. It raises `DispatcherError` when it
  is asked to accept without credits or bandwidth.
- `coremodel.execute_pipe`: `ExecutePipe` executes one instruction at a time
  with a fixed or per-instruction latency. Time advances with `step()`.
  Vector integer uops take the number of passes given by `passes_needed`.
  Flushes cancel the flushed instructions.
- `coremodel.cache`: `CacheFuncModel` is a set-associative functional cache
  with `TreePLRU` replacement. It offers `preload` and `dump_preload`.
- `coremodel.dcache`: `DCache` is a level-1 data cache built on it. It has a
  lookup / data-read / deallocate pipeline, a file of `MSHREntry` records
  and refills from L2. `MemoryAccess` carries a request and its
  `CacheState`.

## Installing

```
pip install .
```

The tests need pytest:

```
pip install ".[test]"
pytest
```

## Examples

```python
from coremodel.pipes import CoreExtensions, TargetPipe
from coremodel.topology import allocate_topology
from coremodel.execute import ExecuteFactory

ext = CoreExtensions(
    pipelines=[["int"], ["int", "div"], ["br"]],
    issue_queue_to_pipe_map=[["0", "1"], ["2"]],
)

topology = allocate_topology("simple")
bindings = topology.bind_tree(ext)
print(bindings[0])
# ('cpu.core0.execute.exe0.ports.in_reorder_flush',
#  'cpu.core0.flushmanager.ports.out_flush_upper')

execute = ExecuteFactory()
execute.configure(ext)
execute.bind_late()
iq0 = execute.issue_queues[0]
print([p.name for p in iq0.pipe_mapping[TargetPipe.INT]])   # ['exe0', 'exe1']
```

```python
from coremodel.cache import CacheFuncModel

cache = CacheFuncModel(cache_size_kb=32, line_size=64, associativity=8)
cache.preload([0x1000, 0x2040])
print(cache.peek_line(0x1000) is not None)   # True
print(cache.dump_preload())   # {'lines': [{'pa': '0x1000'}, {'pa': '0x2040'}]}
```

```python
from coremodel.dcache import DCache, MemoryAccess
from coremodel.pipes import Inst

dcache = DCache()
access = MemoryAccess(Inst(unique_id=1, target_addr=0x80))
dcache.receive_lsu_request(access)
dcache.step()
print(dcache.dl1_cache_misses, dcache.l2_requests == [access])   # 1 True
```

## What the package does not do

The package has no builder that turns a topology into a tree of resource
nodes for several cores. It has no dispatch unit with a dispatch queue, ROB
credits and stall statistics; `Dispatcher` models only one connection to an
execution unit. It has no fetch, decode, rename, load-store or retire units,
and it does not drive a whole core over a workload. Each unit here is driven
by calling its methods and `step()` directly.