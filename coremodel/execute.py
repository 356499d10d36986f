"""Layout of issue queues and execution pipes under the execute unit."""

from __future__ import annotations

from dataclasses import dataclass, field

from coremodel.pipes import CoreExtensions, TargetPipe, TopologyError, parse_target_pipe, pipe_range

ISSUE_QUEUE_GROUP = "Issue_Queue"


@dataclass(eq=False)
class ExecutePipeLayout:
    """An execution pipe node and the issue queue that feeds it."""

    name: str
    group_name: str
    group_idx: int
    human_name: str
    iq_name: str
    contains_branch_unit: bool = False


@dataclass(eq=False)
class IssueQueueLayout:
    """An issue queue node, its execution pipes and its target-pipe mapping."""

    name: str
    group_idx: int
    group_name: str = ISSUE_QUEUE_GROUP
    human_name: str = ISSUE_QUEUE_GROUP
    exe_pipes: dict[str, ExecutePipeLayout] = field(default_factory=dict)
    pipe_mapping: dict[TargetPipe, list[ExecutePipeLayout]] = field(default_factory=dict)

    def map_target(self, target: TargetPipe, pipe: ExecutePipeLayout) -> None:
        """Record that ``pipe`` in this queue can execute ``target``."""
        self.pipe_mapping.setdefault(target, []).append(pipe)


class ExecuteFactory:
    """Creates the issue queues and execution pipes of one core's execute unit."""

    def __init__(self) -> None:
        self._extensions: CoreExtensions | None = None
        self.issue_queues: list[IssueQueueLayout] = []
        self.exe_pipes: list[ExecutePipeLayout] = []

    def configure(self, extensions: CoreExtensions) -> None:
        """Create issue queue and execution pipe nodes from the core extensions."""
        self._extensions = extensions
        iq_map = extensions.issue_queue_to_pipe_map

        self.issue_queues = [
            IssueQueueLayout(name=extensions.issue_queue_name(iq_idx), group_idx=iq_idx)
            for iq_idx in range(len(iq_map))
        ]

        pipe_to_iq = extensions.pipe_to_issue_queue()
        self.exe_pipes = []
        for pipe_idx, targets in enumerate(extensions.pipelines):
            if pipe_idx >= len(pipe_to_iq):
                raise TopologyError(f"execution pipe {pipe_idx} is not fed by any issue queue")
            iq_name = extensions.issue_queue_name(pipe_to_iq[pipe_idx])
            unit_name = extensions.exe_pipe_name(pipe_idx)
            self.exe_pipes.append(
                ExecutePipeLayout(
                    name=unit_name,
                    group_name=f"{iq_name}_group",
                    group_idx=pipe_idx,
                    human_name=f"{unit_name} Execution Pipe",
                    iq_name=iq_name,
                    contains_branch_unit="br" in targets,
                )
            )

    def bind_late(self) -> None:
        """Attach execution pipes to their issue queues and map each target pipe."""
        if self._extensions is None:
            raise RuntimeError("the execute factory has not been configured")
        ext = self._extensions
        pipelines = ext.pipelines
        exe_pipe_to_iq: dict[str, int] = {}

        for iq_num, entry in enumerate(ext.issue_queue_to_pipe_map):
            for pipe_idx in pipe_range(entry):
                exe_name = ext.exe_pipe_name(pipe_idx)
                for exe_pipe in self.exe_pipes:
                    if exe_pipe.name == exe_name:
                        self.issue_queues[iq_num].exe_pipes[exe_name] = exe_pipe
                        exe_pipe_to_iq[exe_name] = iq_num

        for entry in ext.issue_queue_to_pipe_map:
            for pipe_idx in pipe_range(entry):
                if not 0 <= pipe_idx < len(pipelines):
                    raise TopologyError(f"issue queue maps to undefined pipe {pipe_idx}")
                exe_name = ext.exe_pipe_name(pipe_idx)
                for target_name in pipelines[pipe_idx]:
                    target = parse_target_pipe(target_name)
                    try:
                        queue = self.issue_queues[exe_pipe_to_iq[exe_name]]
                    except KeyError:
                        raise TopologyError(
                            f"execution pipe {exe_name!r} is not attached to an issue queue"
                        ) from None
                    queue.map_target(target, queue.exe_pipes[exe_name])

    def delete_subtree(self) -> None:
        """Destroy the created execution pipes and issue queues."""
        self.exe_pipes.clear()
        self.issue_queues.clear()