import pytest

from coremodel.execute_pipe import ExecutePipe, ExecutePipeError, passes_needed
from coremodel.pipes import FlushCriteria, Inst, InstStatus, TargetPipe


class _AlwaysZero:
    def randrange(self, stop):
        return 0


class _NeverZero:
    def randrange(self, stop):
        return stop - 1


def _run(pipe, cycles):
    done = []
    for _ in range(cycles):
        done.extend(pipe.step())
    return done


def test_passes_needed_zero_when_fewer_elements_than_adders():
    assert passes_needed(4, 4, 1, 1, 8) == 0


def test_passes_needed_single_pass_when_elements_equal_adders():
    assert passes_needed(8, 8, 1, 1, 8) == 1


def test_passes_needed_tail_uop_has_fewer_passes():
    first = passes_needed(40, 64, 2, 1, 8)
    second = passes_needed(40, 64, 2, 2, 8)
    assert first > second


def test_passes_needed_rejects_zero_adders():
    with pytest.raises(ValueError):
        passes_needed(8, 8, 1, 1, 0)


def test_scalar_instruction_completes_after_latency():
    credits = []
    pipe = ExecutePipe(send_credits=credits.append)
    inst = Inst(unique_id=1, pipe=TargetPipe.INT, execute_time=3)
    pipe.insert_inst(inst)
    assert inst.status is InstStatus.SCHEDULED
    assert pipe.can_accept() is False
    assert _run(pipe, 3) == []
    assert pipe.can_accept() is True
    assert _run(pipe, 1) == [inst]
    assert inst.status is InstStatus.COMPLETED
    assert credits == [1]
    assert pipe.total_insts_executed == 1


def test_ignore_inst_execute_time_uses_parameter():
    pipe = ExecutePipe(ignore_inst_execute_time=True, execute_time=2)
    inst = Inst(unique_id=1, pipe=TargetPipe.INT, execute_time=10)
    pipe.insert_inst(inst)
    assert _run(pipe, 3) == [inst]


def test_insert_while_busy_raises():
    pipe = ExecutePipe()
    pipe.insert_inst(Inst(unique_id=1, pipe=TargetPipe.INT))
    with pytest.raises(ExecutePipeError):
        pipe.insert_inst(Inst(unique_id=2, pipe=TargetPipe.INT))


def test_zero_execute_time_raises():
    pipe = ExecutePipe()
    with pytest.raises(ExecutePipeError):
        pipe.insert_inst(Inst(unique_id=1, pipe=TargetPipe.INT, execute_time=0))


def test_vector_multi_pass_takes_one_latency_per_pass():
    pipe = ExecutePipe(valu_adder_num=8)
    inst = Inst(unique_id=1, pipe=TargetPipe.VINT, is_vector=True, vl=32, vlmax=32, lmul=1)
    passes = passes_needed(32, 32, 1, 1, 8)
    assert passes > 1
    pipe.insert_inst(inst)
    assert _run(pipe, passes) == []
    assert pipe.busy is False
    assert _run(pipe, 1) == [inst]
    assert pipe.total_insts_executed == 1


def test_blocking_vset_is_forwarded():
    vsets = []
    pipe = ExecutePipe(send_vset=vsets.append)
    inst = Inst(unique_id=1, pipe=TargetPipe.VSET, is_vset=True, is_vector=True, blocking_vset=True)
    pipe.insert_inst(inst)
    pipe.step()
    assert vsets == [inst]


def test_non_blocking_vset_not_forwarded():
    vsets = []
    pipe = ExecutePipe(send_vset=vsets.append)
    pipe.insert_inst(Inst(unique_id=1, pipe=TargetPipe.VSET, is_vset=True, is_vector=True))
    pipe.step()
    assert vsets == []


def test_destination_bits_marked_ready():
    pipe = ExecutePipe()
    pipe.insert_inst(Inst(unique_id=1, pipe=TargetPipe.INT, dest_regfile="integer", dest_bits=0b100))
    pipe.step()
    assert pipe.scoreboard_ready == {"integer": 0b100}


def test_random_misprediction_requires_branch_unit():
    pipe = ExecutePipe(enable_random_misprediction=True, contains_branch_unit=False, rng=_AlwaysZero())
    inst = Inst(unique_id=1, pipe=TargetPipe.BR, is_branch=True)
    pipe.insert_inst(inst)
    pipe.step()
    assert inst.mispredicted is False


def test_random_misprediction_injected():
    pipe = ExecutePipe(enable_random_misprediction=True, contains_branch_unit=True, rng=_AlwaysZero())
    inst = Inst(unique_id=1, pipe=TargetPipe.BR, is_branch=True)
    pipe.insert_inst(inst)
    pipe.step()
    assert inst.mispredicted is True


def test_random_misprediction_not_drawn():
    pipe = ExecutePipe(enable_random_misprediction=True, contains_branch_unit=True, rng=_NeverZero())
    inst = Inst(unique_id=1, pipe=TargetPipe.BR, is_branch=True)
    pipe.insert_inst(inst)
    pipe.step()
    assert inst.mispredicted is False


def test_flush_cancels_younger_instruction():
    pipe = ExecutePipe()
    inst = Inst(unique_id=5, pipe=TargetPipe.INT, execute_time=4)
    pipe.insert_inst(inst)
    pipe.flush(FlushCriteria(Inst(unique_id=3)))
    assert pipe.busy is False
    assert pipe.pending_events == 0
    assert _run(pipe, 6) == []


def test_flush_keeps_older_instruction():
    pipe = ExecutePipe()
    inst = Inst(unique_id=2, pipe=TargetPipe.INT, execute_time=2)
    pipe.insert_inst(inst)
    pipe.flush(FlushCriteria(Inst(unique_id=3)))
    assert pipe.busy is True
    assert _run(pipe, 3) == [inst]


def test_inclusive_flush_cancels_flush_point():
    pipe = ExecutePipe()
    inst = Inst(unique_id=3, pipe=TargetPipe.INT, execute_time=2)
    pipe.insert_inst(inst)
    pipe.flush(FlushCriteria(Inst(unique_id=3), inclusive=True))
    assert _run(pipe, 4) == []