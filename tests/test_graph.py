import pytest

from ir_braids.core import Document
from ir_braids.graph import DependencyGraphView, NotInBlockError


def _blocks(text: str):
    return Document.from_text(text).functions[0].blocks


def test_operand_neighbors_keep_slot_order_and_skip_external_values(sample_ir: str) -> None:
    entry, _, _ = _blocks(sample_ir)
    add, mul, cmp, br = entry.instructions
    graph = DependencyGraphView(entry)

    assert graph.operand_neighbors(add) == []
    assert graph.operand_neighbors(mul) == [add]
    assert graph.operand_neighbors(br) == [cmp]


def test_user_neighbors_stay_inside_the_block(sample_ir: str) -> None:
    entry, then, done = _blocks(sample_ir)
    add, mul, cmp, br = entry.instructions
    graph = DependencyGraphView(entry)

    assert len(mul.users) == 3
    assert graph.user_neighbors(mul) == [cmp]
    assert graph.user_neighbors(cmp) == [br]
    assert graph.user_neighbors(br) == []


def test_values_from_other_blocks_are_not_nodes(sample_ir: str) -> None:
    entry, then, done = _blocks(sample_ir)
    phi, ret = done.instructions
    graph = DependencyGraphView(done)

    assert graph.operand_neighbors(phi) == []
    assert graph.operand_neighbors(ret) == [phi]
    assert graph.user_neighbors(phi) == [ret]
    assert entry.instructions[1] not in graph


def test_neighbors_combines_both_directions(chain_ir: str) -> None:
    (entry,) = _blocks(chain_ir)
    c, d, ret = entry.instructions
    graph = DependencyGraphView(entry)

    assert graph.neighbors(d) == [c, ret]


def test_queries_outside_the_block_fail_fast(sample_ir: str) -> None:
    entry, then, _ = _blocks(sample_ir)
    graph = DependencyGraphView(entry)
    call = then.instructions[0]

    with pytest.raises(NotInBlockError):
        graph.operand_neighbors(call)
    with pytest.raises(NotInBlockError):
        graph.user_neighbors(call)
    with pytest.raises(NotInBlockError):
        graph.ordinal(call)


def test_ordinals_follow_block_order(sample_ir: str) -> None:
    entry, _, _ = _blocks(sample_ir)
    graph = DependencyGraphView(entry)

    assert [graph.ordinal(insn) for insn in entry.instructions] == [0, 1, 2, 3]
    assert len(graph) == 4
    assert list(graph) == entry.instructions
    assert "not an instruction" not in graph
