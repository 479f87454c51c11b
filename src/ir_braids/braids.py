from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

from .core import BasicBlock, Instruction, RenderOptions
from .graph import DependencyGraphView


LOG = logging.getLogger(__name__)

_UNASSIGNED = -1


@dataclass
class BraidPartition:
    block: BasicBlock
    labels: List[int]
    count: int
    graph: DependencyGraphView

    def braid_of(self, instruction: Instruction) -> int:
        return self.labels[self.graph.ordinal(instruction)]

    def members(self, braid_id: int) -> List[Instruction]:
        return [
            instruction
            for instruction, label in zip(self.block.instructions, self.labels)
            if label == braid_id
        ]

    def braids(self) -> List[List[Instruction]]:
        return [self.members(braid_id) for braid_id in range(self.count)]


def partition_block(block: BasicBlock, graph: Optional[DependencyGraphView] = None) -> BraidPartition:
    """Split a block into braids, the connected components of its def/use graph.

    Braid ids are dense and numbered in the order their first instruction
    appears in the block.
    """
    graph = graph or DependencyGraphView(block)
    labels = [_UNASSIGNED] * len(graph)
    count = 0
    worklist: List[Instruction] = []
    for seed in block.instructions:
        if labels[graph.ordinal(seed)] != _UNASSIGNED:
            continue
        labels[graph.ordinal(seed)] = count
        count += 1
        worklist.append(seed)
        while worklist:
            node = worklist.pop()
            braid_id = labels[graph.ordinal(node)]
            for neighbor in graph.neighbors(node):
                ordinal = graph.ordinal(neighbor)
                if labels[ordinal] == _UNASSIGNED:
                    labels[ordinal] = braid_id
                    worklist.append(neighbor)
    LOG.debug("block '%s': %d instruction(s), %d braid(s)", block.label, block.size, count)
    return BraidPartition(block=block, labels=labels, count=count, graph=graph)


def format_braids(partition: BraidPartition) -> List[str]:
    lines: List[str] = []
    for braid_id in range(partition.count):
        for instruction in partition.members(braid_id):
            lines.append(f"braid:{braid_id} {instruction.text}")
    return lines


def block_report_lines(partition: BraidPartition, options: Optional[RenderOptions] = None) -> List[str]:
    options = options or RenderOptions()
    block = partition.block
    name = block.display_name(options)
    lines = ["", f"  Basic block (name={name}) has {block.size} instructions."]
    if options.list_instructions:
        lines.extend(f"    {instruction.text}" for instruction in block.instructions)
    lines.append("")
    lines.append(f"  Basic block (name={name}) has {partition.count} braids.")
    lines.extend(f"    {line}" for line in format_braids(partition))
    return lines
