from __future__ import annotations

from typing import Dict, Iterator, List

from .core import BasicBlock, Instruction


class NotInBlockError(LookupError):
    pass


class DependencyGraphView:
    """Read-only def/use view of one basic block.

    Nodes are the block's instructions. An operand or user that is not an
    instruction of the same block (argument, constant, label, or a value of
    another block) is not a node and is never returned.
    """

    def __init__(self, block: BasicBlock) -> None:
        self.block = block
        self._ordinals: Dict[Instruction, int] = {
            instruction: idx for idx, instruction in enumerate(block.instructions)
        }

    def ordinal(self, node: Instruction) -> int:
        try:
            return self._ordinals[node]
        except KeyError:
            raise NotInBlockError(
                f"instruction '{node}' is not a member of block '{self.block.label}'"
            ) from None

    def operand_neighbors(self, node: Instruction) -> List[Instruction]:
        self.ordinal(node)
        return [
            operand
            for operand in node.operands
            if isinstance(operand, Instruction) and operand in self._ordinals
        ]

    def user_neighbors(self, node: Instruction) -> List[Instruction]:
        self.ordinal(node)
        return [user for user in node.users if user in self._ordinals]

    def neighbors(self, node: Instruction) -> List[Instruction]:
        return self.operand_neighbors(node) + self.user_neighbors(node)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, Instruction) and node in self._ordinals

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.block.instructions)

    def __len__(self) -> int:
        return len(self._ordinals)
