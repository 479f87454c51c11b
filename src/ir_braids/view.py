from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from rich.text import Text

from .braids import BraidPartition, partition_block
from .core import Argument, BasicBlock, Document, Function, Instruction, RenderOptions
from .report import braid_color


@dataclass(frozen=True)
class ViewEntry:
    kind: str
    label: str
    block: BasicBlock
    instruction: Optional[Instruction] = None
    braid_id: Optional[int] = None


class BraidView:
    def __init__(self, document: Document, options: Optional[RenderOptions] = None) -> None:
        self.document = document
        self.options = options or RenderOptions()
        self._partitions: Dict[BasicBlock, BraidPartition] = {}

    def partition(self, block: BasicBlock) -> BraidPartition:
        partition = self._partitions.get(block)
        if partition is None:
            partition = partition_block(block)
            self._partitions[block] = partition
        return partition

    def entries(self, function: Function) -> List[ViewEntry]:
        entries: List[ViewEntry] = []
        for block in function.blocks:
            partition = self.partition(block)
            name = block.display_name(self.options) or "<unnamed>"
            entries.append(
                ViewEntry(
                    kind="block",
                    label=f"{name}: {block.size} instructions, {partition.count} braids",
                    block=block,
                )
            )
            if self.options.group_by_braid:
                ordered = [insn for members in partition.braids() for insn in members]
            else:
                ordered = list(block.instructions)
            for instruction in ordered:
                entries.append(
                    ViewEntry(
                        kind="inst",
                        label=self._instruction_label(instruction, partition),
                        block=block,
                        instruction=instruction,
                        braid_id=partition.braid_of(instruction),
                    )
                )
        return entries

    def styled_label(self, entry: ViewEntry) -> Text:
        if entry.kind == "block":
            return Text(entry.label, style="bold white on grey23")
        text = Text(entry.label)
        if entry.braid_id is not None:
            tag_start = entry.label.find("braid:")
            tag_end = entry.label.find(" ", tag_start)
            text.stylize(f"bold {braid_color(entry.braid_id)}", tag_start, tag_end)
        return text

    def _instruction_label(self, instruction: Instruction, partition: BraidPartition) -> str:
        label = f"  braid:{partition.braid_of(instruction)} {instruction.text}"
        if self.options.show_line_numbers:
            label = f"{instruction.source_index + 1:5d} | {label}"
        return label

    def details_for(self, instruction: Instruction) -> Text:
        block = instruction.parent
        if block is None:
            return Text(instruction.text)
        partition = self.partition(block)
        braid_id = partition.braid_of(instruction)
        members = partition.members(braid_id)
        graph = partition.graph

        parts: List[str] = []
        parts.append(f"Line {instruction.source_index + 1}")
        parts.append("")
        parts.append("Instruction")
        parts.append(instruction.text)
        parts.append("")
        parts.append("Braid")
        parts.append(f"braid:{braid_id} of {partition.count} in block {block.display_name(self.options) or '<unnamed>'}")
        parts.append(f"{len(members)} member(s)")
        parts.append("")
        parts.append("Operands")
        if not instruction.operands:
            parts.append("  (none)")
        for operand in instruction.operands:
            parts.append(f"  {_describe_value(operand, partition)}")
        parts.append("")
        parts.append("Users")
        if not instruction.users:
            parts.append("  (none)")
        for user in instruction.users:
            if user in graph:
                parts.append(f"  braid:{partition.braid_of(user)} {user.text}")
            else:
                parts.append(f"  external ({_block_title(user.parent)}) {user.text}")
        parts.append("")
        parts.append("Braid members")
        for member in members:
            marker = "*" if member is instruction else " "
            parts.append(f" {marker}{member.text}")
        return _highlight_details("\n".join(parts), braid_id)


def _describe_value(value, partition: BraidPartition) -> str:
    if isinstance(value, Instruction):
        if value in partition.graph:
            return f"braid:{partition.braid_of(value)} {value.text}"
        return f"external ({_block_title(value.parent)}) {value.text}"
    if isinstance(value, Argument):
        return f"argument {value}"
    if isinstance(value, BasicBlock):
        return f"label {value.ref}"
    return str(value)


def _block_title(block: Optional[BasicBlock]) -> str:
    if block is None:
        return "detached"
    return f"block {block.name or block.label or '<unnamed>'}"


def _highlight_details(text: str, braid_id: int) -> Text:
    rendered = Text(text)
    section_titles = {"Instruction", "Braid", "Operands", "Users", "Braid members"}
    offset = 0
    for line in text.splitlines(keepends=True):
        stripped = line.strip()
        if stripped in section_titles:
            rendered.stylize("bold white on grey23", offset, offset + len(line))
        elif stripped.startswith("braid:"):
            tag = stripped.split(" ", 1)[0]
            start = offset + line.find(tag)
            color = braid_color(int(tag.split(":", 1)[1]))
            rendered.stylize(f"bold {color}", start, start + len(tag))
        elif stripped.startswith("external"):
            rendered.stylize("grey50", offset, offset + len(line))
        elif stripped.startswith("*"):
            rendered.stylize(braid_color(braid_id), offset, offset + len(line))
        offset += len(line)
    return rendered
