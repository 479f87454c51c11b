from __future__ import annotations

import enum
import logging
import re
from typing import Iterable, List, Optional

from rich.text import Text

from .braids import BraidPartition, block_report_lines, partition_block
from .core import Document, Function, RenderOptions


LOG = logging.getLogger(__name__)

BRAID_COLORS = ["cyan", "magenta", "yellow", "light_green", "orange1", "deep_sky_blue1", "orchid", "red"]

_BRAID_TAG_RE = re.compile(r"^(\s*)(braid:(\d+))(\s.*)?$")
_SECTION_RE = re.compile(r"^\s*(Function:|Basic block \()")


class PreservedAnalyses(enum.Enum):
    NONE = "none"
    ALL = "all"


def braid_color(braid_id: int) -> str:
    return BRAID_COLORS[braid_id % len(BRAID_COLORS)]


def analyze_function(function: Function) -> List[BraidPartition]:
    return [partition_block(block) for block in function.blocks]


def function_header_lines(function: Function) -> List[str]:
    return [
        "",
        f"Function: {function.name}",
        f"  number of arguments: {function.arg_size}",
        f"  number of basic blocks: {function.size}",
    ]


def function_report_lines(function: Function, options: Optional[RenderOptions] = None) -> List[str]:
    lines = function_header_lines(function)
    # Each block is partitioned and reported before the next one is touched.
    for block in function.blocks:
        lines.extend(block_report_lines(partition_block(block), options))
    return lines


def render_report(lines: List[str], color: bool = True) -> Text:
    rendered = Text()
    for idx, line in enumerate(lines):
        if idx:
            rendered.append("\n")
        if not color:
            rendered.append(line)
            continue
        tag = _BRAID_TAG_RE.match(line)
        if tag:
            style = braid_color(int(tag.group(3)))
            rendered.append(tag.group(1))
            rendered.append(tag.group(2), style=f"bold {style}")
            rendered.append(tag.group(4) or "", style=style)
        elif _SECTION_RE.match(line):
            rendered.append(line, style="bold")
        else:
            rendered.append(line)
    return rendered


class BraidsPass:
    """Printing analysis over functions; never modifies its input."""

    name = "braids"

    def __init__(self, options: Optional[RenderOptions] = None) -> None:
        self.options = options or RenderOptions()
        self.lines: List[str] = []

    def run(self, function: Function) -> PreservedAnalyses:
        LOG.debug("running %s on @%s", self.name, function.name)
        self.lines.extend(function_report_lines(function, self.options))
        return PreservedAnalyses.ALL

    def run_on_function(self, function: Function) -> bool:
        self.run(function)
        return False


def document_report_lines(
    document: Document,
    options: Optional[RenderOptions] = None,
    function_names: Optional[Iterable[str]] = None,
) -> List[str]:
    wanted = set(function_names) if function_names else None
    braids = BraidsPass(options)
    for function in document.functions:
        if wanted is not None and function.name not in wanted:
            continue
        braids.run(function)
    return braids.lines
