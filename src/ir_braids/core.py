from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
from typing import Dict, Iterator, List, Optional, Set, Union


LOG = logging.getLogger(__name__)

_IDENT = r'(?:"(?:[^"\\]|\\.)*"|[-a-zA-Z$._0-9]+)'
_DEFINE_RE = re.compile(r"^\s*define\b")
_FUNC_NAME_RE = re.compile(r"@(" + _IDENT + r")\s*\(")
_LABEL_RE = re.compile(r"^\s*(" + _IDENT + r"):(?:\s|$)")
_OLD_LABEL_RE = re.compile(r"^\s*;\s*<label>:(\d+)")
_NAMED_TYPE_RE = re.compile(r"^\s*(%" + _IDENT + r")\s*=\s*type\b")
_RESULT_RE = re.compile(r"^\s*(%" + _IDENT + r")\s*=\s*(.*)$")
# Quoted strings are matched so that '%' inside them is never taken as a value.
_TOKEN_RE = re.compile(r'%"(?:[^"\\]|\\.)*"|%[-a-zA-Z$._0-9]+|"(?:[^"\\]|\\.)*"')
_CALL_MARKERS = {"tail", "musttail", "notail"}
_DEBUG_RECORD_PREFIX = "#dbg_"
# Opcodes whose first slot is a type, possibly after some of these flags.
_TYPE_FIRST_OPCODES = {"alloca", "load", "getelementptr", "phi"}
_OPCODE_FLAGS = {
    "inbounds", "volatile", "atomic", "inalloca", "nuw", "nusw",
    "fast", "nnan", "ninf", "nsz", "arcp", "contract", "afn", "reassoc",
}
# What may follow a type but never a value: a value, a parameter list or '*'.
_TYPE_FOLLOWER_RE = re.compile(r"\s*\*|\s+(?:[%@{(0-9-]|zeroinitializer\b|undef\b|poison\b|null\b|true\b|false\b)")


class IRParseError(ValueError):
    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


@dataclass
class RenderOptions:
    list_instructions: bool = True
    number_unnamed_blocks: bool = False
    color: bool = True
    show_line_numbers: bool = False
    group_by_braid: bool = False


@dataclass(eq=False)
class Argument:
    name: str
    type: str
    index: int

    def __str__(self) -> str:
        return f"{self.type} {self.name}".strip()


@dataclass(eq=False)
class Instruction:
    source_index: int
    text: str
    result: str
    opcode: str
    operand_names: List[str] = field(default_factory=list)
    operands: List["Value"] = field(default_factory=list, repr=False)
    users: List["Instruction"] = field(default_factory=list, repr=False)
    parent: Optional["BasicBlock"] = field(default=None, repr=False)

    def __str__(self) -> str:
        return self.text


@dataclass(eq=False)
class BasicBlock:
    label: str
    source_index: int
    instructions: List[Instruction] = field(default_factory=list)
    parent: Optional["Function"] = field(default=None, repr=False)

    @property
    def name(self) -> str:
        if not self.label or self.label.isdigit():
            return ""
        return _unquote(self.label)

    @property
    def size(self) -> int:
        return len(self.instructions)

    @property
    def ref(self) -> str:
        return f"%{self.label}" if self.label else ""

    def display_name(self, options: Optional[RenderOptions] = None) -> str:
        if options and options.number_unnamed_blocks and self.label.isdigit():
            return self.label
        return self.name

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)


Value = Union[Instruction, Argument, BasicBlock]


@dataclass(eq=False)
class Function:
    name: str
    source_index: int
    end_index: int
    arguments: List[Argument] = field(default_factory=list)
    blocks: List[BasicBlock] = field(default_factory=list)
    is_vararg: bool = False

    @property
    def arg_size(self) -> int:
        return len(self.arguments)

    @property
    def size(self) -> int:
        return len(self.blocks)

    def instructions(self) -> Iterator[Instruction]:
        for block in self.blocks:
            yield from block.instructions

    def __iter__(self) -> Iterator[BasicBlock]:
        return iter(self.blocks)


@dataclass
class Document:
    path: Path
    lines: List[str]
    functions: List[Function]
    named_types: Set[str]

    @classmethod
    def from_path(cls, path: Path) -> "Document":
        text = path.read_text(encoding="utf-8")
        return cls.from_text(text, path=path)

    @classmethod
    def from_text(cls, text: str, path: Optional[Path] = None) -> "Document":
        lines = text.splitlines()
        named_types = _collect_named_types(lines)
        functions = _collect_functions(lines, named_types)
        LOG.debug("parsed %d function(s) from %s", len(functions), path or "<text>")
        return cls(path=path or Path("<text>"), lines=lines, functions=functions, named_types=named_types)

    def function(self, name: str) -> Optional[Function]:
        for func in self.functions:
            if func.name == name:
                return func
        return None


def _collect_named_types(lines: List[str]) -> Set[str]:
    names: Set[str] = set()
    for line in lines:
        match = _NAMED_TYPE_RE.match(line)
        if match:
            names.add(match.group(1))
    return names


def _collect_functions(lines: List[str], named_types: Set[str]) -> List[Function]:
    functions: List[Function] = []
    idx = 0
    while idx < len(lines):
        if _DEFINE_RE.match(lines[idx]):
            func, idx = _parse_function(lines, idx, named_types)
            functions.append(func)
        idx += 1
    return functions


def _parse_function(lines: List[str], start_idx: int, named_types: Set[str]) -> tuple[Function, int]:
    header, idx = _collect_header(lines, start_idx)
    name_match = _FUNC_NAME_RE.search(header)
    if not name_match:
        raise IRParseError("function definition without a name", start_idx + 1)
    params_text = _extract_parenthesized(header, name_match.end() - 1)
    arguments, is_vararg = _parse_params(params_text, named_types)
    func = Function(
        name=_unquote(name_match.group(1)),
        source_index=start_idx,
        end_index=start_idx,
        arguments=arguments,
        is_vararg=is_vararg,
    )

    block: Optional[BasicBlock] = None
    idx += 1
    while idx < len(lines):
        line = lines[idx]
        old_label = _OLD_LABEL_RE.match(line)
        if old_label:
            block = _append_block(func, old_label.group(1), idx)
            idx += 1
            continue
        stripped = _strip_comment(line).strip()
        if not stripped or stripped.startswith(_DEBUG_RECORD_PREFIX):
            idx += 1
            continue
        if stripped == "}":
            func.end_index = idx
            _resolve_function(func, named_types)
            LOG.debug("function @%s: %d argument(s), %d block(s)", func.name, func.arg_size, func.size)
            return func, idx
        label = _LABEL_RE.match(stripped)
        if label:
            block = _append_block(func, label.group(1), idx)
            idx += 1
            continue
        text, end_idx = _collect_instruction_text(lines, idx)
        if block is None:
            block = _append_block(func, "", idx)
        instruction = _parse_instruction(text, idx, named_types)
        instruction.parent = block
        block.instructions.append(instruction)
        idx = end_idx + 1
    raise IRParseError(f"unterminated body of function @{func.name}", start_idx + 1)


def _append_block(func: Function, label: str, source_index: int) -> BasicBlock:
    block = BasicBlock(label=label, source_index=source_index, parent=func)
    func.blocks.append(block)
    return block


def _collect_header(lines: List[str], start_idx: int) -> tuple[str, int]:
    parts = [_strip_comment(lines[start_idx]).strip()]
    idx = start_idx
    while idx + 1 < len(lines):
        header = " ".join(parts)
        if _bracket_delta(header) <= 0 and header.endswith("{"):
            return header, idx
        idx += 1
        parts.append(_strip_comment(lines[idx]).strip())
    header = " ".join(parts)
    if header.endswith("{"):
        return header, idx
    raise IRParseError("function definition without a body", start_idx + 1)


def _collect_instruction_text(lines: List[str], start_idx: int) -> tuple[str, int]:
    text_parts = [_strip_comment(lines[start_idx]).strip()]
    depth = _bracket_delta(text_parts[0])
    idx = start_idx
    while depth > 0 and idx + 1 < len(lines):
        idx += 1
        part = _strip_comment(lines[idx]).strip()
        if part:
            text_parts.append(part)
        depth += _bracket_delta(part)
    if depth > 0:
        raise IRParseError("unbalanced brackets in instruction", start_idx + 1)
    return " ".join(text_parts), idx


def _parse_instruction(text: str, source_index: int, named_types: Set[str]) -> Instruction:
    result_match = _RESULT_RE.match(text)
    if result_match:
        result = result_match.group(1)
        rest = result_match.group(2).strip()
    else:
        result = ""
        rest = text.strip()
    words = rest.split()
    opcode = words[0] if words else ""
    if opcode in _CALL_MARKERS and len(words) > 1:
        opcode = words[1]
    return Instruction(
        source_index=source_index,
        text=text,
        result=result,
        opcode=opcode,
        operand_names=_operand_refs(rest, named_types),
    )


def _parse_params(text: str, named_types: Set[str]) -> tuple[List[Argument], bool]:
    arguments: List[Argument] = []
    is_vararg = False
    unnamed = 0
    for part in _split_top_level(text, ","):
        param = part.strip()
        if not param:
            continue
        if param == "...":
            is_vararg = True
            continue
        refs = _operand_refs(param, named_types)
        # The name, when present, is the last token; a lone token is a type.
        if refs and param.endswith(refs[-1]) and param != refs[-1]:
            name = refs[-1]
            param_type = param[: -len(name)].strip()
        else:
            name = f"%{unnamed}"
            unnamed += 1
            param_type = param
        arguments.append(Argument(name=name, type=param_type, index=len(arguments)))
    return arguments, is_vararg


def _resolve_function(func: Function, named_types: Set[str]) -> None:
    symbols: Dict[str, Value] = {}

    def define(name: str, value: Value, line: int) -> None:
        if name in symbols:
            raise IRParseError(f"redefinition of value '{name}' in @{func.name}", line + 1)
        symbols[name] = value

    for argument in func.arguments:
        define(argument.name, argument, func.source_index)
    for block in func.blocks:
        if block.label:
            define(block.ref, block, block.source_index)
        for instruction in block.instructions:
            if instruction.result:
                define(instruction.result, instruction, instruction.source_index)

    for instruction in func.instructions():
        for name in instruction.operand_names:
            value = symbols.get(name)
            if value is None:
                if name in named_types:
                    continue
                raise IRParseError(
                    f"use of undefined value '{name}' in @{func.name}",
                    instruction.source_index + 1,
                )
            instruction.operands.append(value)
            if isinstance(value, Instruction) and instruction not in value.users:
                value.users.append(instruction)


def _operand_refs(text: str, named_types: Optional[Set[str]] = None) -> List[str]:
    refs: List[str] = []
    for match in _TOKEN_RE.finditer(text):
        token = match.group(0)
        if not token.startswith("%"):
            continue
        if named_types and token in named_types and _in_type_position(text, match):
            continue
        refs.append(token)
    return refs


def _in_type_position(text: str, match: re.Match) -> bool:
    words = text[: match.start()].split()
    if words and words[0] in _TYPE_FIRST_OPCODES and all(word in _OPCODE_FLAGS for word in words[1:]):
        return True
    return _TYPE_FOLLOWER_RE.match(text, match.end()) is not None


def _strip_comment(line: str) -> str:
    in_quote = False
    prev = ""
    for idx, ch in enumerate(line):
        if ch == '"' and prev != "\\":
            in_quote = not in_quote
        elif ch == ";" and not in_quote:
            return line[:idx].rstrip()
        prev = ch
    return line.rstrip()


def _bracket_delta(text: str) -> int:
    depth = 0
    in_quote = False
    prev = ""
    for ch in text:
        if ch == '"' and prev != "\\":
            in_quote = not in_quote
        elif not in_quote:
            if ch in "[(":
                depth += 1
            elif ch in "])":
                depth -= 1
        prev = ch
    return depth


def _extract_parenthesized(text: str, open_idx: int) -> str:
    depth = 0
    in_quote = False
    prev = ""
    for idx in range(open_idx, len(text)):
        ch = text[idx]
        if ch == '"' and prev != "\\":
            in_quote = not in_quote
        elif not in_quote:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return text[open_idx + 1 : idx]
        prev = ch
    raise IRParseError("unbalanced parameter list")


def _split_top_level(text: str, sep: str) -> List[str]:
    parts: List[str] = []
    buf: List[str] = []
    depth = 0
    in_quote = False
    prev = ""
    for ch in text:
        if ch == '"' and prev != "\\":
            in_quote = not in_quote
            buf.append(ch)
            prev = ch
            continue
        if not in_quote:
            if ch in "[{(<":
                depth += 1
            elif ch in "]})>":
                depth = max(0, depth - 1)
            if ch == sep and depth == 0:
                parts.append("".join(buf))
                buf = []
                prev = ch
                continue
        buf.append(ch)
        prev = ch
    if buf:
        parts.append("".join(buf))
    return parts


def _unquote(name: str) -> str:
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name[1:-1]
    return name
