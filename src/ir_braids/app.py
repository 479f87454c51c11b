from __future__ import annotations

from pathlib import Path
import argparse
import logging
import sys

from textual.app import App, ComposeResult
from textual import events
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, RichLog, ListView, ListItem, Label, Static
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .core import Document, Function, IRParseError, RenderOptions
from .report import BRAID_COLORS, analyze_function, braid_color, document_report_lines, render_report
from .view import BraidView, ViewEntry


LOG = logging.getLogger(__name__)


class BraidViewerApp(App):
    CSS = """
    Screen {
        layout: vertical;
    }

    #main {
        height: 1fr;
    }

    #list {
        width: 1fr;
    }

    #details {
        width: 1fr;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("i", "toggle_details", "Toggle details panel"),
        Binding("f", "open_functions", "Functions"),
        Binding("o", "open_files", "Files"),
        Binding("b", "toggle_grouping", "Group by braid"),
        Binding("L", "toggle_line_numbers", "Line numbers"),
        Binding("H", "open_help", "Help"),
        Binding("up", "move_up", "Up", show=False),
        Binding("down", "move_down", "Down", show=False),
        Binding("j", "move_down", "Down", show=False),
        Binding("k", "move_up", "Up", show=False),
        Binding("pageup", "page_up", "Page up", show=False),
        Binding("pagedown", "page_down", "Page down", show=False),
        Binding("home", "go_home", "Home", show=False),
        Binding("end", "go_end", "End", show=False),
        Binding("g", "go_home", "Home", show=False),
        Binding("G", "go_end", "End", show=False),
        Binding("tab", "toggle_focus", "Toggle focus"),
    ]

    def __init__(
        self,
        path: Path,
        profile_mode: bool = False,
        options: RenderOptions | None = None,
        file_choices: list[Path] | None = None,
        file_root: Path | None = None,
        documents: dict[Path, Document] | None = None,
    ) -> None:
        super().__init__()
        self.options = options or RenderOptions()
        self._file_choices = file_choices or []
        self._file_root = file_root
        self._documents: dict[Path, Document] = dict(documents or {})
        self.profile_mode = profile_mode
        self._load_path(path)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal(id="main"):
            yield RichLog(id="list", auto_scroll=False, wrap=False)
            yield RichLog(id="details", auto_scroll=False, wrap=True)
        yield Footer()

    def on_mount(self) -> None:
        details = self.query_one("#details", RichLog)
        details.can_focus = True
        list_view = self.query_one("#list", RichLog)
        list_view.can_focus = True
        list_view.focus()
        if len(self._file_choices) > 1 and not self.profile_mode:
            self.action_open_files()
            return
        self._post_load_setup()
        if self.profile_mode:
            self.set_timer(0.05, self.exit)

    @property
    def selected_entry(self) -> ViewEntry | None:
        if 0 <= self._selected_index < len(self._entries):
            return self._entries[self._selected_index]
        return None

    def _post_load_setup(self) -> None:
        functions = self.document.functions
        if len(functions) > 1 and not self.profile_mode:
            self.action_open_functions()
            return
        if not functions:
            self._render_viewport()
            return
        self._select_func(0)

    def _load_path(self, path: Path) -> None:
        self._current_path = path
        self.document = self._document(path)
        self.view = BraidView(self.document, self.options)
        self.active_function: Function | None = None
        self._entries: list[ViewEntry] = []
        self._selected_index = 0
        self._window_start = 0
        self._focus_target = "list"
        LOG.info("loaded %s: %d function(s)", path, len(self.document.functions))

    def _document(self, path: Path) -> Document:
        document = self._documents.get(path)
        if document is None:
            document = Document.from_path(path)
            self._documents[path] = document
        return document

    def _file_label(self, path: Path) -> str:
        name = str(path)
        if self._file_root and path.is_relative_to(self._file_root):
            name = str(path.relative_to(self._file_root))
        functions = self._document(path).functions
        blocks = sum(function.size for function in functions)
        braids = sum(p.count for function in functions for p in analyze_function(function))
        return f"{name}  {len(functions)} functions, {blocks} blocks, {braids} braids"

    def _function_label(self, function: Function) -> str:
        braids = sum(self.view.partition(block).count for block in function.blocks)
        return f"@{function.name}  {function.arg_size} args, {function.size} blocks, {braids} braids"

    def _select_file(self, selection: int | None) -> None:
        if selection is None:
            # Cancelled before any file was shown.
            if self.active_function is None and not self._entries:
                self.exit()
            return
        self._load_path(self._file_choices[selection])
        self._post_load_setup()

    def _select_func(self, selection: int | None) -> None:
        if selection is None:
            return
        self.active_function = self.document.functions[selection]
        self.sub_title = f"@{self.active_function.name}"
        self._selected_index = 0
        self._window_start = 0
        self._render_list()

    def _render_list(self) -> None:
        selected = self.selected_entry
        selected_instruction = selected.instruction if selected else None
        self._entries = self.view.entries(self.active_function) if self.active_function else []
        index = self._first_instruction_index()
        if selected_instruction is not None:
            for idx, entry in enumerate(self._entries):
                if entry.instruction is selected_instruction:
                    index = idx
                    break
        self._set_selected_index(index)

    def _first_instruction_index(self) -> int:
        for idx, entry in enumerate(self._entries):
            if entry.kind == "inst":
                return idx
        return 0

    def _viewport_size(self) -> int:
        list_log = self.query_one("#list", RichLog)
        height = list_log.size.height if list_log.is_attached else 40
        return max(10, height - 2)

    def _render_viewport(self) -> None:
        list_log = self.query_one("#list", RichLog)
        list_log.clear()
        if not self._entries:
            list_log.write(Text("(no instructions)", style="grey50"))
            return
        selected = self.selected_entry
        selected_braid = None
        if selected is not None and selected.kind == "inst":
            selected_braid = (selected.block, selected.braid_id)
        window_size = self._viewport_size()
        self._window_start = _scroll_window(
            self._window_start, self._selected_index, len(self._entries), window_size
        )
        end = min(len(self._entries), self._window_start + window_size)
        for idx in range(self._window_start, end):
            entry = self._entries[idx]
            line = self.view.styled_label(entry)
            if selected_braid is not None and (entry.block, entry.braid_id) == selected_braid:
                line.stylize("on rgb(50,85,50)", 0, len(line))
            if idx == self._selected_index:
                line.stylize("reverse", 0, len(line))
            list_log.write(line)

    def _set_selected_index(self, index: int) -> None:
        if not self._entries:
            self._render_viewport()
            return
        self._selected_index = max(0, min(index, len(self._entries) - 1))
        self._render_viewport()
        self._update_details()

    def _move_selection(self, delta: int) -> None:
        self._set_selected_index(self._selected_index + delta)

    def _update_details(self) -> None:
        details = self.query_one("#details", RichLog)
        details.clear()
        entry = self.selected_entry
        if entry is None:
            return
        if entry.instruction is None:
            details.write(Text(entry.label, style="bold"))
            return
        details.write(self.view.details_for(entry.instruction))

    def on_key(self, event: events.Key) -> None:
        if isinstance(self.screen, ModalScreen):
            return
        key_actions = {
            "up": self.action_move_up,
            "down": self.action_move_down,
            "pageup": self.action_page_up,
            "pagedown": self.action_page_down,
            "home": self.action_go_home,
            "end": self.action_go_end,
        }
        action = key_actions.get(event.key)
        if action is not None:
            action()
            event.stop()

    def action_move_up(self) -> None:
        if self._focus_target == "details":
            self.query_one("#details", RichLog).scroll_relative(y=-1, animate=False)
        else:
            self._move_selection(-1)

    def action_move_down(self) -> None:
        if self._focus_target == "details":
            self.query_one("#details", RichLog).scroll_relative(y=1, animate=False)
        else:
            self._move_selection(1)

    def action_page_up(self) -> None:
        self._move_selection(-self._viewport_size())

    def action_page_down(self) -> None:
        self._move_selection(self._viewport_size())

    def action_go_home(self) -> None:
        self._set_selected_index(0)

    def action_go_end(self) -> None:
        self._set_selected_index(len(self._entries) - 1)

    def action_toggle_details(self) -> None:
        details = self.query_one("#details", RichLog)
        details.display = not details.display
        if not details.display:
            self.action_focus_list()

    def action_toggle_grouping(self) -> None:
        self.options.group_by_braid = not self.options.group_by_braid
        self._render_list()

    def action_toggle_line_numbers(self) -> None:
        self.options.show_line_numbers = not self.options.show_line_numbers
        self._render_list()

    def action_open_functions(self) -> None:
        if not self.document.functions:
            return
        choices = [self._function_label(function) for function in self.document.functions]
        self.push_screen(PickerScreen("Select a function", choices), self._select_func)

    def action_open_files(self) -> None:
        if len(self._file_choices) < 2:
            return
        choices = [self._file_label(path) for path in self._file_choices]
        self.push_screen(PickerScreen("Select an IR file", choices), self._select_file)

    def action_open_help(self) -> None:
        self.push_screen(HelpScreen(self.BINDINGS))

    def action_quit(self) -> None:
        self.push_screen(ConfirmScreen("Quit braid viewer?"), self._confirm_quit)

    def _confirm_quit(self, confirm: bool | None) -> None:
        if confirm:
            self.exit()

    def action_focus_details(self) -> None:
        self.query_one("#details", RichLog).focus()
        self._focus_target = "details"

    def action_focus_list(self) -> None:
        self.query_one("#list", RichLog).focus()
        self._focus_target = "list"

    def action_toggle_focus(self) -> None:
        details = self.query_one("#details", RichLog)
        if not details.display:
            details.display = True
            self.action_focus_details()
            return
        if self._focus_target == "details":
            self.action_focus_list()
        else:
            self.action_focus_details()


class PickerScreen(ModalScreen[int | None]):
    CSS = """
    PickerScreen {
        align: center middle;
    }

    #picker {
        width: 80%;
        height: 80%;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }

    #picker-list {
        height: 1fr;
    }
    """

    def __init__(self, prompt: str, choices: list[str]) -> None:
        super().__init__()
        self.prompt = prompt
        self.choices = choices

    def compose(self) -> ComposeResult:
        with Vertical(id="picker"):
            yield Label(Text(self.prompt, style="bold"))
            yield ListView(*(ListItem(Label(Text(choice))) for choice in self.choices), id="picker-list")
            yield Label("Enter = open, Esc = cancel")

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        self.dismiss(event.list_view.index)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)
            event.stop()


class ConfirmScreen(ModalScreen[bool]):
    CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm {
        width: auto;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }
    """

    ANSWERS = {"y": True, "enter": True, "n": False, "escape": False}

    def __init__(self, prompt: str) -> None:
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        yield Label(Text(f"{self.prompt} (y/n)"), id="confirm")

    def on_key(self, event: events.Key) -> None:
        answer = self.ANSWERS.get(event.key)
        if answer is not None:
            self.dismiss(answer)
            event.stop()


class HelpScreen(ModalScreen[None]):
    CSS = """
    HelpScreen {
        align: center middle;
    }

    #help-panel {
        width: 80%;
        height: auto;
        max-height: 90%;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }
    """

    def __init__(self, shortcuts: list[Binding]) -> None:
        super().__init__()
        self.shortcuts = shortcuts

    def compose(self) -> ComposeResult:
        with Vertical(id="help-panel"):
            yield Static(_braid_legend())
            yield Static(_shortcut_table(self.shortcuts))
            yield Label("Esc = close")

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)
            event.stop()


def _braid_legend() -> Text:
    legend = Text("Instructions sharing a braid id are connected through operands and users in their block.\n")
    for braid_id in range(len(BRAID_COLORS)):
        legend.append(f"braid:{braid_id}", style=f"bold {braid_color(braid_id)}")
        legend.append(" ")
    legend.append("(colors repeat)", style="grey50")
    return legend


def _shortcut_table(bindings: list[Binding]) -> Table:
    keys: dict[str, list[str]] = {}
    for binding in bindings:
        keys.setdefault(binding.description, []).append(binding.key)
    table = Table(title="Shortcuts", title_justify="left", show_header=False, box=None, pad_edge=False)
    table.add_column(style="bold")
    table.add_column()
    for description, names in keys.items():
        table.add_row(" / ".join(names), description)
    return table


def _scroll_window(start: int, index: int, total: int, window_size: int) -> int:
    """Move the window only as far as needed to keep ``index`` visible."""
    if total <= window_size:
        return 0
    if index < start:
        start = index
    elif index >= start + window_size:
        start = index - window_size + 1
    return max(0, min(start, total - window_size))


def _configure_logging(verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _collect_paths(path: Path) -> tuple[list[Path], Path | None]:
    if not path.exists():
        raise SystemExit(f"IR file not found: {path}")
    if path.is_dir():
        files = sorted(path.glob("*.ll"))
        if not files:
            raise SystemExit(f"No .ll files found in directory: {path}")
        return files, path
    return [path], None


def _load_document(path: Path) -> Document:
    try:
        return Document.from_path(path)
    except IRParseError as exc:
        if exc.line is None:
            raise SystemExit(f"{path}: {exc.message}") from exc
        raise SystemExit(f"{path}:{exc.line}: {exc.message}") from exc


def print_report(paths: list[Path], options: RenderOptions, function_names: list[str] | None = None) -> int:
    console = Console(highlight=False, soft_wrap=True)
    missing = set(function_names or [])
    for path in paths:
        LOG.info("analyzing %s", path)
        document = _load_document(path)
        missing.difference_update(function.name for function in document.functions)
        lines = document_report_lines(document, options, function_names)
        if lines:
            console.print(render_report(lines, color=options.color))
    for name in sorted(missing):
        LOG.warning("function @%s not found", name)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print the braids of each basic block in LLVM IR")
    parser.add_argument("path", help="Path to a .ll file or a directory of .ll files")
    parser.add_argument("--function", action="append", default=None, help="Only report this function (repeatable)")
    parser.add_argument("--tui", action="store_true", help="Open the interactive braid viewer")
    parser.add_argument("--profile", action="store_true", help="Run the viewer in headless profile mode")
    parser.add_argument("--list-instructions", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--number-unnamed-blocks", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--color", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-line-numbers", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--group-by-braid", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-d", "--debug", action="store_true", help="Debug output")
    parsed = parser.parse_args(argv)

    _configure_logging(parsed.verbose, parsed.debug)
    options = RenderOptions()
    if parsed.list_instructions is not None:
        options.list_instructions = parsed.list_instructions
    if parsed.number_unnamed_blocks is not None:
        options.number_unnamed_blocks = parsed.number_unnamed_blocks
    if parsed.color is not None:
        options.color = parsed.color
    if parsed.show_line_numbers is not None:
        options.show_line_numbers = parsed.show_line_numbers
    if parsed.group_by_braid is not None:
        options.group_by_braid = parsed.group_by_braid

    paths, root = _collect_paths(Path(parsed.path))
    if not (parsed.tui or parsed.profile):
        return print_report(paths, options, parsed.function)

    documents = {path: _load_document(path) for path in paths}
    app = BraidViewerApp(
        paths[0],
        profile_mode=parsed.profile,
        options=options,
        file_choices=paths if root else [],
        file_root=root,
        documents=documents,
    )
    app.run(headless=parsed.profile)
    return 0


if __name__ == "__main__":
    sys.exit(main())
