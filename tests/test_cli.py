from pathlib import Path

import pytest

from ir_braids.app import main


def test_cli_prints_braid_report(write_ir, chain_ir: str, capsys) -> None:
    path = write_ir(chain_ir, "chain.ll")

    assert main([str(path), "--no-color"]) == 0

    out = capsys.readouterr().out
    assert out.splitlines() == [
        "",
        "Function: chain",
        "  number of arguments: 2",
        "  number of basic blocks: 1",
        "",
        "  Basic block (name=entry) has 3 instructions.",
        "    %c = add i32 %a, %b",
        "    %d = mul i32 %c, 2",
        "    ret i32 %d",
        "",
        "  Basic block (name=entry) has 1 braids.",
        "    braid:0 %c = add i32 %a, %b",
        "    braid:0 %d = mul i32 %c, 2",
        "    braid:0 ret i32 %d",
    ]


def test_cli_without_instruction_listing(write_ir, pairs_ir: str, capsys) -> None:
    path = write_ir(pairs_ir, "pairs.ll")

    main([str(path), "--no-list-instructions", "--no-color"])

    out = capsys.readouterr().out
    assert "    %x = add i32 1, 2" not in out.splitlines()
    assert "  Basic block (name=entry) has 4 instructions." in out
    assert "    braid:1 store i32 %y, ptr %q" in out


def test_cli_function_filter(write_ir, chain_ir: str, pairs_ir: str, capsys) -> None:
    path = write_ir(chain_ir + "\n" + pairs_ir, "both.ll")

    main([str(path), "--function", "pairs"])

    out = capsys.readouterr().out
    assert "Function: pairs" in out
    assert "Function: chain" not in out


def test_cli_warns_about_unknown_functions(write_ir, chain_ir: str, capsys) -> None:
    path = write_ir(chain_ir, "chain.ll")

    main([str(path), "--function", "chain", "--function", "nope", "--no-color"])

    captured = capsys.readouterr()
    assert "Function: chain" in captured.out
    assert "@nope not found" in captured.err


def test_cli_directory_reports_files_in_order(tmp_path: Path, chain_ir: str, pairs_ir: str, capsys) -> None:
    (tmp_path / "b.ll").write_text(chain_ir, "utf-8")
    (tmp_path / "a.ll").write_text(pairs_ir, "utf-8")
    (tmp_path / "notes.txt").write_text("ignored", "utf-8")

    main([str(tmp_path)])

    out = capsys.readouterr().out
    assert out.index("Function: pairs") < out.index("Function: chain")


def test_cli_missing_path(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "missing.ll")])

    assert "IR file not found" in str(excinfo.value)


def test_cli_directory_without_ir(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path)])

    assert "No .ll files found" in str(excinfo.value)


def test_cli_parse_error_names_file_and_line(write_ir) -> None:
    path = write_ir("define void @f() {\n  ret i32 %nope\n}\n", "bad.ll")

    with pytest.raises(SystemExit) as excinfo:
        main([str(path)])

    assert str(excinfo.value).startswith(f"{path}:2: use of undefined value '%nope'")
