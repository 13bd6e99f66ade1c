"""
Tests for the kestrel command line interface.
"""

import json
import sys
from pathlib import Path

import pytest

from kestrel.__main__ import main, needs_more_input, repl

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def feed_input(monkeypatch, lines):
    """Make input() return ``lines`` one by one, then signal end of input."""
    remaining = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr("builtins.input", fake_input)


@pytest.fixture
def script(tmp_path):
    def write(source: str, name: str = "main.ks"):
        path = tmp_path / name
        path.write_text(source)
        return str(path)
    return write


class TestRunCommand:
    """Test `kestrel run`."""

    def test_run_script(self, script, capsys):
        path = script("print('hello')\nprint(len(args), args[0])")
        assert main(["run", path, "one", "two"]) == 0
        assert capsys.readouterr().out == "hello\n2 one\n"

    def test_run_fib_example(self, capsys):
        """The bundled example takes its count from the command line."""
        assert main(["run", str(EXAMPLES / "fib.ks"), "6"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines == ["0 0", "1 1", "2 1", "3 2", "4 3", "5 5"]

    @pytest.mark.parametrize("name", ["shapes.ks", "errors.ks"])
    def test_examples_run(self, name, capsys):
        assert main(["run", str(EXAMPLES / name)]) == 0
        assert capsys.readouterr().err == ""

    def test_run_error_exit_code(self, script, capsys):
        path = script("let x = 1\nmissing")
        assert main(["run", path]) == 1
        err = capsys.readouterr().err
        assert "E401" in err
        assert "missing" in err

    def test_run_parse_error(self, script, capsys):
        path = script("let = 1")
        assert main(["run", path]) == 1
        assert "E101" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["run", str(tmp_path / "nope.ks")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_json_diagnostics(self, script, capsys):
        path = script("throw 'bad'")
        assert main(["--json", "run", path]) == 1
        report = json.loads(capsys.readouterr().err)
        assert report["code"] == "E400"
        assert report["range"]["start"]["line"] == 1


class TestAstCommand:
    """Test `kestrel ast`."""

    def test_print_ast(self, script, capsys):
        path = script("let x = 1 + 2")
        assert main(["ast", path]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Program")
        assert "VarDeclaration" in out
        assert "BinaryExpr '+'" in out

    def test_ast_does_not_evaluate(self, script, capsys):
        path = script("print('side effect')")
        assert main(["ast", path]) == 0
        assert "side effect\n" not in capsys.readouterr().out

    def test_ast_syntax_error(self, script, capsys):
        path = script("let x = (1")
        assert main(["ast", path]) == 1
        assert "E102" in capsys.readouterr().err


class TestCommandOption:
    """Test `kestrel -c`."""

    def test_evaluate_command(self, capsys):
        assert main(["-c", "let x = 2 x * 21"]) == 0
        assert capsys.readouterr().out == "42\n"

    def test_command_error(self, capsys):
        assert main(["-c", "1 / 0"]) == 1
        assert "E409" in capsys.readouterr().err

    def test_recursion_limit(self, capsys):
        previous = sys.getrecursionlimit()
        try:
            assert main(["--recursion-limit", "5000", "-c", "1"]) == 0
            assert sys.getrecursionlimit() == 5000
        finally:
            sys.setrecursionlimit(previous)


class TestRepl:
    """Test the interactive session."""

    def test_needs_more_input(self):
        assert needs_more_input("fn f() {")
        assert needs_more_input("let a = [1,")
        assert needs_more_input("'open string")
        assert not needs_more_input("let x = 1")
        assert not needs_more_input("fn f() { 1 }")
        assert not needs_more_input("@")

    def test_session(self, monkeypatch, capsys):
        feed_input(monkeypatch, [
            "let x = 1",
            "fn f() {",
            "  x + 1",
            "}",
            "f()",
            "missing",
            "x",
            "exit",
        ])
        assert repl() == 0
        captured = capsys.readouterr()
        assert captured.out.splitlines() == ["1", "<fn f>", "2", "1"]
        assert "E401" in captured.err

    def test_end_of_input(self, monkeypatch, capsys):
        feed_input(monkeypatch, [])
        assert repl() == 0
        assert capsys.readouterr().out == "\n"

    def test_main_without_arguments_starts_repl(self, monkeypatch, capsys):
        feed_input(monkeypatch, ["1 + 1", "quit"])
        assert main([]) == 0
        assert capsys.readouterr().out == "2\n"
