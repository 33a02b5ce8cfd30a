"""Tests for devloop.process — subprocess tee and output tails."""

import sys
from pathlib import Path

import pytest


class TestStripAnsi:
    def test_removes_colour_codes(self) -> None:
        from devloop.process import _strip_ansi

        assert _strip_ansi("\x1b[1m\x1b[32m   Compiling\x1b[0m simple") == "   Compiling simple"

    def test_plain_text_untouched(self) -> None:
        from devloop.process import _strip_ansi

        assert _strip_ansi("error: could not compile") == "error: could not compile"


class TestRunLogged:
    def test_captures_merged_output_and_writes_log(self, tmp_path: Path) -> None:
        from devloop.process import run_logged

        log = tmp_path / "logs" / "step.log"
        code = "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"
        rc, output = run_logged([sys.executable, "-c", code], log, echo=False)
        assert rc == 3
        assert "out" in output
        assert "err" in output
        assert log.read_text(encoding="utf-8") == output

    def test_strips_ansi_from_log(self, tmp_path: Path) -> None:
        from devloop.process import run_logged

        log = tmp_path / "step.log"
        code = "print('\\x1b[31mred\\x1b[0m')"
        rc, output = run_logged([sys.executable, "-c", code], log, echo=False)
        assert rc == 0
        assert output.strip() == "red"

    def test_echo_streams_to_stdout(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        from devloop.process import run_logged

        run_logged(
            [sys.executable, "-c", "print('live line')"],
            tmp_path / "step.log",
            echo=True,
        )
        assert "live line" in capsys.readouterr().out

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        from devloop.process import run_logged

        workdir = tmp_path / "work"
        workdir.mkdir()
        _, output = run_logged(
            [sys.executable, "-c", "import os; print(os.getcwd())"],
            tmp_path / "step.log",
            echo=False,
            cwd=workdir,
        )
        assert Path(output.strip()).resolve() == workdir.resolve()

    def test_missing_executable_raises_oserror(self, tmp_path: Path) -> None:
        from devloop.process import run_logged

        with pytest.raises(OSError):
            run_logged(
                [str(tmp_path / "no-such-tool")], tmp_path / "step.log", echo=False
            )


class TestTailText:
    def test_keeps_last_lines(self) -> None:
        from devloop.process import tail_text

        text = "\n".join(str(i) for i in range(100))
        assert tail_text(text, 3) == "97\n98\n99"

    def test_short_text_unchanged(self) -> None:
        from devloop.process import tail_text

        assert tail_text("a\nb", 40) == "a\nb"

    def test_print_failure_tail_handles_empty(self) -> None:
        from devloop.process import print_failure_tail

        print_failure_tail("", title="build output")
