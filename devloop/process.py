"""process.py — Subprocess tee helper and failure-tail rendering."""

import re
import subprocess
from pathlib import Path

from devloop.config import _LOG_TAIL_LINES, _console

# Matches all ANSI/VT100 escape sequences (CSI, OSC, and standalone ESC codes).
# cargo colours its output whenever it thinks it is talking to a terminal.
_ANSI_RE = re.compile(
    r"\x1b"
    r"(?:"
    r"\[[0-9;?]*[A-Za-z]"  # CSI sequences: ESC [ ... <letter>
    r"|\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC sequences: ESC ] ... BEL/ST
    r"|[^\[\]]"
    r")"
)


def _strip_ansi(text: str) -> str:
    """Remove all ANSI escape codes from *text*."""
    return _ANSI_RE.sub("", text)


def run_logged(
    cmd: list[str], log_path: Path, *, echo: bool, cwd: Path | None = None
) -> tuple[int, str]:
    """Run *cmd*, write all output to *log_path*, and optionally echo to stdout.

    stdout and stderr are merged so the log reads in the order the tool wrote
    it.  With ``echo=True`` each line is printed as it arrives (verbose mode);
    otherwise output is captured silently and the caller shows a tail on
    failure.

    Args:
        cmd:      Program and arguments (no shell).
        log_path: Destination log file (parent dirs created automatically).
        echo:     Stream each output line to stdout as it arrives.
        cwd:      Working directory for the child process.

    Returns:
        ``(returncode, output)`` where *output* is the ANSI-stripped text.

    Raises:
        OSError: the executable could not be started.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    captured: list[str] = []
    with log_path.open("w", encoding="utf-8", errors="replace") as log_fh:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        assert proc.stdout is not None
        for line in proc.stdout:
            clean = _strip_ansi(line)
            captured.append(clean)
            log_fh.write(clean)
            log_fh.flush()
            if echo:
                print(line, end="", flush=True)
        proc.wait()
    return proc.returncode, "".join(captured)


def tail_text(text: str, lines: int = _LOG_TAIL_LINES) -> str:
    """Return the last *lines* lines of *text*."""
    return "\n".join(text.splitlines()[-lines:])


def print_failure_tail(output: str, *, title: str) -> None:
    """Print the last ``_LOG_TAIL_LINES`` lines of *output* inside a red Rich panel."""
    from rich.panel import Panel  # noqa: PLC0415
    from rich.text import Text  # noqa: PLC0415

    shown = tail_text(output)
    if not shown.strip():
        _console.print("[dim](no output captured)[/]")
        return
    count = len(shown.splitlines())
    _console.print(
        Panel(
            Text(shown),
            title=f"[red bold]{title} — last {count} lines[/]",
            border_style="red",
            expand=True,
        )
    )
