"""diagnostics.py — Structured failure reports for failed pipeline steps."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from rich.markup import escape

from devloop.config import DevLoopConfig, _console
from devloop.errors import StepFailure


def save_failure_report(failure: StepFailure, config: DevLoopConfig) -> Path:
    """Save a structured JSON failure report and return its path.

    The report is saved at ``<target_dir>/devloop/logs/failure_report.json``
    and overwritten by the next failing run.
    """
    report = {
        "step": failure.step,
        "package": config.package,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": str(failure),
        "returncode": failure.returncode,
        "last_error": _extract_error(failure.stderr),
        "log": str(failure.log_path) if failure.log_path else None,
    }

    report_dir = config.log_dir
    report_dir.mkdir(parents=True, exist_ok=True)
    report_path = report_dir / "failure_report.json"
    report_path.write_text(json.dumps(report, indent=2), encoding="utf-8")

    _console.print("\n[red bold]── Failure Report ──[/]")
    _console.print(f"  [bold]Step:[/]         {report['step']}")
    _console.print(f"  [bold]Package:[/]      {escape(report['package'])}")
    _console.print(f"  [bold]Exit code:[/]    {report['returncode']}")
    _console.print(
        f"  [bold]Last error:[/]   {escape(report['last_error'] or 'unknown')}"
    )
    if report["log"]:
        _console.print(f"  [bold]Full log:[/]     {escape(report['log'])}")
    _console.print(f"  [bold]Report saved:[/] {escape(str(report_path))}")

    return report_path


def _extract_error(output: str | None) -> str | None:
    """Try to extract the most relevant error message from tool output."""
    if not output:
        return None

    patterns = [
        # rustc / cargo: error[E0425]: cannot find value `x` in this scope
        r"^(error\[E\d+\]:.+?)$",
        # cargo / wasm-bindgen: error: package ID specification ... / error: failed to ...
        r"^(error:.+?)$",
        # Python tracebacks from the built-in server worker.
        r"^((?:OSError|RuntimeError|ImportError|ModuleNotFoundError|"
        r"FileNotFoundError|PermissionError|ValueError)"
        r":.+?)$",
    ]

    for pattern in patterns:
        match = re.search(pattern, output, re.MULTILINE)
        if match:
            return match.group(1).strip()[:500]

    # Fallback: last non-empty line.
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if lines:
        return lines[-1][:500]
    return None
