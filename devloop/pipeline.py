"""pipeline.py — Step sequencing and main entry point."""

import argparse
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from rich.markup import escape

from devloop.config import ConfigError, DevLoopConfig, _console, load_config
from devloop.errors import StepFailure
from devloop.process import print_failure_tail
from devloop.steps import (
    ServerExit,
    generate_bindings,
    run_build,
    serve,
    stage_assets,
)


class State(Enum):
    IDLE = "idle"
    BUILDING = "building"
    GENERATING_BINDINGS = "generating-bindings"
    STAGING = "staging"
    SERVING = "serving"
    INTERRUPTED = "interrupted"
    TERMINATED = "terminated"


# (label, state entered while it runs, fn(config, previous step's result))
Step = tuple[str, State, Callable[[DevLoopConfig, Any], Any]]


def default_steps() -> list[Step]:
    """Build → Generate bindings → Stage assets → Serve."""
    return [
        ("Build", State.BUILDING, run_build),
        ("Generate bindings", State.GENERATING_BINDINGS, generate_bindings),
        ("Stage assets", State.STAGING, stage_assets),
        ("Serve", State.SERVING, serve),
    ]


class DevLoopRunner:
    """Run *steps* in order, stopping at the first :class:`StepFailure`.

    Each step receives the previous step's return value (the artifact path,
    then the output directory).  ``history`` records every state entered, so
    callers can check that no state was skipped.
    """

    def __init__(self, config: DevLoopConfig, steps: list[Step] | None = None) -> None:
        self.config = config
        self.steps = steps if steps is not None else default_steps()
        self.state = State.IDLE
        self.history: list[State] = [State.IDLE]
        self.error: StepFailure | None = None

    def _enter(self, state: State) -> None:
        self.state = state
        self.history.append(state)

    def run(self) -> int:
        """Execute the pipeline and return the process exit code."""
        total = len(self.steps)
        value: Any = None
        for index, (label, state, fn) in enumerate(self.steps, start=1):
            self._enter(state)
            _console.print(f"\n[bold][{index}/{total}] {label}[/]")
            try:
                value = fn(self.config, value)
            except StepFailure as exc:
                self._enter(State.TERMINATED)
                self.error = exc
                _report_failure(exc, self.config)
                return exc.exit_code

        if isinstance(value, ServerExit):
            self._enter(State.INTERRUPTED if value.interrupted else State.TERMINATED)
            rc = value.returncode
            return 128 + abs(rc) if rc < 0 else rc
        self._enter(State.TERMINATED)
        return 0


def _report_failure(exc: StepFailure, config: DevLoopConfig) -> None:
    from devloop.diagnostics import save_failure_report  # noqa: PLC0415

    _console.print(f"\n[red bold]✗ {exc.step} failed:[/] {escape(str(exc))}")
    if exc.stderr and not config.verbose:
        print_failure_tail(exc.stderr, title=f"{exc.step} output")
    save_failure_report(exc, config)


def run_pipeline(config: DevLoopConfig) -> int:
    """Run the default pipeline for *config* and return the exit code."""
    _console.rule(
        f"[bold cyan]wasmloop[/]  [dim]{escape(config.package)} → {config.target_triple}[/]",
        style="cyan",
    )
    return DevLoopRunner(config).run()


# ── Entry point ────────────────────────────────────────────────────────────────


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wasmloop",
        description=(
            "Build a crate for wasm32, generate web bindings, stage index.html "
            "and serve the result with cross-origin isolation headers."
        ),
        epilog="Exit 0 = served and stopped with Ctrl+C, 2 = bad configuration, "
        "otherwise the failing step's exit code.",
    )
    parser.add_argument(
        "package",
        nargs="?",
        help="Cargo package to build (default: from devloop.json, else 'simple')",
    )
    parser.add_argument(
        "--config", type=Path, help="Path to a devloop.json (default: ./devloop.json)"
    )
    parser.add_argument("--host", help="Server bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Server port (default: 8000)")
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Stream tool output live instead of showing it only on failure",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags, load configuration, run the pipeline, and exit."""
    args = _parse_args(argv)
    try:
        config = load_config(
            args.config,
            package=args.package,
            host=args.host,
            port=args.port,
            verbose=args.verbose,
        )
    except ConfigError as exc:
        _console.print(f"[red]Configuration error:[/] {escape(str(exc))}")
        sys.exit(2)

    try:
        rc = run_pipeline(config)
    except KeyboardInterrupt:
        # Ctrl+C before the server started: the child tool got the same
        # SIGINT from the terminal and is already gone.
        _console.print("\n[yellow]Interrupted.[/]")
        sys.exit(130)
    sys.exit(rc)
