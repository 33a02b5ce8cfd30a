"""steps.py — The four pipeline steps: build, bindings, stage, serve."""

import os
import shlex
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from typing import NamedTuple

from rich.markup import escape

from devloop.config import BUILD_PROFILE, DevLoopConfig, _console
from devloop.errors import (
    BindingGenerationFailure,
    BuildFailure,
    ServerLaunchFailure,
    StagingFailure,
)
from devloop.process import run_logged, tail_text


class ServerExit(NamedTuple):
    returncode: int
    interrupted: bool


# A child killed by the forwarded SIGINT (or a shell reporting 128+SIGINT)
# counts as a graceful stop.
_GRACEFUL_INTERRUPT_CODES = frozenset({0, -signal.SIGINT, 128 + signal.SIGINT})


# ── Command lines ──────────────────────────────────────────────────────────────


def build_command(config: DevLoopConfig) -> list[str]:
    """``cargo build`` for the wasm target; ``--target-dir`` pins the artifact path."""
    return [
        *shlex.split(config.cargo_cmd),
        "build",
        "--target",
        config.target_triple,
        "-p",
        config.package,
        "--target-dir",
        str(config.resolve(config.target_dir)),
    ]


def bindgen_command(config: DevLoopConfig, artifact: Path) -> list[str]:
    """``wasm-bindgen`` in web mode, without .d.ts files, keeping debug info."""
    return [
        *shlex.split(config.bindgen_cmd),
        str(artifact),
        "--target",
        "web",
        "--no-typescript",
        "--out-dir",
        str(config.generated_dir),
        "--out-name",
        config.package,
        "--debug",
        "--keep-debug",
    ]


def server_command(config: DevLoopConfig, serve_dir: Path) -> list[str]:
    """Command line for the configured static file server backend."""
    if config.server == "simple-http-server":
        # simple-http-server's --coep/--coop flags emit the same two values as
        # ISOLATION_HEADERS; it has no option for arbitrary headers.
        return [
            *shlex.split(config.http_server_cmd),
            str(serve_dir),
            "-c",
            ",".join(config.extensions),
            "-i",
            "--coep",
            "--coop",
            "--ip",
            config.host,
            "-p",
            str(config.port),
        ]
    cmd = [
        sys.executable,
        "-m",
        "devloop.web._serve_worker",
        str(serve_dir),
        "--host",
        config.host,
        "--port",
        str(config.port),
        "--ext",
        ",".join(config.extensions),
    ]
    for name, value in config.headers.items():
        cmd += ["--header", f"{name}: {value}"]
    return cmd


# ── Steps ──────────────────────────────────────────────────────────────────────


def run_build(config: DevLoopConfig, _previous: object = None) -> Path:
    """Compile the package to wasm and return the artifact path.

    Raises:
        BuildFailure: cargo could not be started or exited non-zero.
    """
    cmd = build_command(config)
    log_path = config.log_dir / "build.log"
    _console.print(f"[dim]$ {escape(shlex.join(cmd))}[/]")
    try:
        rc, output = run_logged(
            cmd, log_path, echo=config.verbose, cwd=config.project_dir
        )
    except OSError as exc:
        raise BuildFailure(
            f"Could not launch {cmd[0]}: {exc}", stderr=str(exc), log_path=log_path
        ) from exc
    if rc != 0:
        raise BuildFailure(
            f"cargo build exited with code {rc}",
            returncode=rc,
            stderr=output,
            log_path=log_path,
        )
    artifact = config.artifact_path
    _console.print(f"[green]Built[/] {artifact}  [dim]({BUILD_PROFILE})[/]")
    return artifact


def generate_bindings(config: DevLoopConfig, artifact: Path) -> Path:
    """Run wasm-bindgen on *artifact* and return the generated output directory.

    The output directory is wiped first (``clean_out_dir``) so files from a
    previous run never survive into this one.

    Raises:
        BindingGenerationFailure: cleaning failed, wasm-bindgen could not be
            started, or it exited non-zero (including a missing *artifact*).
    """
    out_dir = config.generated_dir
    log_path = config.log_dir / "bindings.log"
    if config.clean_out_dir and out_dir.exists():
        try:
            shutil.rmtree(out_dir)
        except OSError as exc:
            raise BindingGenerationFailure(
                f"Could not clear {out_dir}: {exc}", stderr=str(exc)
            ) from exc

    cmd = bindgen_command(config, artifact)
    _console.print(f"[dim]$ {escape(shlex.join(cmd))}[/]")
    try:
        rc, output = run_logged(
            cmd, log_path, echo=config.verbose, cwd=config.project_dir
        )
    except OSError as exc:
        raise BindingGenerationFailure(
            f"Could not launch {cmd[0]}: {exc}", stderr=str(exc), log_path=log_path
        ) from exc
    if rc != 0:
        raise BindingGenerationFailure(
            f"wasm-bindgen exited with code {rc}",
            returncode=rc,
            stderr=output,
            log_path=log_path,
        )
    _console.print(f"[green]Generated[/] bindings in {out_dir}")
    return out_dir


def stage_assets(config: DevLoopConfig, out_dir: Path) -> Path:
    """Copy the static entry page into *out_dir* and return *out_dir*.

    Raises:
        StagingFailure: missing source, permission denied, full disk, ...
    """
    source = config.resolve(config.index_html)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        dest = Path(shutil.copyfile(source, out_dir / source.name))
    except OSError as exc:
        reason = exc.strerror or str(exc)
        raise StagingFailure(
            f"Could not copy {source} into {out_dir}: {reason}", stderr=str(exc)
        ) from exc
    _console.print(f"[green]Staged[/] {dest.name}")
    return out_dir


def _server_env(config: DevLoopConfig) -> dict[str, str]:
    env = {**os.environ, "PYTHONUNBUFFERED": "1"}
    if config.server == "builtin":
        # The worker runs with cwd=project_dir, so make devloop importable
        # from a source checkout as well as from an installed copy.
        package_root = str(Path(__file__).resolve().parent.parent)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            package_root + os.pathsep + existing if existing else package_root
        )
    return env


def _stop_server(proc: "subprocess.Popen[bytes]") -> None:
    """Forward Ctrl-C to the server unless the terminal already delivered it."""
    if proc.poll() is not None:
        return
    if sys.platform == "win32":
        proc.terminate()
    else:
        proc.send_signal(signal.SIGINT)


def _wait_for_exit(proc: "subprocess.Popen[bytes]") -> int:
    """Wait for the server to exit, ignoring further Ctrl-C presses.

    The listener is only released once the child is gone, so the runner must
    not exit while it is still shutting down.
    """
    while True:
        try:
            return proc.wait()
        except KeyboardInterrupt:
            _console.print("[dim]Still stopping server...[/]")


def serve(config: DevLoopConfig, serve_dir: Path) -> ServerExit:
    """Run the static file server in the foreground until it exits or Ctrl-C.

    The server inherits stdout so request logs reach the terminal; its stderr
    goes to ``serve.log`` and is shown if the server dies on its own.

    Returns:
        ``ServerExit(0, True)`` after a graceful interrupt, or
        ``ServerExit(0, False)`` if the server exited cleanly by itself.

    Raises:
        ServerLaunchFailure: the server could not be started, or it exited
            non-zero without being interrupted (e.g. port already in use).
    """
    cmd = server_command(config, serve_dir)
    log_path = config.log_dir / "serve.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    _console.print(f"[dim]$ {escape(shlex.join(cmd))}[/]")
    _console.print(f"\n[bold]Serving[/] {serve_dir}")
    _console.print(f"   [cyan]{config.url}[/]")
    _console.print("[dim]   Press Ctrl+C to stop.[/]\n")

    interrupted = False
    with log_path.open("w", encoding="utf-8", errors="replace") as log_fh:
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(config.project_dir),
                stderr=log_fh,
                env=_server_env(config),
            )
        except OSError as exc:
            raise ServerLaunchFailure(
                f"Could not launch {cmd[0]}: {exc}",
                stderr=str(exc),
                log_path=log_path,
            ) from exc
        try:
            rc = proc.wait()
        except KeyboardInterrupt:
            interrupted = True
            _console.print("\n[dim]Interrupt received — stopping server...[/]")
            _stop_server(proc)
            rc = _wait_for_exit(proc)

    if interrupted:
        if rc in _GRACEFUL_INTERRUPT_CODES:
            _console.print("[green]Server stopped.[/]")
            return ServerExit(0, True)
        return ServerExit(rc, True)

    if rc != 0:
        output = log_path.read_text(encoding="utf-8", errors="replace")
        raise ServerLaunchFailure(
            f"Static server exited with code {rc}",
            returncode=rc,
            stderr=tail_text(output),
            log_path=log_path,
        )
    return ServerExit(0, False)
