"""config.py — Rich console, pipeline configuration, and config-file loader."""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from rich.console import Console

# legacy_windows=False keeps Rich on ANSI sequences instead of the Win32
# console API, which cannot encode box-drawing characters.
_console = Console(legacy_windows=False, highlight=False)

# ── Fixed pipeline constants ───────────────────────────────────────────────────

# Only debug builds are produced; bindings keep debug info to match.
BUILD_PROFILE = "debug"

CONFIG_FILENAME = "devloop.json"

# Per-step logs and failure reports live under <target_dir>/devloop/logs so the
# served directory only ever holds generated glue and staged assets.
LOG_SUBDIR = Path("devloop") / "logs"

# Number of log tail lines shown inline when a step fails in compact mode.
_LOG_TAIL_LINES: int = 40

# Browsers only expose SharedArrayBuffer (threaded wasm) to pages that are
# cross-origin isolated, which takes both of these headers.
ISOLATION_HEADERS: dict[str, str] = {
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
}

DEFAULT_EXTENSIONS: tuple[str, ...] = ("wasm", "html", "js")

SERVER_BACKENDS = frozenset({"builtin", "simple-http-server"})

# Executable overrides, e.g. a rustup toolchain shim or a wrapper script.
_ENV_COMMANDS: dict[str, str] = {
    "CARGO_CMD": "cargo_cmd",
    "WASM_BINDGEN_CMD": "bindgen_cmd",
    "SIMPLE_HTTP_SERVER_CMD": "http_server_cmd",
}

_PATH_FIELDS = frozenset({"project_dir", "target_dir", "out_dir", "index_html"})


class ConfigError(Exception):
    """Raised when ``devloop.json`` or a CLI override cannot be turned into a config."""


@dataclass
class DevLoopConfig:
    """Everything the runner needs; relative paths resolve against ``project_dir``."""

    package: str = "simple"
    target_triple: str = "wasm32-unknown-unknown"
    project_dir: Path = Path(".")
    target_dir: Path = Path("target")
    out_dir: Path = Path("target") / "generated"
    index_html: Path = Path("index.html")
    host: str = "127.0.0.1"
    port: int = 8000
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    headers: dict[str, str] = field(default_factory=lambda: dict(ISOLATION_HEADERS))
    server: str = "builtin"
    clean_out_dir: bool = True
    cargo_cmd: str = "cargo"
    bindgen_cmd: str = "wasm-bindgen"
    http_server_cmd: str = "simple-http-server"
    verbose: bool = False

    def resolve(self, path: Path) -> Path:
        """Return *path* anchored at ``project_dir`` unless it is already absolute.

        The result is always absolute: child processes run with
        ``cwd=project_dir`` and must not re-interpret a relative path.
        """
        return (path if path.is_absolute() else self.project_dir / path).absolute()

    @property
    def artifact_path(self) -> Path:
        """Where ``cargo build`` leaves the compiled module for this package."""
        return (
            self.resolve(self.target_dir)
            / self.target_triple
            / BUILD_PROFILE
            / f"{self.package}.wasm"
        )

    @property
    def generated_dir(self) -> Path:
        return self.resolve(self.out_dir)

    @property
    def log_dir(self) -> Path:
        return self.resolve(self.target_dir) / LOG_SUBDIR

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"


# ── Loading ────────────────────────────────────────────────────────────────────


def _strip_jsonc_comments(text: str) -> str:
    """Remove ``//`` line comments from JSONC text (string-aware)."""
    out: list[str] = []
    i = 0
    in_string = False
    while i < len(text):
        c = text[i]
        if in_string:
            out.append(c)
            if c == "\\":
                i += 1
                if i < len(text):
                    out.append(text[i])
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
            out.append(c)
        elif c == "/" and i + 1 < len(text) and text[i + 1] == "/":
            while i < len(text) and text[i] != "\n":
                i += 1
            continue
        else:
            out.append(c)
        i += 1
    return "".join(out)


def normalize_extensions(extensions: list[str] | tuple[str, ...]) -> list[str]:
    """Lower-case *extensions* and drop leading dots (``".WASM"`` → ``"wasm"``)."""
    result: list[str] = []
    for ext in extensions:
        clean = ext.strip().lstrip(".").lower()
        if clean and clean not in result:
            result.append(clean)
    return result


def _read_config_file(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    try:
        data = json.loads(_strip_jsonc_comments(raw))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object at the top level.")
    return data


def _validate(config: DevLoopConfig) -> None:
    if not config.package or not isinstance(config.package, str):
        raise ConfigError("package must be a non-empty string.")
    if not isinstance(config.port, int) or isinstance(config.port, bool):
        raise ConfigError(f"port must be an integer, got {config.port!r}.")
    if not 0 <= config.port <= 65535:
        raise ConfigError(f"port {config.port} is outside 0-65535.")
    if config.server not in SERVER_BACKENDS:
        raise ConfigError(
            f"server must be one of {sorted(SERVER_BACKENDS)}, got {config.server!r}."
        )
    if not isinstance(config.extensions, (list, tuple)) or not all(
        isinstance(e, str) for e in config.extensions
    ):
        raise ConfigError("extensions must be a list of strings.")
    config.extensions = normalize_extensions(config.extensions)
    if not config.extensions:
        raise ConfigError("extensions must name at least one file extension.")
    if not isinstance(config.headers, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in config.headers.items()
    ):
        raise ConfigError("headers must map header names to string values.")


def load_config(path: Path | None = None, **overrides: object) -> DevLoopConfig:
    """Build a :class:`DevLoopConfig` from defaults, file, environment and *overrides*.

    Precedence (lowest first): dataclass defaults → ``devloop.json`` (or
    *path*) → ``CARGO_CMD`` / ``WASM_BINDGEN_CMD`` / ``SIMPLE_HTTP_SERVER_CMD``
    → keyword *overrides* whose value is not None.

    Args:
        path:        Explicit config file.  Must exist when given; when omitted,
                     ``devloop.json`` in the working directory is used if present.
        **overrides: Field values from the command line.

    Raises:
        ConfigError: unreadable file, invalid JSON, unknown keys or bad values.
    """
    known = {f.name for f in fields(DevLoopConfig)}
    values: dict[str, object] = {}

    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        values.update(_read_config_file(path))
    elif Path(CONFIG_FILENAME).is_file():
        values.update(_read_config_file(Path(CONFIG_FILENAME)))

    for env_var, key in _ENV_COMMANDS.items():
        if os.environ.get(env_var):
            values[key] = os.environ[env_var]

    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")

    for key in _PATH_FIELDS & set(values):
        if not isinstance(values[key], (str, Path)):
            raise ConfigError(f"{key} must be a path string.")
        values[key] = Path(values[key])  # type: ignore[arg-type]

    config = DevLoopConfig(**values)  # type: ignore[arg-type]
    _validate(config)
    return config
