"""Shared fixtures for devloop unit tests."""

import shlex
import sys
import textwrap
from pathlib import Path

import pytest

# Stand-ins for cargo and wasm-bindgen: same arguments, same output layout.
_FAKE_CARGO = textwrap.dedent(
    """\
    import sys
    from pathlib import Path

    args = sys.argv[1:]
    target = args[args.index("--target") + 1]
    package = args[args.index("-p") + 1]
    target_dir = Path(args[args.index("--target-dir") + 1])
    if package == "missing":
        print("error: package ID specification `missing` did not match any packages",
              file=sys.stderr)
        sys.exit(101)
    out = target_dir / target / "debug"
    out.mkdir(parents=True, exist_ok=True)
    (out / f"{package}.wasm").write_bytes(b"\\x00asm\\x01\\x00\\x00\\x00" + package.encode())
    print(f"   Compiling {package} v0.1.0")
    """
)

_FAKE_BINDGEN = textwrap.dedent(
    """\
    import sys
    from pathlib import Path

    args = sys.argv[1:]
    source = Path(args[0])
    out_dir = Path(args[args.index("--out-dir") + 1])
    name = args[args.index("--out-name") + 1]
    if not source.is_file():
        print(f"error: failed reading '{source}'", file=sys.stderr)
        sys.exit(1)
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / f"{name}_bg.wasm").write_bytes(source.read_bytes())
    (out_dir / f"{name}.js").write_text(
        f"export default async function init() {{ return '{name}'; }}\\n",
        encoding="utf-8",
    )
    """
)


def _script_cmd(path: Path) -> str:
    return shlex.join([sys.executable, str(path)])


@pytest.fixture()
def crate_dir(tmp_path: Path) -> Path:
    """A project directory holding the static entry page."""
    project = tmp_path / "simple"
    project.mkdir()
    (project / "index.html").write_text(
        "<!DOCTYPE html><script type=module>import init from './simple.js'; init();</script>\n",
        encoding="utf-8",
    )
    return project


@pytest.fixture()
def fake_tools(tmp_path: Path) -> dict[str, str]:
    """Write fake cargo / wasm-bindgen scripts; return their command strings."""
    tools = tmp_path / "tools"
    tools.mkdir()
    cargo = tools / "fake_cargo.py"
    cargo.write_text(_FAKE_CARGO, encoding="utf-8")
    bindgen = tools / "fake_bindgen.py"
    bindgen.write_text(_FAKE_BINDGEN, encoding="utf-8")
    return {"cargo_cmd": _script_cmd(cargo), "bindgen_cmd": _script_cmd(bindgen)}


@pytest.fixture()
def dev_config(crate_dir: Path, fake_tools: dict[str, str]):
    """A DevLoopConfig rooted at *crate_dir* that uses the fake tools."""
    from devloop.config import DevLoopConfig

    return DevLoopConfig(project_dir=crate_dir, **fake_tools)


@pytest.fixture()
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run in an empty cwd with no command overrides in the environment."""
    for var in ("CARGO_CMD", "WASM_BINDGEN_CMD", "SIMPLE_HTTP_SERVER_CMD"):
        monkeypatch.delenv(var, raising=False)
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)
    return cwd
