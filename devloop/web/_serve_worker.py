"""Subprocess worker: serves a directory with the built-in FastAPI app.

Invoked by the Serve step as:
    python -m devloop.web._serve_worker <directory> --host H --port P
        --ext wasm,html,js --header "Name: value" ...

uvicorn handles SIGINT itself: it stops accepting, closes the listening
socket and returns, so a Ctrl+C ends this process with exit code 0.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

from devloop.config import DEFAULT_EXTENSIONS, ISOLATION_HEADERS
from devloop.web.app import create_app


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value', got {raw!r}")
    return name.strip(), value.strip()


def build_server(
    directory: Path,
    host: str,
    port: int,
    extensions: list[str] | tuple[str, ...] = DEFAULT_EXTENSIONS,
    headers: dict[str, str] | None = None,
) -> uvicorn.Server:
    """Return an un-started uvicorn server for *directory*."""
    app = create_app(directory, extensions, headers)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    return uvicorn.Server(config)


def main(argv: list[str] | None = None) -> None:
    """Entry point: parse args and serve until interrupted."""
    parser = argparse.ArgumentParser(prog="python -m devloop.web._serve_worker")
    parser.add_argument("directory", type=Path)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--ext", default=",".join(DEFAULT_EXTENSIONS))
    parser.add_argument("--header", type=_parse_header, action="append")
    args = parser.parse_args(argv)

    if not args.directory.is_dir():
        print(f"Serve directory not found: {args.directory}", file=sys.stderr)
        sys.exit(1)

    headers = dict(args.header) if args.header else dict(ISOLATION_HEADERS)
    server = build_server(
        args.directory, args.host, args.port, args.ext.split(","), headers
    )
    try:
        server.run()
    except KeyboardInterrupt:
        # Newer uvicorn re-raises the captured SIGINT once shutdown is done.
        return
    # uvicorn reports some bind failures by logging and leaving started=False.
    if not server.started:
        sys.exit(1)


if __name__ == "__main__":
    main()
