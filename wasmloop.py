"""wasmloop.py — Entry point. All logic lives in the devloop/ package.

Run with:
    python wasmloop.py              Build, bind, stage and serve the default package.
    python wasmloop.py my-crate     Same, for the cargo package ``my-crate``.
or, after pip install -e .:
    wasmloop

CLI flags:
    --config FILE   Read settings from FILE instead of ./devloop.json.
    --host HOST     Server bind address (default: 127.0.0.1).
    --port PORT     Server port (default: 8000).
    --verbose       Stream cargo / wasm-bindgen output live.
"""


def _cli() -> None:
    """Delegate to the pipeline entry point."""
    from devloop import main

    main()


if __name__ == "__main__":
    _cli()
