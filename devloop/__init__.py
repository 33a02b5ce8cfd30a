"""devloop — Local development loop for Rust crates compiled to WebAssembly.

Pipeline per run: Build → Generate bindings → Stage assets → Serve.
"""

from devloop.pipeline import main

__all__ = ["main"]
