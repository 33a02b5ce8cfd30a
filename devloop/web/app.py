"""app.py — FastAPI static file server for the generated wasm output."""

import html
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response

from devloop.config import ISOLATION_HEADERS, normalize_extensions

# Hardcoded MIME map: bypasses Python's mimetypes module which reads from
# the Windows registry and often maps .js to text/plain.  Browsers refuse
# WebAssembly.instantiateStreaming() unless .wasm is application/wasm.
_MIME_MAP: dict[str, str] = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
    ".html": "text/html",
    ".htm": "text/html",
    ".json": "application/json",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".ico": "image/x-icon",
    ".map": "application/json",
    ".wasm": "application/wasm",
}

_INDEX_FILES = ("index.html", "index.htm")


def _resolve_within(root: Path, path: str) -> Path | None:
    """Return ``root / path`` resolved, or None if it is not servable.

    None covers paths that escape *root*, do not exist, or that the OS
    rejects outright (embedded NUL, over-long names).
    """
    try:
        target = (root / path).resolve()
        if not (target == root or root in target.parents):
            return None
        if not target.exists():
            return None
    except (OSError, ValueError):
        return None
    return target


def _is_allowed(path: Path, extensions: list[str]) -> bool:
    return path.suffix.lower().lstrip(".") in extensions


def _listing(directory: Path, url_path: str, extensions: list[str]) -> str:
    """Render an HTML index of *directory*: subdirectories and allowed files only."""
    title = html.escape(f"Index of /{url_path}")
    rows: list[str] = []
    if url_path:
        rows.append('<li><a href="../">../</a></li>')
    for entry in sorted(directory.iterdir(), key=lambda p: (not p.is_dir(), p.name)):
        if entry.is_dir():
            name = entry.name + "/"
        elif entry.is_file() and _is_allowed(entry, extensions):
            name = entry.name
        else:
            continue
        rows.append(f'<li><a href="{quote(name)}">{html.escape(name)}</a></li>')
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><meta charset=\"utf-8\"><title>{title}</title></head>\n"
        f"<body><h1>{title}</h1><ul>\n" + "\n".join(rows) + "\n</ul></body></html>\n"
    )


def create_app(
    root: Path,
    extensions: list[str] | tuple[str, ...],
    headers: dict[str, str] | None = None,
) -> FastAPI:
    """Build the static file app serving *root*.

    Args:
        root:       Directory to serve.
        extensions: Allow-listed file extensions; anything else is a 404.
        headers:    Response headers added to every response (default:
                    the COEP/COOP pair needed for cross-origin isolation).
    """
    root = root.resolve()
    allowed = normalize_extensions(extensions)
    extra_headers = dict(ISOLATION_HEADERS if headers is None else headers)

    app = FastAPI(title="wasmloop", docs_url=None, redoc_url=None, openapi_url=None)

    @app.middleware("http")
    async def _add_headers(request: Request, call_next):  # type: ignore[no-untyped-def]
        response = await call_next(request)
        for name, value in extra_headers.items():
            response.headers[name] = value
        return response

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    def serve_path(path: str) -> Response:
        """Serve a file, a directory's index page, or a directory listing."""
        target = _resolve_within(root, path)
        if target is None:
            raise HTTPException(status_code=404, detail="Not found")

        if target.is_dir():
            if path and not path.endswith("/"):
                # Relative links in index pages only work with a trailing slash.
                return RedirectResponse(url=f"/{quote(path)}/", status_code=301)
            for name in _INDEX_FILES:
                index = target / name
                if index.is_file() and _is_allowed(index, allowed):
                    return FileResponse(index, media_type="text/html")
            return HTMLResponse(_listing(target, path, allowed))

        if not target.is_file() or not _is_allowed(target, allowed):
            raise HTTPException(status_code=404, detail="Not found")
        media_type = _MIME_MAP.get(target.suffix.lower(), "application/octet-stream")
        return FileResponse(target, media_type=media_type)

    return app
