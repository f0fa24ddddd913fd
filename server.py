#!/usr/bin/env python
"""
HTTP front end for Skyview.

- `/` serves index.html with OpenGraph / Twitter card tags describing the
  requested thread (cached per (url, viewtype)).
- `/oembed` returns an oEmbed "rich" document for a single post.
- `/api/thread` returns the assembled thread as JSON.
- Everything else is served as static files from the static directory.
"""

import html
import json
import logging
import threading
from collections import OrderedDict
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, quote, urlsplit

from core.errors import FailureKind
from core.thread_loader import LoadFailure, ThreadLoadResult, load_thread
from core.urls import post_web_url, profile_web_url
from core.views import ViewType
from utils.others import truncate_text

logger = logging.getLogger("skyview.server")

META_PLACEHOLDER = "<!-- meta -->"

DEFAULT_META = """
        <meta property="og:title" content="Skyview" />
        <meta property="og:type" content="website" />
        <meta property="og:description" content="Share BlueSky posts and threads externally" />
        <meta property="og:url" content="{base_url}" />
        <meta name="twitter:card" content="summary_large_image" />"""

EMBED_WIDTH = 400
EMBED_HEIGHT = 600


class MetaCache:
    """Bounded, thread-safe LRU of rendered responses keyed by (url, viewtype)."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max(1, int(max_size))
        self._items: "OrderedDict[Tuple[str, str], Any]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: Tuple[str, str]) -> Optional[Any]:
        with self._lock:
            if key not in self._items:
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def set(self, key: Tuple[str, str], value: Any) -> None:
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)


def render_meta(result: ThreadLoadResult, page_url: str) -> str:
    node = result.thread
    author = node.author
    name = html.escape(author.display_name or author.handle or author.did, quote=True)
    text = html.escape(truncate_text(node.record.text), quote=True)
    tags = [
        f'<meta property="og:title" content="A BlueSky thread by {name}" />',
        '<meta property="og:type" content="article" />',
        f'<meta property="og:description" content="{text}" />',
    ]
    if author.avatar:
        tags.append(f'<meta property="og:image" content="{html.escape(author.avatar, quote=True)}" />')
    tags.append(f'<meta property="og:url" content="{html.escape(page_url, quote=True)}" />')
    tags.append('<meta name="twitter:card" content="summary_large_image" />')
    return "\n        " + "\n        ".join(tags)


def embed_iframe(base_url: str, url: str, width: int = EMBED_WIDTH, height: int = EMBED_HEIGHT) -> str:
    src = f"{base_url.rstrip('/')}/embed.html?url={quote(url, safe='')}"
    return (
        f'<iframe src="{html.escape(src, quote=True)}" '
        f'style="border: none; outline: none; width: {width}px; height: {height}px"></iframe>'
    )


def render_oembed(result: ThreadLoadResult, url: str, base_url: str, maxwidth=None, maxheight=None) -> Dict[str, Any]:
    node = result.thread
    width = min(EMBED_WIDTH, maxwidth) if maxwidth else EMBED_WIDTH
    height = min(EMBED_HEIGHT, maxheight) if maxheight else EMBED_HEIGHT
    return {
        "version": "1.0",
        "type": "rich",
        "title": truncate_text(node.record.text, limit=120),
        "author_name": node.author.display_name or node.author.handle or node.author.did,
        "author_url": profile_web_url(node.author),
        "provider_name": "Skyview",
        "provider_url": base_url,
        "url": post_web_url(node.uri, node.author),
        "cache_age": 3600,
        "html": embed_iframe(base_url, url, width, height),
        "width": width,
        "height": height,
    }


class SkyviewApp:
    """Everything the request handler needs, shared across handler threads."""

    def __init__(self, config: Dict[str, Any], source=None, loader=load_thread):
        server_cfg = config.get("server", {}) or {}
        bsky_cfg = config.get("bluesky", {}) or {}

        self.base_url = server_cfg.get("base_url", "https://skyview.social")
        self.static_dir = Path(server_cfg.get("static_dir", "static")).resolve()
        self.mention = bsky_cfg.get("mention_handle", "@skyview.social")
        self.parent_height = int(bsky_cfg.get("parent_height", 100))
        self.depth = int(bsky_cfg.get("depth", 100))

        self.source = source
        self.loader = loader
        self.meta_cache = MetaCache(server_cfg.get("meta_cache_size", 1000))
        self.oembed_cache = MetaCache(server_cfg.get("meta_cache_size", 1000))

        index_path = self.static_dir / "index.html"
        self.index_template = index_path.read_text(encoding="utf-8")
        if META_PLACEHOLDER not in self.index_template:
            logger.warning("%s has no %s placeholder; pages will carry no meta tags", index_path, META_PLACEHOLDER)

    def load(self, url: str, view_type):
        return self.loader(
            url,
            view_type,
            self.source,
            mention=self.mention,
            parent_height=self.parent_height,
            depth=self.depth,
        )

    def meta_for(self, url: Optional[str], view_type: ViewType, page_url: str) -> str:
        if not url:
            return DEFAULT_META.format(base_url=self.base_url)

        key = (url, view_type.value)
        logger.info("Generating meta for: %s|%s", *key)
        cached = self.meta_cache.get(key)
        if cached is not None:
            logger.info("Using cached meta for %s|%s", *key)
            return cached

        result = self.load(url, view_type)
        if isinstance(result, LoadFailure):
            return DEFAULT_META.format(base_url=self.base_url)

        meta = render_meta(result, page_url)
        logger.info("Setting meta cache entry for %s|%s", *key)
        self.meta_cache.set(key, meta)
        return meta

    def render_index(self, url: Optional[str], view_type: ViewType, page_url: str) -> str:
        return self.index_template.replace(META_PLACEHOLDER, self.meta_for(url, view_type, page_url))

    def oembed_for(self, url: str, maxwidth=None, maxheight=None):
        """oEmbed for the single post behind `url` (always the embed view)."""
        key = (url, ViewType.EMBED.value)
        cached = self.oembed_cache.get(key)
        if cached is None:
            result = self.load(url, ViewType.EMBED)
            if isinstance(result, LoadFailure):
                return result
            cached = result
            self.oembed_cache.set(key, cached)
        return render_oembed(cached, url, self.base_url, maxwidth, maxheight)


def _int_param(params: Dict[str, list], name: str) -> Optional[int]:
    try:
        value = int(params.get(name, [""])[0])
    except ValueError:
        return None
    return value if value > 0 else None


class SkyviewHandler(SimpleHTTPRequestHandler):
    """Static files plus the three dynamic routes."""

    def __init__(self, *args, app: SkyviewApp, **kwargs):
        self.app = app
        super().__init__(*args, directory=str(app.static_dir), **kwargs)

    def log_message(self, format: str, *args) -> None:  # noqa: A003
        logger.debug("HTTP: " + format, *args)

    def do_GET(self) -> None:
        parts = urlsplit(self.path)
        params = parse_qs(parts.query)
        url = params.get("url", [None])[0]
        view_type = ViewType.parse(params.get("viewtype", [None])[0])

        try:
            if parts.path in ("/", "/index.html"):
                self._send(200, "text/html; charset=utf-8", self.app.render_index(url, view_type, self.path))
                return
            if parts.path == "/oembed":
                self._handle_oembed(url, params)
                return
            if parts.path == "/api/thread":
                self._handle_thread_api(url, view_type)
                return
        except Exception as exc:  # pragma: no cover - last resort
            logger.exception("Error handling %s: %s", self.path, exc)
            self._send_json(500, {"error": "internal server error"})
            return

        super().do_GET()

    def _handle_oembed(self, url: Optional[str], params: Dict[str, list]) -> None:
        if not url:
            self._send_json(400, {"error": "missing url parameter"})
            return
        result = self.app.oembed_for(url, _int_param(params, "maxwidth"), _int_param(params, "maxheight"))
        if isinstance(result, LoadFailure):
            status = 502 if result.kind is FailureKind.REMOTE_EXCEPTION else 404
            self._send_json(status, {"error": result.message})
            return
        self._send_json(200, result)

    def _handle_thread_api(self, url: Optional[str], view_type: ViewType) -> None:
        if not url:
            self._send_json(400, {"error": "missing url parameter"})
            return
        result = self.app.load(url, view_type)
        if isinstance(result, LoadFailure):
            self._send_json(400, {"error": result.message, "kind": result.kind.value})
            return
        self._send_json(
            200,
            {
                "thread": result.thread.to_dict(),
                "originalUri": result.original_uri,
                "rootUri": result.root_uri,
                "viewType": result.view_type.value,
            },
        )

    def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
        self._send(status, "application/json", json.dumps(payload))

    def _send(self, status: int, content_type: str, body: str) -> None:
        data = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(data)


def make_server(app: SkyviewApp, host: str = "0.0.0.0", port: int = 3333) -> ThreadingHTTPServer:
    return ThreadingHTTPServer((host, port), partial(SkyviewHandler, app=app))


def serve(app: SkyviewApp, host: str = "0.0.0.0", port: int = 3333) -> None:
    with make_server(app, host, port) as httpd:
        logger.info("App listening on http://%s:%d/", host, port)
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down server...")
