"""Shared pytest fixtures and configuration

This file contains fixtures that can be used across all test files.
Pytest automatically discovers this file and makes fixtures available.
"""

import threading
from collections import defaultdict

import pytest

from core.errors import InvalidHandle, RemoteException, ThreadLoadFailure
from core.models.post import Author, PostRecord, ThreadNode

THREAD_VIEW = "app.bsky.feed.defs#threadViewPost"


def post_uri(did, rkey):
    return f"at://{did}/app.bsky.feed.post/{rkey}"


def ts(n):
    """Deterministic, lexicographically ordered createdAt values."""
    return f"2024-05-01T12:{n // 60:02d}:{n % 60:02d}.000Z"


def make_node(rkey, did="did:plc:alice", text="", created_at=None, replies=None, parent=None, reply_count=None):
    """Build a ThreadNode directly (no source involved)."""
    node = ThreadNode(
        uri=post_uri(did, rkey),
        cid=f"cid-{rkey}",
        author=Author(did=did, display_name=did.split(":")[-1].title(), handle=f"{did.split(':')[-1]}.bsky.social"),
        record=PostRecord(created_at=created_at or ts(0), text=text),
        reply_count=len(replies or []) if reply_count is None else reply_count,
        replies=list(replies or []),
        parent=parent,
    )
    for child in node.replies:
        child.parent = node
    return node


# ==================== Test Double ====================


class FakeThreadSource:
    """
    In-memory stand-in for the Bluesky AppView.

    Posts are registered with `add()`; `get_thread` answers with the same
    bounded window shape getPostThread returns (parent chain without replies,
    nested replies up to `depth`). Every call is recorded in `calls`.

    Knobs:
      - max_depth: cap applied on top of the requested depth
      - truncate_once: uris whose next fetch comes back without replies
      - failing: uris whose fetch raises ThreadLoadFailure
      - crashing: uris whose fetch raises a plain RuntimeError
      - reply_count_overrides: uri -> reported replyCount
    """

    def __init__(self, handles=None):
        self.posts = {}
        self.children = defaultdict(list)
        self.parents = {}
        self.handles = dict(handles or {})
        self.calls = []
        self.handle_calls = []
        self.max_depth = None
        self.truncate_once = set()
        self.failing = set()
        self.remote_errors = set()
        self.crashing = set()
        self.reply_count_overrides = {}
        self.lock = threading.Lock()

    def add(self, rkey, did="did:plc:alice", text="", created_at=None, parent=None, handle=None):
        uri = post_uri(did, rkey)
        self.posts[uri] = {
            "uri": uri,
            "cid": f"cid-{rkey}",
            "author": {
                "did": did,
                "handle": handle or f"{did.split(':')[-1]}.bsky.social",
                "displayName": did.split(":")[-1].title(),
            },
            "record": {
                "$type": "app.bsky.feed.post",
                "text": text,
                "createdAt": created_at or ts(len(self.posts)),
            },
            "likeCount": 0,
            "repostCount": 0,
        }
        if parent is not None:
            self.parents[uri] = parent
            self.children[parent].append(uri)
        return uri

    # ---------- RemoteThreadSource ----------

    def resolve_handle(self, handle):
        self.handle_calls.append(handle)
        if handle not in self.handles:
            raise InvalidHandle(handle)
        return self.handles[handle]

    def get_thread(self, uri, parent_height, depth):
        with self.lock:
            self.calls.append(uri)
            if uri in self.failing:
                raise ThreadLoadFailure(f"Failed to load thread for {uri}")
            if uri in self.remote_errors:
                raise RemoteException(f"boom for {uri}")
            if uri in self.crashing:
                raise RuntimeError("connection reset")
            if uri not in self.posts:
                raise ThreadLoadFailure(f"Post not found: {uri}")
            if self.max_depth is not None:
                depth = min(depth, self.max_depth)
            if uri in self.truncate_once:
                self.truncate_once.discard(uri)
                depth = 0
            view = self._view(uri, depth)
            view.update(self._parent_view(uri, parent_height))
        return ThreadNode.from_dict(view)

    # ---------- helpers ----------

    def _post(self, uri):
        post = dict(self.posts[uri])
        post["replyCount"] = self.reply_count_overrides.get(uri, len(self.children[uri]))
        return post

    def _view(self, uri, depth):
        view = {"$type": THREAD_VIEW, "post": self._post(uri)}
        if depth > 0:
            view["replies"] = [self._view(child, depth - 1) for child in self.children[uri]]
        return view

    def _parent_view(self, uri, height):
        parent = self.parents.get(uri)
        if parent is None or height <= 0:
            return {}
        view = {"$type": THREAD_VIEW, "post": self._post(parent)}
        view.update(self._parent_view(parent, height - 1))
        return {"parent": view}


# ==================== Fixtures ====================


@pytest.fixture
def source():
    return FakeThreadSource(handles={"alice.bsky.social": "did:plc:alice", "bob.bsky.social": "did:plc:bob"})


@pytest.fixture
def small_thread(source):
    """
    R (alice)
    ├── A (bob)        created after B in insertion, but earlier in time
    │   └── C (alice)
    └── B (carol)
    """
    r = source.add("r", "did:plc:alice", "root post", ts(0))
    b = source.add("b", "did:plc:carol", "second reply", ts(20), parent=r)
    a = source.add("a", "did:plc:bob", "first reply", ts(10), parent=r)
    c = source.add("c", "did:plc:alice", "nested reply", ts(30), parent=a)
    return {"r": r, "a": a, "b": b, "c": c}


@pytest.fixture
def static_dir(tmp_path):
    """Static directory holding a minimal index.html template"""
    (tmp_path / "index.html").write_text(
        "<html><head><!-- meta --></head><body></body></html>",
        encoding="utf-8",
    )
    return tmp_path


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as requiring API access")
