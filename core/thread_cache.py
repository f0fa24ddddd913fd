# core/thread_cache.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Dict, Optional, Set

from core.models.post import ThreadNode

logger = logging.getLogger(__name__)

DEFAULT_PARENT_HEIGHT = 100
DEFAULT_DEPTH = 100


class ThreadCache:
    """
    Per-request arena of thread nodes keyed by post URI.

    Every remote call goes through here. Whatever a call returns (the focus
    post, its ancestor chain, and all nested replies) is merged in one pass,
    so later lookups for any of those posts are free.

    Tracks:
      - nodes: uri -> canonical ThreadNode (first one merged wins)
      - seen: uris already merged; re-merging them keeps the canonical node
        but still visits its replies, so newly discovered descendants land.
        A canonical node merged without replies (an ancestor stub) adopts
        the replies of a later copy.
      - fetch_count: number of underlying remote calls

    Concurrent fetches for the same uri coalesce into one remote call and all
    callers share its result (or its exception). Nodes are only inserted once
    fully built, so abandoning a request between calls leaves every cached
    entry valid.
    """

    def __init__(
        self,
        source,
        parent_height: int = DEFAULT_PARENT_HEIGHT,
        depth: int = DEFAULT_DEPTH,
    ):
        self.source = source
        self.parent_height = parent_height
        self.depth = depth

        self.nodes: Dict[str, ThreadNode] = {}
        self.seen: Set[str] = set()
        self.fetch_count = 0

        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, uri: str) -> bool:
        return uri in self.nodes

    # ---------- public ----------

    def get(self, uri: str) -> Optional[ThreadNode]:
        with self._lock:
            return self.nodes.get(uri)

    def get_or_fetch(self, uri: str) -> ThreadNode:
        """Return the cached node for `uri`, fetching (and merging) on a miss."""
        fresh = self._fetch(uri, use_cache=True)
        with self._lock:
            return self.nodes.get(uri, fresh)

    def fetch(self, uri: str) -> ThreadNode:
        """
        Force a remote call for `uri` and merge the result.

        Returns the freshly fetched focus node, which may differ from the
        canonical cached node when `uri` was already known.
        """
        return self._fetch(uri, use_cache=False)

    def merge(self, focus: ThreadNode) -> None:
        """Merge an already fetched window, e.g. one produced by a concurrent completer."""
        with self._lock:
            self._merge(focus)

    # ---------- internals ----------

    def _fetch(self, uri: str, use_cache: bool) -> ThreadNode:
        with self._lock:
            if use_cache:
                cached = self.nodes.get(uri)
                if cached is not None:
                    logger.debug("Cache HIT for %s", uri)
                    return cached

            future = self._in_flight.get(uri)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[uri] = future
                self.fetch_count += 1

        if not owner:
            logger.debug("Joining in-flight fetch for %s", uri)
            return future.result()

        try:
            logger.debug("Fetching thread for %s (parent_height=%d, depth=%d)", uri, self.parent_height, self.depth)
            fresh = self.source.get_thread(uri, self.parent_height, self.depth)
            with self._lock:
                self._merge(fresh)
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(fresh)
            return fresh
        finally:
            with self._lock:
                self._in_flight.pop(uri, None)
            if not future.done():
                future.cancel()

    def _merge(self, focus: ThreadNode) -> None:
        added = 0

        ancestor = focus.parent
        while ancestor is not None:
            if ancestor.uri not in self.seen:
                self.seen.add(ancestor.uri)
                self.nodes[ancestor.uri] = ancestor
                added += 1
            ancestor = ancestor.parent

        visited: Set[int] = set()
        stack = [focus]
        while stack:
            node = stack.pop()
            if id(node) in visited:
                continue
            visited.add(id(node))
            if node.uri not in self.seen:
                self.seen.add(node.uri)
                self.nodes[node.uri] = node
                added += 1
            else:
                self._adopt_replies(self.nodes[node.uri], node)
            stack.extend(node.replies)

        logger.debug("Merged %d new node(s) from %s; cache size=%d", added, focus.uri, len(self.nodes))

    @staticmethod
    def _adopt_replies(canonical: ThreadNode, fresh: ThreadNode) -> None:
        # Ancestor stubs arrive without replies; a later window may carry them.
        if canonical is fresh or canonical.replies or not fresh.replies:
            return
        canonical.replies = list(fresh.replies)
        for child in canonical.replies:
            child.parent = canonical
