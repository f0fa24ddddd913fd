# core/thread_loader.py
"""
Assemble a full Bluesky conversation from bounded getPostThread windows.

    url -> resolve_post_uri -> find_root -> complete_branch -> project

`load_thread` is the single entry point for the server, the bot and the CLI.
It never raises for the failures in core.errors; callers get either a
ThreadLoadResult or a LoadFailure back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Set, Union

from core.errors import FailureKind, RemoteException, SkyviewError, ThreadLoadFailure
from core.models.post import ThreadNode
from core.thread_cache import DEFAULT_DEPTH, DEFAULT_PARENT_HEIGHT, ThreadCache
from core.urls import resolve_post_uri
from core.views import DEFAULT_MENTION, ViewType, by_created_at, project

logger = logging.getLogger(__name__)


@dataclass
class ThreadLoadResult:
    thread: ThreadNode
    original_uri: str
    root_uri: str
    view_type: ViewType = ViewType.TREE
    fetch_count: int = 0


@dataclass
class LoadFailure:
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return self.message


def find_root(cache: ThreadCache, start_uri: str) -> ThreadNode:
    """Walk parent back-references up from `start_uri` until a post has none."""
    current = cache.get_or_fetch(start_uri)
    visited = {current.uri}

    while current.parent is not None:
        parent_uri = current.parent.uri
        if parent_uri in visited:
            raise ThreadLoadFailure(f"cyclic parent chain at {parent_uri}")
        visited.add(parent_uri)
        current = cache.get_or_fetch(parent_uri)

    logger.debug("Root of %s is %s (%d hop(s))", start_uri, current.uri, len(visited) - 1)
    return current


def complete_branch(cache: ThreadCache, node: ThreadNode, _completed: Optional[Set[str]] = None) -> ThreadNode:
    """
    Make sure every post under `node` carries its full reply list.

    A post that reports replies but came back without any (the depth bound
    cut it off) is fetched again on its own. Re-fetch failures below the root
    only cost that branch: it keeps whatever replies were already known.
    Each post is completed at most once per pass; replies end up sorted by
    createdAt with no duplicates.
    """
    completed = _completed if _completed is not None else set()
    if node.uri in completed:
        return node
    completed.add(node.uri)

    if not node.replies and node.reply_count > 0:
        try:
            fresh = cache.fetch(node.uri)
        except SkyviewError as e:
            logger.warning("Could not expand replies of %s, keeping branch as-is: %s", node.uri, e.detail or e)
        except Exception as e:
            logger.warning("Could not expand replies of %s, keeping branch as-is: %s", node.uri, e, exc_info=True)
        else:
            if fresh.replies:
                node.replies = list(fresh.replies)

    full_replies = []
    known: Set[str] = set()
    for reply in node.replies:
        if reply.uri in known:
            continue
        known.add(reply.uri)

        try:
            full = cache.get_or_fetch(reply.uri)
        except SkyviewError as e:
            logger.warning("Could not load reply %s, using partial view: %s", reply.uri, e.detail or e)
            full = reply
        except Exception as e:
            logger.warning("Could not load reply %s, using partial view: %s", reply.uri, e, exc_info=True)
            full = reply

        full.parent = node
        full_replies.append(complete_branch(cache, full, completed))

    node.replies = by_created_at(full_replies)
    return node


def collect_full_thread(cache: ThreadCache, post_uri: str) -> ThreadNode:
    """Find the conversation root for `post_uri` and complete it."""
    root = find_root(cache, post_uri)
    return complete_branch(cache, root)


def load_thread(
    url: str,
    view_type=ViewType.TREE,
    source=None,
    *,
    mention: str = DEFAULT_MENTION,
    parent_height: int = DEFAULT_PARENT_HEIGHT,
    depth: int = DEFAULT_DEPTH,
) -> Union[ThreadLoadResult, LoadFailure]:
    """
    Load the conversation containing the post at `url`, shaped for `view_type`.

    - tree: the completed root; `original_uri` marks the requested post.
    - embed: the requested post alone (or its parent for "@service embed" posts).
      Unlike tree and unroll this targets the requested post, not the root,
      so a command reply can point at the post it answers.
    - unroll: the root followed by its author's self-reply chain.
    """
    view = ViewType.parse(view_type)

    if source is None:
        # Imported lazily so the core stays usable with any test double.
        from socials.bluesky_client import BlueskyThreadSource

        source = BlueskyThreadSource()

    original_uri = None
    try:
        original_uri = resolve_post_uri(url, source)

        cache = ThreadCache(source, parent_height=parent_height, depth=depth)
        root = collect_full_thread(cache, original_uri)

        if view is ViewType.EMBED:
            target = cache.get(original_uri) or root
        else:
            target = root

        thread = project(target, view, mention)
    except SkyviewError as e:
        logger.info("Failed to load %s (%s): %s", url, e.kind.value, e.detail or e.user_message)
        return LoadFailure(kind=e.kind, message=e.user_message)
    except Exception as e:
        logger.exception("Unexpected error loading %s", url)
        err = RemoteException(str(e))
        return LoadFailure(kind=err.kind, message=err.user_message)

    logger.info(
        "Loaded %s as %s: root=%s, %d post(s), %d remote call(s)",
        original_uri,
        view.value,
        root.uri,
        len(cache),
        cache.fetch_count,
    )
    return ThreadLoadResult(
        thread=thread,
        original_uri=original_uri,
        root_uri=root.uri,
        view_type=view,
        fetch_count=cache.fetch_count,
    )
