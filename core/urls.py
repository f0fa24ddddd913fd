# core/urls.py
from __future__ import annotations

import logging
from typing import Optional, Tuple
from urllib.parse import urlsplit

from core.errors import InvalidHandle, InvalidUrl
from core.models.post import POST_COLLECTION, Author

logger = logging.getLogger(__name__)

DID_PREFIX = "did:"
WEB_APP_URL = "https://bsky.app"


def parse_at_uri(uri: str) -> Tuple[str, str, str]:
    """
    Parse an at:// URI:
      at://did:plc:XXXX/app.bsky.feed.post/3m4abc... -> (repo, collection, rkey)
    """
    if not uri.startswith("at://"):
        raise ValueError(f"Not an at:// uri: {uri}")
    parts = uri[5:].split("/")
    if len(parts) < 3 or not all(parts[:3]):
        raise ValueError(f"Malformed at:// uri: {uri}")
    repo = parts[0]
    collection = "/".join(parts[1:-1])
    rkey = parts[-1]
    return repo, collection, rkey


def parse_post_url(url: Optional[str]) -> Tuple[str, str]:
    """
    Split a shareable post URL into (actor, rkey).

    Accepts https://bsky.app/profile/<actor>/post/<rkey> (scheme optional,
    query string ignored) and raw at://<actor>/app.bsky.feed.post/<rkey> URIs.
    The actor is either a DID or a handle.
    """
    url = (url or "").strip()
    if not url:
        raise InvalidUrl("empty url")

    if url.startswith("at://"):
        try:
            actor, _collection, rkey = parse_at_uri(url)
        except ValueError as e:
            raise InvalidUrl(str(e)) from e
        return actor, rkey

    if "://" not in url:
        url = f"https://{url}"

    # /profile/<actor>/post/<rkey> -> ["", "profile", actor, "post", rkey]
    segments = urlsplit(url).path.split("/")
    actor = segments[2] if len(segments) > 2 else ""
    rkey = segments[4] if len(segments) > 4 else ""
    if not actor or not rkey:
        raise InvalidUrl(f"missing actor or record key in {url}")
    return actor, rkey


def post_uri(did: str, rkey: str) -> str:
    return f"at://{did}/{POST_COLLECTION}/{rkey}"


def resolve_post_uri(url: str, source) -> str:
    """
    Turn a shareable post URL into a canonical at:// post URI.

    Handles are resolved to DIDs through `source.resolve_handle`, which raises
    InvalidHandle when the handle does not resolve.
    """
    actor, rkey = parse_post_url(url)

    if actor.startswith(DID_PREFIX):
        did = actor
    else:
        logger.debug("Resolving handle %s", actor)
        did = source.resolve_handle(actor)
        if not did:
            raise InvalidHandle(actor)

    return post_uri(did, rkey)


def post_web_url(uri: str, author: Optional[Author] = None) -> str:
    """The bsky.app link for a post URI (prefers the author's DID as actor)."""
    repo, _collection, rkey = parse_at_uri(uri)
    actor = author.did if author else repo
    return f"{WEB_APP_URL}/profile/{actor}/post/{rkey}"


def profile_web_url(author: Author) -> str:
    return f"{WEB_APP_URL}/profile/{author.handle or author.did}"
