# core/models/post.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

POST_COLLECTION = "app.bsky.feed.post"

# Thread entries that carry no post (deleted, blocked, detached quote, ...)
_UNVIEWABLE_TYPES = {
    "app.bsky.feed.defs#notFoundPost",
    "app.bsky.feed.defs#blockedPost",
    "app.bsky.embed.record#viewNotFound",
    "app.bsky.embed.record#viewBlocked",
    "app.bsky.embed.record#viewDetached",
}


def _is_viewable(data: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(data, dict):
        return False
    if data.get("$type") in _UNVIEWABLE_TYPES:
        return False
    return not data.get("notFound") and not data.get("blocked")


@dataclass
class Author:
    did: str
    display_name: str = ""
    avatar: Optional[str] = None
    handle: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Author":
        return cls(
            did=data["did"],
            display_name=data.get("displayName") or "",
            avatar=data.get("avatar"),
            handle=data.get("handle"),
        )

    @property
    def name(self) -> str:
        """Display name, falling back to the handle (then the DID)."""
        return self.display_name or self.handle or self.did

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"did": self.did, "displayName": self.display_name}
        if self.avatar:
            out["avatar"] = self.avatar
        if self.handle:
            out["handle"] = self.handle
        return out


@dataclass
class Facet:
    """A rich-text annotation spanning [byte_start, byte_end) of the UTF-8 text."""

    byte_start: int
    byte_end: int
    features: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Facet":
        index = data.get("index") or {}
        return cls(
            byte_start=int(index.get("byteStart", 0)),
            byte_end=int(index.get("byteEnd", 0)),
            features=[dict(f) for f in data.get("features") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": {"byteStart": self.byte_start, "byteEnd": self.byte_end},
            "features": self.features,
        }


@dataclass
class PostRecord:
    created_at: str
    text: str = ""
    facets: List[Facet] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostRecord":
        return cls(
            created_at=data.get("createdAt") or "",
            text=data.get("text") or "",
            facets=[Facet.from_dict(f) for f in data.get("facets") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"createdAt": self.created_at, "text": self.text}
        if self.facets:
            out["facets"] = [f.to_dict() for f in self.facets]
        return out


@dataclass
class Image:
    thumb: str
    fullsize: str
    alt: str = ""
    aspect_ratio: Optional[Dict[str, int]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Image":
        ratio = data.get("aspectRatio")
        return cls(
            thumb=data.get("thumb") or "",
            fullsize=data.get("fullsize") or "",
            alt=data.get("alt") or "",
            aspect_ratio={"width": int(ratio["width"]), "height": int(ratio["height"])} if ratio else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"thumb": self.thumb, "fullsize": self.fullsize, "alt": self.alt}
        if self.aspect_ratio:
            out["aspectRatio"] = dict(self.aspect_ratio)
        return out


@dataclass
class ExternalCard:
    uri: str
    title: str = ""
    description: str = ""
    thumb: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalCard":
        return cls(
            uri=data.get("uri") or "",
            title=data.get("title") or "",
            description=data.get("description") or "",
            thumb=data.get("thumb"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"uri": self.uri, "title": self.title, "description": self.description}
        if self.thumb:
            out["thumb"] = self.thumb
        return out


@dataclass
class QuotedPost:
    """A post embedded by reference (quote post), possibly carrying its own media."""

    uri: str
    cid: str
    author: Author
    value: Optional[PostRecord] = None
    embeds: List["Embed"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["QuotedPost"]:
        # record_with_media wraps the view record one level deeper
        if isinstance(data, dict) and "author" not in data and isinstance(data.get("record"), dict):
            data = data["record"]
        if not _is_viewable(data) or "author" not in data:
            return None
        value = data.get("value")
        return cls(
            uri=data.get("uri") or "",
            cid=data.get("cid") or "",
            author=Author.from_dict(data["author"]),
            value=PostRecord.from_dict(value) if isinstance(value, dict) else None,
            embeds=[Embed.from_dict(e) for e in data.get("embeds") or [] if isinstance(e, dict)],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "uri": self.uri,
            "cid": self.cid,
            "author": self.author.to_dict(),
            "embeds": [e.to_dict() for e in self.embeds],
        }
        if self.value:
            out["value"] = self.value.to_dict()
        return out


@dataclass
class Embed:
    images: List[Image] = field(default_factory=list)
    external: Optional[ExternalCard] = None
    record: Optional[QuotedPost] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Embed":
        raw_images = data.get("images")
        if not raw_images:
            raw_images = (data.get("media") or {}).get("images")
        external = data.get("external") or (data.get("media") or {}).get("external")
        return cls(
            images=[Image.from_dict(i) for i in raw_images or []],
            external=ExternalCard.from_dict(external) if isinstance(external, dict) else None,
            record=QuotedPost.from_dict(data.get("record")),
        )

    @property
    def kind(self) -> str:
        has_media = bool(self.images or self.external)
        if self.record and has_media:
            return "quote_with_media"
        if self.record:
            return "quote"
        if self.images:
            return "media"
        if self.external:
            return "external"
        return "none"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.images:
            out["images"] = [i.to_dict() for i in self.images]
        if self.external:
            out["external"] = self.external.to_dict()
        if self.record:
            out["record"] = self.record.to_dict()
        return out


@dataclass
class ThreadNode:
    """
    One post in an assembled thread.

    `replies` owns the children. `parent` is a non-owning back-reference used
    only for upward traversal; it is excluded from equality, repr and
    `to_dict()` so an assembled tree never serializes a cycle.
    """

    uri: str
    cid: str
    author: Author
    record: PostRecord
    embed: Optional[Embed] = None
    like_count: int = 0
    reply_count: int = 0
    repost_count: int = 0
    replies: List["ThreadNode"] = field(default_factory=list)
    parent: Optional["ThreadNode"] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_post_dict(cls, post: Dict[str, Any]) -> "ThreadNode":
        """Build a bare node (no replies, no parent) from a `postView`."""
        embed = post.get("embed")
        return cls(
            uri=post["uri"],
            cid=post.get("cid") or "",
            author=Author.from_dict(post["author"]),
            record=PostRecord.from_dict(post.get("record") or {}),
            embed=Embed.from_dict(embed) if isinstance(embed, dict) else None,
            like_count=int(post.get("likeCount") or 0),
            reply_count=int(post.get("replyCount") or 0),
            repost_count=int(post.get("repostCount") or 0),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreadNode":
        """
        Parse a `threadViewPost` with its nested parent chain and replies.

        Unviewable replies are skipped; an unviewable parent ends the chain.
        Replies get their `parent` back-reference pointed at this node.
        """
        if not _is_viewable(data) or not isinstance(data.get("post"), dict):
            raise ValueError(f"Not a viewable thread post: {data.get('$type') if isinstance(data, dict) else data!r}")

        node = cls.from_post_dict(data["post"])

        parent = data.get("parent")
        if _is_viewable(parent) and isinstance(parent.get("post"), dict):
            node.parent = cls.from_dict(parent)

        for raw in data.get("replies") or []:
            if not _is_viewable(raw) or not isinstance(raw.get("post"), dict):
                continue
            child = cls.from_dict(raw)
            child.parent = node
            node.replies.append(child)

        return node

    @property
    def created_at(self) -> str:
        return self.record.created_at

    @property
    def text(self) -> str:
        return self.record.text

    @property
    def rkey(self) -> str:
        return self.uri.rstrip("/").rsplit("/", 1)[-1]

    def walk(self):
        """Yield this node and all descendants, depth-first pre-order."""
        stack = [self]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.replies))

    def to_dict(self) -> Dict[str, Any]:
        post: Dict[str, Any] = {
            "uri": self.uri,
            "cid": self.cid,
            "author": self.author.to_dict(),
            "record": self.record.to_dict(),
            "likeCount": self.like_count,
            "replyCount": self.reply_count,
            "repostCount": self.repost_count,
        }
        if self.embed:
            post["embed"] = self.embed.to_dict()
        return {"post": post, "replies": [r.to_dict() for r in self.replies]}
