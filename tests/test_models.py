"""
Tests for core/models/post.py - turning getPostThread payloads into ThreadNodes

These tests pin down the wire shapes we accept:
1. Nested parent chains and replies
2. Unviewable entries (notFound / blocked)
3. Embeds: images, media wrappers, external cards, quotes
"""

import pytest

from core.models.post import Embed, QuotedPost, ThreadNode
from tests.conftest import make_node


def _post(rkey, did="did:plc:alice", text="hi", created_at="2024-05-01T12:00:00.000Z", **extra):
    post = {
        "uri": f"at://{did}/app.bsky.feed.post/{rkey}",
        "cid": f"cid-{rkey}",
        "author": {"did": did, "handle": "alice.bsky.social", "displayName": "Alice"},
        "record": {"$type": "app.bsky.feed.post", "text": text, "createdAt": created_at},
        "likeCount": 3,
        "replyCount": 1,
        "repostCount": 2,
    }
    post.update(extra)
    return post


class TestThreadNodeParsing:
    """Test ThreadNode.from_dict on threadViewPost payloads"""

    def test_parses_post_fields(self):
        node = ThreadNode.from_dict({"$type": "app.bsky.feed.defs#threadViewPost", "post": _post("a")})

        assert node.uri == "at://did:plc:alice/app.bsky.feed.post/a"
        assert node.cid == "cid-a"
        assert node.author.display_name == "Alice"
        assert node.author.handle == "alice.bsky.social"
        assert node.record.text == "hi"
        assert node.record.created_at == "2024-05-01T12:00:00.000Z"
        assert (node.like_count, node.reply_count, node.repost_count) == (3, 1, 2)
        assert node.replies == []
        assert node.parent is None
        assert node.rkey == "a"

    def test_parses_parent_chain(self):
        data = {
            "post": _post("c"),
            "parent": {"post": _post("b"), "parent": {"post": _post("a")}},
        }

        node = ThreadNode.from_dict(data)

        assert node.parent.uri.endswith("/b")
        assert node.parent.parent.uri.endswith("/a")
        assert node.parent.parent.parent is None

    def test_replies_point_back_at_parent(self):
        data = {"post": _post("a"), "replies": [{"post": _post("b"), "replies": [{"post": _post("c")}]}]}

        node = ThreadNode.from_dict(data)

        assert [r.rkey for r in node.replies] == ["b"]
        assert node.replies[0].parent is node
        assert node.replies[0].replies[0].parent is node.replies[0]

    def test_unviewable_replies_are_skipped(self):
        data = {
            "post": _post("a"),
            "replies": [
                {"$type": "app.bsky.feed.defs#notFoundPost", "uri": "at://x/app.bsky.feed.post/gone", "notFound": True},
                {"$type": "app.bsky.feed.defs#blockedPost", "uri": "at://x/app.bsky.feed.post/b", "blocked": True},
                {"post": _post("ok")},
            ],
        }

        node = ThreadNode.from_dict(data)

        assert [r.rkey for r in node.replies] == ["ok"]

    def test_blocked_parent_ends_chain(self):
        data = {"post": _post("b"), "parent": {"$type": "app.bsky.feed.defs#blockedPost", "blocked": True}}

        node = ThreadNode.from_dict(data)

        assert node.parent is None

    def test_not_found_focus_raises(self):
        with pytest.raises(ValueError):
            ThreadNode.from_dict({"$type": "app.bsky.feed.defs#notFoundPost", "notFound": True, "uri": "at://x"})

    def test_missing_display_name_defaults_to_empty(self):
        post = _post("a")
        post["author"] = {"did": "did:plc:zed"}

        node = ThreadNode.from_dict({"post": post})

        assert node.author.display_name == ""
        assert node.author.name == "did:plc:zed"


class TestEmbedParsing:
    """Test the embed shapes the AppView hands back"""

    def test_direct_images(self):
        embed = Embed.from_dict(
            {
                "$type": "app.bsky.embed.images#view",
                "images": [
                    {"thumb": "t1", "fullsize": "f1", "alt": "a cat", "aspectRatio": {"width": 4, "height": 3}},
                    {"thumb": "t2", "fullsize": "f2", "alt": ""},
                ],
            }
        )

        assert [i.thumb for i in embed.images] == ["t1", "t2"]
        assert embed.images[0].aspect_ratio == {"width": 4, "height": 3}
        assert embed.images[1].aspect_ratio is None
        assert embed.kind == "media"

    def test_external_card(self):
        embed = Embed.from_dict(
            {"external": {"uri": "https://example.com", "title": "Example", "description": "desc", "thumb": "th"}}
        )

        assert embed.external.title == "Example"
        assert embed.kind == "external"

    def test_quote_post(self):
        embed = Embed.from_dict(
            {
                "$type": "app.bsky.embed.record#view",
                "record": {
                    "$type": "app.bsky.embed.record#viewRecord",
                    "uri": "at://did:plc:bob/app.bsky.feed.post/q",
                    "cid": "cid-q",
                    "author": {"did": "did:plc:bob", "displayName": "Bob"},
                    "value": {"text": "quoted", "createdAt": "2024-01-01T00:00:00.000Z"},
                    "embeds": [{"images": [{"thumb": "qt", "fullsize": "qf", "alt": ""}]}],
                },
            }
        )

        assert embed.kind == "quote"
        assert embed.record.author.display_name == "Bob"
        assert embed.record.value.text == "quoted"
        assert embed.record.embeds[0].images[0].thumb == "qt"

    def test_quote_with_media_is_unwrapped(self):
        embed = Embed.from_dict(
            {
                "$type": "app.bsky.embed.recordWithMedia#view",
                "record": {
                    "$type": "app.bsky.embed.record#view",
                    "record": {
                        "$type": "app.bsky.embed.record#viewRecord",
                        "uri": "at://did:plc:bob/app.bsky.feed.post/q",
                        "cid": "cid-q",
                        "author": {"did": "did:plc:bob"},
                        "value": {"text": "inner", "createdAt": "2024-01-01T00:00:00.000Z"},
                    },
                },
                "media": {"images": [{"thumb": "mt", "fullsize": "mf", "alt": "m"}]},
            }
        )

        assert embed.kind == "quote_with_media"
        assert embed.record.uri.endswith("/q")
        assert embed.record.value.text == "inner"
        assert embed.images[0].thumb == "mt"

    def test_quote_of_deleted_post_is_dropped(self):
        quoted = QuotedPost.from_dict({"$type": "app.bsky.embed.record#viewNotFound", "uri": "at://x", "notFound": True})

        assert quoted is None

    def test_embed_on_thread_node(self):
        post = _post("a", embed={"external": {"uri": "https://example.com", "title": "t", "description": "d"}})

        node = ThreadNode.from_dict({"post": post})

        assert node.embed.external.uri == "https://example.com"


class TestThreadNodeSerialization:
    """Test to_dict and equality ignore the parent back-reference"""

    def test_to_dict_has_no_parent(self):
        child = make_node("c")
        root = make_node("r", replies=[child])

        data = child.to_dict()

        assert "parent" not in data
        assert "parent" not in data["post"]
        assert root.to_dict()["replies"][0]["post"]["uri"] == child.uri

    def test_to_dict_round_trips_through_from_dict(self):
        root = make_node("r", text="hello", replies=[make_node("a", did="did:plc:bob", text="yo")])

        again = ThreadNode.from_dict(root.to_dict())

        assert again == root

    def test_equality_ignores_parent(self):
        a = make_node("a")
        b = make_node("a", parent=make_node("p"))

        assert a == b

    def test_walk_visits_every_node_preorder(self):
        c = make_node("c")
        a = make_node("a", replies=[c])
        b = make_node("b")
        root = make_node("r", replies=[a, b])

        assert [n.rkey for n in root.walk()] == ["r", "a", "c", "b"]
