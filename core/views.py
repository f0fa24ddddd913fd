# core/views.py
"""
Presentation projections of a completed thread.

Projections never touch the network and never mutate the tree they are
given: nodes that need a different reply list are shallow copies made with
`dataclasses.replace`.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import List, Optional

from core.models.post import ThreadNode

logger = logging.getLogger(__name__)

DEFAULT_MENTION = "@skyview.social"


class ViewType(str, Enum):
    TREE = "tree"
    EMBED = "embed"
    UNROLL = "unroll"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ViewType":
        """Case-insensitive lookup; missing or unknown values mean TREE."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.TREE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown view type %r, falling back to %s", value, cls.TREE.value)
            return cls.TREE


def _is_command(node: ThreadNode, mention: str, word: str) -> bool:
    text = node.record.text
    return mention in text and word in text


def by_created_at(nodes: List[ThreadNode]) -> List[ThreadNode]:
    return sorted(nodes, key=lambda n: n.record.created_at)


def project_tree(root: ThreadNode) -> ThreadNode:
    return root


def project_embed(node: ThreadNode, mention: str = DEFAULT_MENTION) -> ThreadNode:
    """
    A single post without descendants.

    A post that mentions the service together with "embed" is a command issued
    in reply to the real target, so its parent is shown instead.
    """
    target = node
    if _is_command(node, mention, "embed") and node.parent is not None:
        target = node.parent
    return replace(target, replies=[])


def unroll_sequence(node: ThreadNode, mention: str = DEFAULT_MENTION) -> List[ThreadNode]:
    """
    Follow the author's own reply chain starting at `node`.

    At each step the earliest reply by the same author wins, skipping
    "@service unroll" command posts. Returns [node, ...chain].
    """
    sequence = [node]
    current = node
    while True:
        nxt = next(
            (
                reply
                for reply in by_created_at(current.replies)
                if reply.author.did == current.author.did and not _is_command(reply, mention, "unroll")
            ),
            None,
        )
        if nxt is None or any(nxt is seen for seen in sequence):
            break
        sequence.append(nxt)
        current = nxt

    if len(sequence) > 1 and _is_command(sequence[-1], mention, "unroll"):
        sequence.pop()
    return sequence


def project_unroll(node: ThreadNode, mention: str = DEFAULT_MENTION) -> ThreadNode:
    """The head post with the rest of the author's chain as flat replies."""
    head, *rest = unroll_sequence(node, mention)
    return replace(head, replies=[replace(post, replies=[]) for post in rest])


def project(node: ThreadNode, view_type, mention: str = DEFAULT_MENTION) -> ThreadNode:
    view = ViewType.parse(view_type)
    if view is ViewType.EMBED:
        return project_embed(node, mention)
    if view is ViewType.UNROLL:
        return project_unroll(node, mention)
    return project_tree(node)
