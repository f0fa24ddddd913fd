# socials/mention_bot.py
from __future__ import annotations

import logging
import threading
from typing import Optional
from urllib.parse import quote

from core.urls import parse_at_uri
from core.views import ViewType

from .base import Mention, MentionClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://skyview.social"

MAGIC_WORDS = [
    "unroll",
    "tree",
    "embed",
    "oida",
    "heast",
    "geh bitte",
    "es is ned olles schlecht in österreich",
]


def parse_mention_command(text: Optional[str]) -> Optional[ViewType]:
    """
    Decide which view a mention asks for, or None when it isn't a command.

    Any magic word triggers a reply. "unroll" and "embed" pick their view
    (embed wins when both appear); everything else gets the tree view.
    """
    text = (text or "").lower()
    if not any(word in text for word in MAGIC_WORDS):
        return None

    view = ViewType.TREE
    if "unroll" in text:
        view = ViewType.UNROLL
    if "embed" in text:
        view = ViewType.EMBED
    return view


def build_share_link(base_url: str, author_did: str, post_uri: str, view_type: ViewType) -> str:
    _repo, _collection, rkey = parse_at_uri(post_uri)
    post_url = f"https://bsky.app/profile/{author_did}/post/{rkey}"
    return f"{base_url.rstrip('/')}/?url={quote(post_url, safe=':/')}&viewtype={ViewType.parse(view_type).value}"


def format_reply(link: str) -> str:
    return f"sure, here you go: \n{link}"


class MentionBot:
    """
    Polls the bot account's notifications and answers command mentions.

    The reply links to the mention post itself; the embed view then shows the
    post the mention was replying to, tree/unroll show the whole thread.
    """

    def __init__(self, client: MentionClient, base_url: str = DEFAULT_BASE_URL, poll_interval: float = 30.0):
        self.client = client
        self.base_url = base_url
        self.poll_interval = poll_interval
        self._stop = threading.Event()

    def handle_mention(self, mention: Mention) -> Optional[str]:
        view = parse_mention_command(mention.text)
        if view is None:
            logger.debug("Ignoring mention without a command: %s", mention.uri)
            return None

        logger.info("Mentioned by @%s: %s", mention.author_handle or mention.author_did, mention.text)
        link = build_share_link(self.base_url, mention.author_did, mention.uri, view)
        return self.client.reply(format_reply(link), mention)

    def poll_once(self) -> int:
        """Answer all unread mentions; returns how many replies were sent."""
        mentions = [m for m in self.client.list_mentions() if not m.is_read]
        replied = 0
        for mention in mentions:
            try:
                if self.handle_mention(mention) is not None:
                    replied += 1
            except Exception:
                logger.exception("Failed to reply to mention %s", mention.uri)

        if mentions:
            self.client.mark_seen()
        return replied

    def run(self) -> None:
        logger.info("Mention bot polling every %.0fs", self.poll_interval)
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Mention poll failed; retrying next interval")
            self._stop.wait(self.poll_interval)
        logger.info("Mention bot stopped.")

    def stop(self) -> None:
        self._stop.set()
