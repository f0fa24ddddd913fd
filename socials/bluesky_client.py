# socials/bluesky_client.py
# pylint: disable=wrong-import-position

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

# Silence noisy Pydantic v2 + atproto_client schema warnings
from pydantic.warnings import UnsupportedFieldAttributeWarning

warnings.filterwarnings("ignore", category=UnsupportedFieldAttributeWarning)

from atproto import Client, client_utils
from atproto import models as at_models
from atproto_client import models as atc_models
from atproto_client.exceptions import AtProtocolError, BadRequestError

from core.errors import InvalidHandle, RemoteException, ThreadLoadFailure
from core.models.post import ThreadNode
from core.thread_cache import DEFAULT_DEPTH, DEFAULT_PARENT_HEIGHT

from .base import Mention

logger = logging.getLogger(__name__)

PUBLIC_APPVIEW_URL = "https://public.api.bsky.app"
PDS_URL = "https://bsky.social"

_URL_PATTERN = re.compile(r"https?://\S+")


@dataclass
class BlueskyConfig:
    service_url: str = PUBLIC_APPVIEW_URL
    parent_height: int = DEFAULT_PARENT_HEIGHT
    depth: int = DEFAULT_DEPTH
    handle: Optional[str] = None
    app_password: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BlueskyConfig":
        bsky = config.get("bluesky", {}) or {}
        bot = config.get("bot", {}) or {}
        return cls(
            service_url=bsky.get("service_url") or PUBLIC_APPVIEW_URL,
            parent_height=int(bsky.get("parent_height", DEFAULT_PARENT_HEIGHT)),
            depth=int(bsky.get("depth", DEFAULT_DEPTH)),
            handle=bot.get("account") or None,
            app_password=bot.get("app_password") or None,
        )


def _xrpc_url(service_url: str) -> str:
    base = service_url.rstrip("/")
    return base if base.endswith("/xrpc") else f"{base}/xrpc"


def _error_text(exc: AtProtocolError) -> str:
    """Best-effort 'Error: message' out of an XRPC error response."""
    response = getattr(exc, "response", None)
    content = getattr(response, "content", None)
    error = getattr(content, "error", None)
    message = getattr(content, "message", None)
    if error or message:
        return ": ".join(p for p in (error, message) if p)
    return str(exc) or type(exc).__name__


def _strong_ref(uri: str, cid: str) -> atc_models.ComAtprotoRepoStrongRef.Main:
    return atc_models.ComAtprotoRepoStrongRef.Main(uri=uri, cid=cid)


class BlueskyThreadSource:
    """
    Unauthenticated read client against the public Bluesky AppView.

    Implements RemoteThreadSource: one getPostThread call per `get_thread`,
    converted into ThreadNode trees; atproto errors are mapped onto the
    thread loader's error kinds.
    """

    def __init__(self, cfg: Optional[BlueskyConfig] = None, client: Optional[Client] = None):
        self.cfg = cfg or BlueskyConfig()
        self.client = client or Client(_xrpc_url(self.cfg.service_url))

    def resolve_handle(self, handle: str) -> str:
        handle = handle.lstrip("@")
        try:
            response = self.client.com.atproto.identity.resolve_handle(
                params=at_models.ComAtprotoIdentityResolveHandle.Params(handle=handle)
            )
        except BadRequestError as e:
            raise InvalidHandle(f"{handle}: {_error_text(e)}") from e
        except AtProtocolError as e:
            raise RemoteException(f"resolveHandle {handle}: {_error_text(e)}") from e

        did = getattr(response, "did", None)
        if not did:
            raise InvalidHandle(handle)
        return did

    def get_thread(
        self,
        uri: str,
        parent_height: int = DEFAULT_PARENT_HEIGHT,
        depth: int = DEFAULT_DEPTH,
    ) -> ThreadNode:
        try:
            response = self.client.app.bsky.feed.get_post_thread(
                params=at_models.AppBskyFeedGetPostThread.Params(
                    uri=uri,
                    parent_height=parent_height,
                    depth=depth,
                )
            )
        except BadRequestError as e:
            raise ThreadLoadFailure(f"{uri}: {_error_text(e)}") from e
        except AtProtocolError as e:
            raise RemoteException(f"getPostThread {uri}: {_error_text(e)}") from e

        thread = getattr(response, "thread", None)
        if thread is None:
            raise ThreadLoadFailure(f"Failed to load thread for {uri}")

        data = thread.model_dump(by_alias=True, exclude_none=True, mode="json")
        try:
            return ThreadNode.from_dict(data)
        except ValueError as e:
            raise ThreadLoadFailure(f"Failed to load thread for {uri}: {e}") from e
        except (KeyError, TypeError) as e:
            raise RemoteException(f"Unexpected thread payload for {uri}: {e!r}") from e


class BlueskyClient:
    """
    Logged-in account used by the mention bot:
      - lists unread mentions
      - replies with a clickable link (facets via client_utils.TextBuilder)
      - marks notifications as seen
    """

    def __init__(self, cfg: BlueskyConfig, client: Optional[Client] = None):
        if not cfg.handle or not cfg.app_password:
            raise ValueError("Bluesky bot account and app password are required")
        self.cfg = cfg
        self.client = client or Client(PDS_URL)

    def login(self) -> None:
        self.client.login(self.cfg.handle, self.cfg.app_password)
        logger.info("Logged in to Bluesky as %s", self.cfg.handle)

    def list_mentions(self, limit: int = 50) -> List[Mention]:
        response = self.client.app.bsky.notification.list_notifications(
            params=at_models.AppBskyNotificationListNotifications.Params(limit=limit)
        )

        mentions: List[Mention] = []
        for notif in getattr(response, "notifications", None) or []:
            if notif.reason != "mention":
                continue
            record = notif.record
            reply = getattr(record, "reply", None)
            root = getattr(reply, "root", None)
            mentions.append(
                Mention(
                    uri=notif.uri,
                    cid=notif.cid,
                    text=getattr(record, "text", "") or "",
                    author_did=notif.author.did,
                    author_handle=getattr(notif.author, "handle", None),
                    root_uri=getattr(root, "uri", None),
                    root_cid=getattr(root, "cid", None),
                    is_read=bool(notif.is_read),
                )
            )
        return mentions

    def reply(self, text: str, mention: Mention) -> Optional[str]:
        """Reply under `mention`; URLs in `text` become link facets. Returns the new post URI."""
        builder = client_utils.TextBuilder()
        last_pos = 0
        for match in _URL_PATTERN.finditer(text):
            if match.start() > last_pos:
                builder.text(text[last_pos : match.start()])
            builder.link(match.group(), match.group())
            last_pos = match.end()
        if last_pos < len(text):
            builder.text(text[last_pos:])

        parent = _strong_ref(mention.uri, mention.cid)
        if mention.root_uri and mention.root_cid:
            root = _strong_ref(mention.root_uri, mention.root_cid)
        else:
            root = parent

        created = self.client.send_post(
            builder,
            reply_to=at_models.AppBskyFeedPost.ReplyRef(parent=parent, root=root),
        )
        uri = getattr(created, "uri", None)
        logger.info("Replied to %s with %s", mention.uri, uri)
        return uri

    def mark_seen(self) -> None:
        self.client.app.bsky.notification.update_seen(
            data=at_models.AppBskyNotificationUpdateSeen.Data(seen_at=self.client.get_current_time_iso())
        )
