# socials/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from core.models.post import ThreadNode


class RemoteThreadSource(Protocol):
    """
    Read side of the network. Thread loading only ever talks to one of these.

    MUST:
      - resolve_handle: return the DID for a handle, raise InvalidHandle if it
        does not resolve
      - get_thread: return the focus post with its parent chain (up to
        `parent_height`) and nested replies (up to `depth`); raise
        ThreadLoadFailure when there is no thread, RemoteException for
        transport / parse failures
    """

    def resolve_handle(self, handle: str) -> str: ...

    def get_thread(self, uri: str, parent_height: int, depth: int) -> ThreadNode: ...


@dataclass
class Mention:
    """
    A post that mentioned the bot account.

    root_uri/root_cid point at the thread root when the mention is itself a
    reply; otherwise they are None and the mention is its own root.
    """

    uri: str
    cid: str
    text: str
    author_did: str
    author_handle: Optional[str] = None
    root_uri: Optional[str] = None
    root_cid: Optional[str] = None
    is_read: bool = False


class MentionClient(Protocol):
    """Write side used by the mention bot (requires a logged-in account)."""

    def list_mentions(self) -> List[Mention]: ...

    def reply(self, text: str, mention: Mention) -> Optional[str]: ...

    def mark_seen(self) -> None: ...
