# core/errors.py
from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    INVALID_URL = "invalid_url"
    INVALID_HANDLE = "invalid_handle"
    THREAD_LOAD_FAILURE = "thread_load_failure"
    REMOTE_EXCEPTION = "remote_exception"


class SkyviewError(Exception):
    """
    Base class for every failure the thread loader can report.

    Each subclass carries a `kind` (used by callers to branch) and a short
    user-facing `message`. The optional `detail` holds the underlying reason
    (e.g. the remote error text) for logs and for the exception variant.
    """

    kind: FailureKind = FailureKind.REMOTE_EXCEPTION
    message: str = "Sorry, couldn't load thread"

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        return self.message


class InvalidUrl(SkyviewError):
    """The post URL is missing the actor or the record key segment."""

    kind = FailureKind.INVALID_URL
    message = "Sorry, couldn't load thread (invalid URL)"


class InvalidHandle(SkyviewError):
    """The handle in the post URL could not be resolved to a DID."""

    kind = FailureKind.INVALID_HANDLE
    message = "Sorry, couldn't load thread (invalid handle)"


class ThreadLoadFailure(SkyviewError):
    """The AppView returned no usable thread for a post."""

    kind = FailureKind.THREAD_LOAD_FAILURE
    message = "Sorry, couldn't load thread (invalid thread)"


class RemoteException(SkyviewError):
    """Unexpected transport or parse failure talking to the AppView."""

    kind = FailureKind.REMOTE_EXCEPTION
    message = "Sorry, couldn't load thread (exception)"

    @property
    def user_message(self) -> str:
        if self.detail:
            return f"{self.message}\n{self.detail}"
        return self.message
