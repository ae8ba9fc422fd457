# Overview: Error family raised by the upstream POS client and its decoders.

from __future__ import annotations

from typing import Any


class UpstreamError(RuntimeError):
    """
    Any failure talking to the upstream POS.

    `pages_fetched` is filled in by the pager when a failure interrupts a
    multi-page walk, so callers can log how far it got.
    """

    def __init__(self, message: str, *, status: int | None = None, body: Any = None, pages_fetched: int | None = None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.pages_fetched = pages_fetched

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": type(self).__name__,
            "status": self.status,
            "pages_fetched": self.pages_fetched,
        }


class UpstreamAuthExpired(UpstreamError):
    """HTTP 401; the bearer token is stale."""


class UpstreamTransient(UpstreamError):
    """HTTP 5xx, network failure, or an undecodable response."""


class UpstreamPermanent(UpstreamError):
    """HTTP 4xx other than 401."""


class UpstreamDecodeError(UpstreamTransient):
    """A payload did not match the shape its decoder expects."""


class UpstreamCancelled(UpstreamError):
    """The client was cancelled between requests (process shutdown)."""


def classify_status(status: int) -> type[UpstreamError]:
    if status == 401:
        return UpstreamAuthExpired
    if status >= 500:
        return UpstreamTransient
    return UpstreamPermanent
