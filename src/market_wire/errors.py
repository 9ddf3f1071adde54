"""Exception hierarchy for the market-wire pipeline.

Errors are grouped by how the pipeline reacts to them: transient network
failures rotate to the next network path, origin rejections skip the feed
for the cycle, item-level errors skip the item, and only state-store
connectivity at start-up is fatal.
"""

from __future__ import annotations

from typing import Optional


class MarketWireError(Exception):
    """Base class for every error raised by this package."""


class FetchError(MarketWireError):
    def __init__(self, url: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{message} url={url}")
        self.url = url
        self.cause = cause


class TransientNetworkError(FetchError):
    """DNS, connection-reset, or timeout failure on one network path."""


class OriginRejectedError(FetchError):
    """The origin answered but refused the request (non-2xx)."""

    def __init__(self, url: str, status: int, cause: Optional[BaseException] = None):
        super().__init__(url, f"origin_rejected status={status}", cause)
        self.status = status


class FeedParseError(MarketWireError):
    """The fetched body could not be parsed as an RSS/Atom document."""


class ItemValidationError(MarketWireError):
    """A feed entry is missing fields required to build an item."""


class ClassificationError(MarketWireError):
    """The entity classifier failed or returned an unusable response."""


class ClassificationUnavailableError(ClassificationError):
    """The entity classifier stayed rate-limited or unavailable after retries."""


class PersistenceError(MarketWireError):
    """The article repository rejected a write."""


class PostError(MarketWireError):
    """The posting platform call failed."""


class QuotaExceededError(PostError):
    """The monthly or daily posting quota is exhausted."""


class PostRejectedError(PostError):
    """The text was rejected before or by the posting platform."""


class StateStoreUnavailableError(MarketWireError):
    """The dedup/state store could not be reached."""
