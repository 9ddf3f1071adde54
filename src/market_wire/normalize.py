"""Feed parsing and content normalisation.

Turns a fetched feed body into :class:`RawItem` records, flattens their
markup into one lower-cased string for scoring and computes the stable
identity hash used as the dedup key.
"""

from __future__ import annotations

import calendar
import hashlib
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import feedparser  # type: ignore
from bs4 import BeautifulSoup
from dateutil import parser as dtparse

from .errors import FeedParseError, ItemValidationError
from .logging_utils import get_logger
from .models import RawItem

log = get_logger("normalize")

SEPARATOR = " --- "

# Zero-width space/joiners and BOM break \b matching inside words.
_INVISIBLE_RE = re.compile("[\u200b-\u200d\ufeff]")
_WS_RE = re.compile(r"\s+")


def html_to_text(markup: Optional[str]) -> str:
    """Flatten an HTML fragment to single-spaced plain text.

    ``<script>`` and ``<style>`` blocks are dropped with their contents,
    remaining tags are removed and entities decoded.

    >>> html_to_text("<p>Apple &amp; Co <b>beat</b></p><script>x()</script>")
    'Apple & Co beat'
    """
    if not markup:
        return ""
    soup = BeautifulSoup(str(markup), "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return _WS_RE.sub(" ", text).strip()


def strip_invisible(text: str) -> str:
    return _INVISIBLE_RE.sub("", text or "")


def iso_timestamp(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix.

    Used inside item identities, so the format must never change:
    ``2024-05-01T12:30:00.000Z``.
    """
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def item_identity(item: RawItem) -> str:
    """sha1 hex digest of the guid, or of ``link|published`` without one."""
    raw = item.guid if item.guid else f"{item.link}|{iso_timestamp(item.published)}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def feed_key(feed_url: str) -> str:
    """Dedup set key for one feed endpoint."""
    digest = hashlib.md5(feed_url.encode("utf-8")).hexdigest()
    return f"rss:seen:{digest}"


def normalize_content(item: RawItem) -> str:
    """Title, body fields and categories flattened to one lower-cased string.

    Every field goes through :func:`html_to_text`; feeds put escaped markup
    in titles and category labels as well as in bodies.
    """
    parts = (
        html_to_text(item.title),
        html_to_text(item.description),
        html_to_text(item.encoded_content),
        ", ".join(html_to_text(c) for c in item.categories),
    )
    content = SEPARATOR.join(parts).strip().lower()
    return strip_invisible(content)


def _entry_get(entry: Any, key: str) -> Any:
    try:
        return entry.get(key)
    except AttributeError:
        return getattr(entry, key, None)


def _entry_published(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        st = _entry_get(entry, key)
        if st:
            # feedparser normalises parsed dates to UTC struct_time
            return datetime.fromtimestamp(calendar.timegm(st), tz=timezone.utc)
    for key in ("published", "updated"):
        raw = _entry_get(entry, key)
        if not raw:
            continue
        try:
            d = dtparse.parse(raw)
        except (ValueError, OverflowError):
            log.debug("timestamp_parse_failed raw=%s", raw)
            continue
        if d.tzinfo is None:
            d = d.replace(tzinfo=timezone.utc)
        return d.astimezone(timezone.utc)
    return None


def _entry_categories(entry: Any) -> Tuple[str, ...]:
    out = []
    for tag in _entry_get(entry, "tags") or []:
        term = _entry_get(tag, "term") if not isinstance(tag, str) else tag
        if term:
            out.append(str(term))
    return tuple(out)


def raw_item_from_entry(entry: Any, now: Optional[datetime] = None) -> RawItem:
    """Build a :class:`RawItem` from a feedparser entry.

    Raises :class:`ItemValidationError` when the entry has no title.  An
    entry without a usable date is stamped with ``now``.
    """
    title = (_entry_get(entry, "title") or "").strip()
    if not title:
        raise ItemValidationError("entry has no title")
    link = (_entry_get(entry, "link") or "").strip()

    encoded = ""
    content_blocks = _entry_get(entry, "content") or []
    if content_blocks:
        encoded = _entry_get(content_blocks[0], "value") or ""

    description = _entry_get(entry, "summary") or _entry_get(entry, "description")
    if not description:
        description = encoded

    published = _entry_published(entry) or now or datetime.now(timezone.utc)
    guid = _entry_get(entry, "id") or _entry_get(entry, "guid") or None

    return RawItem(
        title=title,
        link=link,
        published=published,
        guid=str(guid) if guid else None,
        description=str(description or ""),
        encoded_content=str(encoded),
        categories=_entry_categories(entry),
    )


def parse_feed(body: str) -> List[Any]:
    """Parse a feed document and return its entries.

    feedparser is lenient and flags malformed XML via ``bozo`` while still
    returning whatever it recovered.  A body that yields neither entries nor
    a recognisable feed element (an HTML error or block page served with a
    200) is treated as unparseable.
    """
    parsed = feedparser.parse(body)
    entries = list(getattr(parsed, "entries", []) or [])
    if not entries and not parsed.get("version"):
        exc = parsed.get("bozo_exception")
        raise FeedParseError(f"unparseable feed: {exc or 'no feed element'}")
    return entries


def parse_items(body: str) -> Tuple[List[RawItem], int]:
    """Parse ``body`` into items, returning ``(items, skipped)``."""
    items: List[RawItem] = []
    skipped = 0
    now = datetime.now(timezone.utc)
    for entry in parse_feed(body):
        try:
            items.append(raw_item_from_entry(entry, now=now))
        except ItemValidationError as e:
            skipped += 1
            log.debug("feed_entry_skipped err=%s", e)
    return items, skipped
