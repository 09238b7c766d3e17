"""RSS serialization for feeds."""

from __future__ import annotations

import logging

from feedgen.feed import FeedGenerator

from .errors import RenderFailed
from .models import Feed

logger = logging.getLogger(__name__)


def build_generator(feed: Feed) -> FeedGenerator:
    """Populate a FeedGenerator from the feed model."""
    fg = FeedGenerator()
    fg.title(feed.title)
    fg.link(href=feed.link, rel="alternate")
    fg.description(feed.description)
    fg.author({"name": feed.author})
    fg.pubDate(feed.created)

    for item in feed.items:
        # feedgen prepends by default; keep upstream order.
        entry = fg.add_entry(order="append")
        entry.guid(item.id, permalink=False)
        entry.title(item.title)
        if item.link:
            entry.link(href=item.link)
        entry.description(item.description)
        if item.created is not None:
            entry.pubDate(item.created)
    return fg


def render_rss(feed: Feed) -> bytes:
    """Render ``feed`` as an RSS 2.0 document."""
    try:
        return build_generator(feed).rss_str(pretty=False)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.error("Unable to create rss feed '%s': %s", feed.link, exc)
        raise RenderFailed(f"Unable to create rss feed: {exc}") from exc
