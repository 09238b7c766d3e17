"""Map upstream timelines onto the normalized feed model."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import Feed, FeedItem, UpstreamPost
from .twitter import parse_created_at

logger = logging.getLogger(__name__)

FEED_AUTHOR = "https://github.com/halkeye/twitterrss"


def to_feed_item(post: UpstreamPost) -> FeedItem:
    """Project a post onto a feed item.

    The tweet id doubles as the item title, and the link is the tweet's
    ``source`` field rather than its permalink.
    """
    return FeedItem(
        id=post.id,
        title=post.id,
        link=post.source,
        description=post.text,
        created=parse_created_at(post.created_at),
    )


def to_feed(
    username: str,
    request_path: str,
    posts: Iterable[UpstreamPost],
    now: Optional[datetime] = None,
) -> Feed:
    """Build a Feed for ``username`` keeping the upstream item order."""
    title = f"{username} tweets"
    items = tuple(to_feed_item(post) for post in posts)
    logger.debug("Built feed for '%s' with %d items", username, len(items))
    return Feed(
        title=title,
        link=request_path,
        description=title,
        author=FEED_AUTHOR,
        created=now or datetime.now(timezone.utc),
        items=items,
    )
