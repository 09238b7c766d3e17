from datetime import datetime, timezone

from twitterrss.feeds import FEED_AUTHOR, to_feed, to_feed_item
from twitterrss.models import UpstreamPost


def _post(post_id, created_at="Mon Jan 01 09:30:00 +0000 2018", source="https://mobile.twitter.com"):
    return UpstreamPost(
        id=post_id,
        text=f"text of {post_id}",
        source=source,
        created_at=created_at,
    )


def test_to_feed_sets_channel_fields():
    now = datetime(2020, 5, 1, 12, 0, tzinfo=timezone.utc)
    feed = to_feed("alice", "/feed/alice.xml", [], now=now)

    assert feed.title == "alice tweets"
    assert feed.description == "alice tweets"
    assert feed.link == "/feed/alice.xml"
    assert feed.author == FEED_AUTHOR
    assert feed.created == now
    assert feed.items == ()


def test_to_feed_defaults_created_to_current_utc_time():
    before = datetime.now(timezone.utc)
    feed = to_feed("alice", "/feed/alice.xml", [])
    assert feed.created >= before
    assert feed.created.tzinfo is not None


def test_to_feed_preserves_order_and_duplicates():
    posts = [_post("3"), _post("1"), _post("3")]
    feed = to_feed("alice", "/feed/alice.xml", posts)
    assert [item.id for item in feed.items] == ["3", "1", "3"]


def test_to_feed_item_uses_id_as_title_and_source_as_link():
    item = to_feed_item(
        _post("42", source='<a href="https://about.twitter.com/products/tweetdeck">TweetDeck</a>')
    )
    assert item.id == "42"
    assert item.title == "42"
    assert item.link == '<a href="https://about.twitter.com/products/tweetdeck">TweetDeck</a>'
    assert item.description == "text of 42"
    assert item.created == datetime(2018, 1, 1, 9, 30, tzinfo=timezone.utc)


def test_to_feed_item_keeps_post_with_unparseable_timestamp():
    feed = to_feed("alice", "/feed/alice.xml", [_post("7", created_at="not a date")])
    assert len(feed.items) == 1
    assert feed.items[0].created is None


def test_to_feed_description_is_verbatim():
    post = UpstreamPost(id="9", text="<b>bold</b> & more", source="", created_at="")
    item = to_feed_item(post)
    assert item.description == "<b>bold</b> & more"
