"""Exception types raised by twitterrss."""

from __future__ import annotations


class TwitterRSSError(RuntimeError):
    """Base class for request-time failures."""


class UpstreamFetchFailed(TwitterRSSError):
    """Raised when the timeline could not be retrieved from Twitter."""


class RenderFailed(TwitterRSSError):
    """Raised when a feed model cannot be serialized to RSS."""


class ConfigurationInvalid(ValueError):
    """Raised at startup when required settings are missing or malformed."""
