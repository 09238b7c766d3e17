"""Shared data models for twitterrss."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Credentials:
    """Application-only credentials for the client-credentials grant."""

    client_id: str
    client_secret: str
    token_url: str


@dataclass(frozen=True)
class BearerToken:
    access_token: str
    expires_at: float


@dataclass(frozen=True)
class UpstreamPost:
    """A single tweet as returned by the user timeline endpoint."""

    id: str
    text: str
    source: str
    created_at: str
    in_reply_to: Optional[str] = None


@dataclass(frozen=True)
class FeedItem:
    """Normalized feed entry built from an upstream post."""

    id: str
    title: str
    link: str
    description: str
    created: Optional[datetime] = None


@dataclass(frozen=True)
class Feed:
    title: str
    link: str
    description: str
    author: str
    created: datetime
    items: Tuple[FeedItem, ...] = field(default_factory=tuple)
