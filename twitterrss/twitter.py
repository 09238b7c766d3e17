"""Twitter API access: application-only auth and user timelines."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .errors import UpstreamFetchFailed
from .models import BearerToken, Credentials, UpstreamPost

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://api.twitter.com/oauth2/token"
DEFAULT_API_BASE_URL = "https://api.twitter.com/1.1"
CREATED_AT_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def parse_created_at(value: Optional[str]) -> Optional[datetime]:
    """Parse Twitter's ``created_at`` format into an aware datetime."""
    if not value:
        return None
    try:
        return datetime.strptime(value, CREATED_AT_FORMAT)
    except (TypeError, ValueError):
        logger.debug("Unable to parse tweet timestamp %r", value)
        return None


def parse_expires_in(value: Any) -> Optional[float]:
    """Return the token lifetime in seconds; ``None`` if absent or malformed."""
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed token expires_in %r", value)
        return None
    return seconds if seconds > 0 else None


def parse_post(payload: Dict[str, Any]) -> UpstreamPost:
    """Map a tweet object from the v1.1 API onto an UpstreamPost."""
    post_id = payload.get("id_str") or str(payload.get("id") or "")
    text = payload.get("full_text") or payload.get("text") or ""
    return UpstreamPost(
        id=post_id,
        text=text,
        source=payload.get("source") or "",
        created_at=payload.get("created_at") or "",
        in_reply_to=payload.get("in_reply_to_status_id_str"),
    )


class TokenCache:
    """Bearer tokens shared across requests, one refresh in flight per key."""

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        refresh_margin: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._tokens: Dict[Tuple[str, str, str], BearerToken] = {}
        self._locks: Dict[Tuple[str, str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def _key(credentials: Credentials) -> Tuple[str, str, str]:
        return (
            credentials.client_id,
            credentials.client_secret,
            credentials.token_url,
        )

    def _lock_for(self, key: Tuple[str, str, str]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _is_fresh(self, token: Optional[BearerToken]) -> bool:
        if token is None:
            return False
        return self._clock() < token.expires_at - self.refresh_margin

    def expiry_for(self, expires_in: Optional[float]) -> float:
        lifetime = expires_in if expires_in else self.ttl_seconds
        return self._clock() + lifetime

    def get(
        self,
        credentials: Credentials,
        fetch: Callable[[], BearerToken],
    ) -> BearerToken:
        """Return a valid token, calling ``fetch`` only when a refresh is due."""
        key = self._key(credentials)
        token = self._tokens.get(key)
        if self._is_fresh(token):
            return token

        with self._lock_for(key):
            # Another thread may have refreshed while we waited.
            token = self._tokens.get(key)
            if self._is_fresh(token):
                return token
            logger.debug("Refreshing bearer token for client %s", credentials.client_id)
            token = fetch()
            self._tokens[key] = token
            return token

    def invalidate(self, credentials: Credentials, token: BearerToken) -> None:
        key = self._key(credentials)
        with self._lock_for(key):
            if self._tokens.get(key) == token:
                del self._tokens[key]
                logger.info("Discarded rejected bearer token for client %s", credentials.client_id)


class TwitterClient:
    """Fetch user timelines using application-only authentication.

    Without a ``token_cache`` every call performs a fresh credential
    exchange. With one, tokens are reused until they approach expiry and a
    token rejected with ``401`` is replaced once before giving up.
    """

    def __init__(
        self,
        credentials: Credentials,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        token_cache: Optional[TokenCache] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.credentials = credentials
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self.token_cache = token_cache
        self._session_factory = session_factory

    def fetch_timeline(self, username: str) -> List[UpstreamPost]:
        """Return the user's recent tweets, newest first, replies excluded."""
        logger.info("Fetching timeline for '%s'", username)
        try:
            with self._session_factory() as session:
                payload = self._timeline_with_token(session, username)
        except requests.RequestException as exc:
            raise UpstreamFetchFailed(
                f"Unable to get tweets for '{username}': {exc}"
            ) from exc

        if not isinstance(payload, list):
            raise UpstreamFetchFailed(
                f"Unexpected timeline payload for '{username}': {type(payload).__name__}"
            )

        posts = [parse_post(item) for item in payload if isinstance(item, dict)]
        logger.info("Collected %d tweets for '%s'", len(posts), username)
        return posts

    def _timeline_with_token(self, session: requests.Session, username: str) -> Any:
        token = self._token(session)
        response = self._get_timeline(session, username, token)

        if response.status_code == 401 and self.token_cache is not None:
            logger.warning("Bearer token rejected for '%s'; re-authenticating", username)
            self.token_cache.invalidate(self.credentials, token)
            token = self._token(session)
            response = self._get_timeline(session, username, token)

        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFetchFailed(
                f"Timeline response for '{username}' is not valid JSON"
            ) from exc

    def _get_timeline(
        self, session: requests.Session, username: str, token: BearerToken
    ) -> requests.Response:
        return session.get(
            f"{self.api_base_url}/statuses/user_timeline.json",
            params={"screen_name": username, "exclude_replies": "true"},
            headers={"Authorization": f"Bearer {token.access_token}"},
            timeout=self.timeout,
        )

    def _token(self, session: requests.Session) -> BearerToken:
        if self.token_cache is None:
            return self._exchange_credentials(session, None)
        return self.token_cache.get(
            self.credentials,
            lambda: self._exchange_credentials(session, self.token_cache),
        )

    def _exchange_credentials(
        self, session: requests.Session, cache: Optional[TokenCache]
    ) -> BearerToken:
        response = session.post(
            self.credentials.token_url,
            data={"grant_type": "client_credentials"},
            auth=(self.credentials.client_id, self.credentials.client_secret),
            timeout=self.timeout,
        )
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamFetchFailed("Token response is not valid JSON") from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        token_type = str(body.get("token_type", "")).lower() if access_token else ""
        if not access_token or token_type != "bearer":
            raise UpstreamFetchFailed("Token endpoint did not return a bearer token")

        expires_in = parse_expires_in(body.get("expires_in"))
        if cache is not None:
            expires_at = cache.expiry_for(expires_in)
        else:
            expires_at = time.monotonic() + (expires_in or 0)
        return BearerToken(access_token=access_token, expires_at=expires_at)
