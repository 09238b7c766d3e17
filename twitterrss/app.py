"""Flask application serving per-username RSS feeds.

Request logging is done here by ``_log_access`` instead of werkzeug's
request log, which carries no timing and only exists under the
development server; ``configure_logging`` quiets the werkzeug logger.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from flask import Flask, Response, g, request
from werkzeug.exceptions import InternalServerError
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import AppConfig
from .feeds import to_feed
from .renderers import render_rss
from .twitter import TokenCache, TwitterClient

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("twitterrss.access")

INTERNAL_ERROR_MESSAGE = "There was an internal server error"
RSS_MIMETYPE = "application/rss+xml"

View = Callable[[], Response]


def json_response(payload: dict, status: int = 200) -> Response:
    body = json.dumps(payload, separators=(",", ":"))
    return Response(body, status=status, mimetype="application/json")


def feed_path(username: str) -> str:
    return f"/feed/{username}.xml"


def build_routes(
    usernames: Iterable[str], view_factory: Callable[[str], View]
) -> Mapping[str, View]:
    """Build the read-only route table for the configured usernames.

    A username listed twice maps to the same path; the later entry replaces
    the earlier one.
    """
    routes = {}
    for username in usernames:
        path = feed_path(username)
        if path in routes:
            logger.warning("Duplicate route %s; last registration wins", path)
        logger.info("Registering %s", path)
        routes[path] = view_factory(username)
    return MappingProxyType(routes)


def make_feed_view(username: str, client: TwitterClient) -> View:
    """Return the view that renders ``username``'s timeline as RSS."""

    def view() -> Response:
        posts = client.fetch_timeline(username)
        feed = to_feed(username, request.path, posts)
        body = render_rss(feed)
        return Response(body, status=200, mimetype=RSS_MIMETYPE)

    return view


def healthcheck() -> Response:
    return json_response({})


def terminate_process() -> None:
    """Stop the whole server; used only in fail-stop mode."""
    os._exit(1)


def _log_request_start() -> None:
    g.request_started = time.perf_counter()


def _log_access(response: Response) -> Response:
    started = g.get("request_started")
    elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
    timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")
    size = response.calculate_content_length()
    access_logger.info(
        '%s - - [%s] "%s %s %s" %d %s %.1fms',
        request.remote_addr or "-",
        timestamp,
        request.method,
        request.full_path.rstrip("?"),
        request.environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
        response.status_code,
        size if size is not None else "-",
        elapsed_ms,
    )
    return response


def _make_error_handler(fail_stop: bool) -> Callable[[InternalServerError], Response]:
    def handle_internal_error(exc: InternalServerError) -> Response:
        original = exc.original_exception or exc
        # Flask has already logged the traceback via app.logger.
        logger.error("Request %s %s failed: %s", request.method, request.path, original)
        response = json_response({"error": INTERNAL_ERROR_MESSAGE}, status=500)

        if fail_stop:
            logger.critical("Fail-stop enabled; terminating after %s", request.path)
            response.call_on_close(terminate_process)
        return response

    return handle_internal_error


def create_app(config: AppConfig, client: Optional[TwitterClient] = None) -> Flask:
    """Wire the routes, error handling and access logging into a Flask app."""
    if client is None:
        token_cache = (
            TokenCache(ttl_seconds=config.token_ttl_seconds)
            if config.cache_tokens
            else None
        )
        client = TwitterClient(
            config.credentials,
            api_base_url=config.api_base_url,
            timeout=config.timeout_seconds,
            token_cache=token_cache,
        )

    app = Flask(__name__)

    app.add_url_rule("/healthcheck", endpoint="healthcheck", view_func=healthcheck)

    routes = build_routes(
        config.usernames, lambda username: make_feed_view(username, client)
    )
    for index, (path, view) in enumerate(routes.items()):
        app.add_url_rule(path, endpoint=f"feed_{index}", view_func=view)

    app.before_request(_log_request_start)
    app.after_request(_log_access)
    app.register_error_handler(
        InternalServerError, _make_error_handler(config.fail_stop)
    )

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
    return app
