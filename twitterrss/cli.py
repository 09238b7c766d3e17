"""Command-line entry point for the twitterrss server."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .app import create_app
from .config import (
    AppConfig,
    build_app_config,
    parse_app_config,
    parse_env_config,
    parse_env_overrides,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Serve Twitter user timelines as RSS feeds.",
        epilog="This runs werkzeug's development server; in production, serve "
        "twitterrss.app.create_app from a WSGI server instead.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Optional path to an XML configuration file.",
    )
    parser.add_argument(
        "--usernames",
        action="append",
        default=None,
        metavar="USERNAME",
        help="Allowed username; repeat to serve several feeds.",
    )
    parser.add_argument("--consumer-key", default=None, help="Twitter Consumer Key")
    parser.add_argument(
        "--consumer-secret", default=None, help="Twitter Consumer Secret"
    )
    parser.add_argument("--port", default=None, help="Port to listen on (default 8000).")
    parser.add_argument("--host", default=None, help="Interface to bind (default 0.0.0.0).")
    parser.add_argument(
        "--timeout",
        dest="timeout_seconds",
        default=None,
        help="Timeout in seconds for each Twitter API call.",
    )
    parser.add_argument(
        "--no-token-cache",
        dest="cache_tokens",
        action="store_const",
        const=False,
        default=None,
        help="Exchange credentials on every request instead of reusing tokens.",
    )
    parser.add_argument(
        "--fail-stop",
        action="store_const",
        const=True,
        default=None,
        help="Terminate the server after any request fails (legacy behaviour).",
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    # Access lines go to stdout as-is, apart from the diagnostic log.
    access_logger = logging.getLogger("twitterrss.access")
    for handler in access_logger.handlers[:]:
        access_logger.removeHandler(handler)
        handler.close()
    access_handler = logging.StreamHandler(sys.stdout)
    access_handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(access_handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    values = {
        "consumer_key": args.consumer_key,
        "consumer_secret": args.consumer_secret,
        "port": args.port,
        "host": args.host,
        "timeout_seconds": args.timeout_seconds,
        "cache_tokens": args.cache_tokens,
        "fail_stop": args.fail_stop,
    }
    if args.usernames:
        values["usernames"] = tuple(args.usernames)
    return values


def load_config(
    args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """Layer XML config, ``TWITTER_*`` variables and flags into an AppConfig."""
    file_values: Dict[str, Any] = {}
    if args.config:
        file_values = parse_app_config(args.config)
        env_file = file_values.get("env_file")
        if env_file:
            os.environ.update(parse_env_config(env_file))

    if environ is None:
        environ = os.environ
    return build_app_config(
        [file_values, parse_env_overrides(environ), _cli_overrides(args)],
        environ,
    )


def serve(config: AppConfig) -> None:
    """Run the built-in werkzeug server.

    For production, point a WSGI server such as gunicorn at ``create_app``.
    """
    app = create_app(config)
    logger.info("Listening on %s:%d", config.host, config.port)
    app.run(host=config.host, port=config.port, threaded=True)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)

        log_level = args.log_level or config.logging.level
        log_file = args.log_file or config.logging.file
        configure_logging(log_level, log_file)

        config_dict = dataclasses.asdict(config)
        for secret in ("consumer_key", "consumer_secret"):
            if config_dict.get(secret):
                config_dict[secret] = "***MASKED***"
        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        serve(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error while serving.")
        return 1

    return 0
