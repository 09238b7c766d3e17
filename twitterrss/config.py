"""Configuration loading for the feed server."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from xml.etree import ElementTree as ET

from .errors import ConfigurationInvalid
from .models import Credentials
from .twitter import DEFAULT_API_BASE_URL, DEFAULT_TOKEN_URL

logger = logging.getLogger(__name__)

ENV_PREFIX = "TWITTER_"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    consumer_key: str = ""
    consumer_secret: str = ""
    port: int = 8000
    usernames: Tuple[str, ...] = ()
    host: str = "0.0.0.0"
    token_url: str = DEFAULT_TOKEN_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout_seconds: float = 10.0
    cache_tokens: bool = True
    token_ttl_seconds: float = 3600.0
    fail_stop: bool = False
    env_file: Optional[str] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            client_id=self.consumer_key,
            client_secret=self.consumer_secret,
            token_url=self.token_url,
        )


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def parse_app_config(path: str) -> Dict[str, Any]:
    """Parse the XML config file into a dict of AppConfig overrides.

    Only settings present in the file are returned so that later layers
    (environment, command line) can tell them apart from defaults.
    """
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    root = ET.parse(config_path).getroot()
    values: Dict[str, Any] = {}

    for tag, key in (
        ("consumer-key", "consumer_key"),
        ("consumer-secret", "consumer_secret"),
        ("host", "host"),
        ("token-url", "token_url"),
        ("api-base-url", "api_base_url"),
    ):
        text = root.findtext(tag)
        if text:
            values[key] = text.strip()

    port = root.findtext("port")
    if port:
        values["port"] = port.strip()

    usernames_node = root.find("usernames")
    if usernames_node is not None:
        values["usernames"] = tuple(
            node.text.strip()
            for node in usernames_node.findall("username")
            if node.text and node.text.strip()
        )

    timeout = root.findtext("timeout-seconds")
    if timeout:
        values["timeout_seconds"] = timeout.strip()

    ttl = root.findtext("token-ttl-seconds")
    if ttl:
        values["token_ttl_seconds"] = ttl.strip()

    for tag, key in (("cache-tokens", "cache_tokens"), ("fail-stop", "fail_stop")):
        text = root.findtext(tag)
        if text:
            values[key] = _parse_bool(text)

    env_node = root.find("env")
    if env_node is not None and env_node.text:
        values["env_file"] = _resolve_path(config_path, env_node.text.strip())

    log_node = root.find("logging")
    if log_node is not None:
        log_file = log_node.findtext("file")
        values["logging"] = LoggingConfig(
            level=log_node.findtext("level", "INFO"),
            file=_resolve_path(config_path, log_file) if log_file else None,
        )

    return values


def parse_env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect ``TWITTER_*`` overrides, then apply a bare ``PORT`` on top."""
    values: Dict[str, Any] = {}
    for name, key in (
        ("CONSUMER_KEY", "consumer_key"),
        ("CONSUMER_SECRET", "consumer_secret"),
        ("PORT", "port"),
    ):
        value = environ.get(ENV_PREFIX + name)
        if value:
            values[key] = value

    usernames = environ.get(ENV_PREFIX + "USERNAMES")
    if usernames:
        values["usernames"] = tuple(
            name.strip() for name in usernames.split(",") if name.strip()
        )
    return values


def _coerce_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigurationInvalid("Invalid port") from None
    if not 0 < port < 65536:
        raise ConfigurationInvalid("Invalid port")
    return port


def _coerce_positive(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationInvalid(f"Invalid {name}: {value!r}") from None
    if number <= 0:
        raise ConfigurationInvalid(f"Invalid {name}: {value!r}")
    return number


def build_app_config(
    layers: List[Dict[str, Any]],
    environ: Mapping[str, str],
) -> AppConfig:
    """Merge override layers (lowest precedence first) and validate.

    ``PORT`` from ``environ`` wins over every layer.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged.update({k: v for k, v in layer.items() if v is not None})

    if environ.get("PORT"):
        merged["port"] = environ["PORT"]

    config = replace(AppConfig(), **merged)

    if not config.consumer_key or not config.consumer_secret:
        raise ConfigurationInvalid("Application Access Token required")

    config = replace(
        config,
        port=_coerce_port(config.port),
        usernames=tuple(config.usernames),
        timeout_seconds=_coerce_positive(config.timeout_seconds, "timeout"),
        token_ttl_seconds=_coerce_positive(config.token_ttl_seconds, "token TTL"),
    )

    if not config.usernames:
        logger.warning("No usernames configured; only /healthcheck will be served")
    return config
