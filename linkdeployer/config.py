"""Application configuration, read from LINKDEPLOYER_* environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "LINKDEPLOYER_"

# Default config values
DEFAULT_WEB_HOST = "0.0.0.0"
DEFAULT_WEB_PORT = 8080
DEFAULT_MPV_SOCKET = "/tmp/linkdeployer-mpv.sock"
DEFAULT_TARGET = "video_stage"
DEFAULT_FAILURE_POLICY = "halt"
DEFAULT_FETCH_METADATA = False
DEFAULT_METADATA_TIMEOUT = 10.0
DEFAULT_PLATFORM_PRIORITY = 100
DEFAULT_ACTIVITY_LINES = 50
DEFAULT_DEBUG_MODE = False

_TARGETS = ("embed", "video_stage")
_FAILURE_POLICIES = ("halt", "skip")


@dataclass
class AppConfig:
    """Application configuration."""

    web_host: str
    web_port: int
    mpv_socket: str
    default_target: str
    playlist_failure_policy: str
    fetch_metadata: bool
    metadata_timeout: float
    default_priority: int
    activity_lines: int
    debug_mode: bool

    @classmethod
    def defaults(cls) -> AppConfig:
        return cls(
            web_host=DEFAULT_WEB_HOST,
            web_port=DEFAULT_WEB_PORT,
            mpv_socket=DEFAULT_MPV_SOCKET,
            default_target=DEFAULT_TARGET,
            playlist_failure_policy=DEFAULT_FAILURE_POLICY,
            fetch_metadata=DEFAULT_FETCH_METADATA,
            metadata_timeout=DEFAULT_METADATA_TIMEOUT,
            default_priority=DEFAULT_PLATFORM_PRIORITY,
            activity_lines=DEFAULT_ACTIVITY_LINES,
            debug_mode=DEFAULT_DEBUG_MODE,
        )

    def to_dict(self) -> dict:
        return asdict(self)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_choice(value: Optional[str], choices: tuple[str, ...], default: str) -> str:
    if value is None:
        return default
    value = value.strip().lower()
    if value not in choices:
        logger.warning("Ignoring invalid config value %r (expected one of %s)", value, ", ".join(choices))
        return default
    return value


def _parse_number(d: Mapping[str, str], key: str, cast, default):
    raw = d.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid config value %s=%r", key, raw)
        return default


def _dict_to_config(d: Mapping[str, str]) -> AppConfig:
    return AppConfig(
        web_host=d.get("web_host") or DEFAULT_WEB_HOST,
        web_port=_parse_number(d, "web_port", int, DEFAULT_WEB_PORT),
        mpv_socket=d.get("mpv_socket") or DEFAULT_MPV_SOCKET,
        default_target=_parse_choice(d.get("default_target"), _TARGETS, DEFAULT_TARGET),
        playlist_failure_policy=_parse_choice(
            d.get("playlist_failure_policy"), _FAILURE_POLICIES, DEFAULT_FAILURE_POLICY
        ),
        fetch_metadata=_parse_bool(d.get("fetch_metadata", "false")),
        metadata_timeout=_parse_number(d, "metadata_timeout", float, DEFAULT_METADATA_TIMEOUT),
        default_priority=_parse_number(d, "default_priority", int, DEFAULT_PLATFORM_PRIORITY),
        activity_lines=_parse_number(d, "activity_lines", int, DEFAULT_ACTIVITY_LINES),
        debug_mode=_parse_bool(d.get("debug_mode", "false")),
    )


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build config from LINKDEPLOYER_* variables (e.g. LINKDEPLOYER_WEB_PORT=9000).

    Missing or invalid values fall back to defaults.
    """
    env = os.environ if environ is None else environ
    d = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX)
    }
    if not d:
        return AppConfig.defaults()
    return _dict_to_config(d)
