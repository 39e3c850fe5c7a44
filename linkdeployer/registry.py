"""Platform registry: maps URLs to platform handlers by priority and pattern."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .url_parser import BUILTIN_HANDLERS, GenericHandler, PlatformHandler, is_valid_url

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100
GENERIC_PLATFORM = "generic"

Pattern = Union[str, re.Pattern]
EventHandler = Callable[[Any], None]

# Built-in recognition patterns keyed by lower-cased platform name
_DEFAULT_PATTERNS: dict[str, tuple[str, ...]] = {
    "youtube": (
        r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/)([^&\s]+)",
        r"youtube\.com/embed/([^&\s]+)",
        r"youtube\.com/v/([^&\s]+)",
        r"youtube\.com/shorts/([^&\s]+)",
    ),
    "facebook": (
        r"facebook\.com/.*/videos/(\d+)",
        r"fb\.watch/([^&\s]+)",
    ),
    "instagram": (
        r"instagram\.com/p/([^&\s/]+)",
        r"instagram\.com/reel/([^&\s/]+)",
    ),
    "vimeo": (
        r"vimeo\.com/(?:.*/)?(\d+)",
    ),
    "tiktok": (
        r"tiktok\.com/.*/video/(\d+)",
    ),
    "twitch": (
        r"twitch\.tv/videos/(\d+)",
        r"twitch\.tv/([^/]+)$",
    ),
    "dailymotion": (
        r"dailymotion\.com/video/([^&\s/]+)",
        r"dai\.ly/([^&\s/]+)",
    ),
}


def default_patterns(name: str) -> list[re.Pattern]:
    """Return the built-in patterns for a platform, or a "host contains name" pattern."""
    key = name.lower()
    if key in _DEFAULT_PATTERNS:
        return [re.compile(p) for p in _DEFAULT_PATTERNS[key]]
    return [re.compile(rf"^[a-z][a-z0-9+.-]*://[^/?#]*{re.escape(key)}", re.IGNORECASE)]


def _compile(pattern: Pattern) -> re.Pattern:
    return pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)


@dataclass
class PlatformEntry:
    """A registered platform: its handler, recognition patterns and state."""

    name: str
    handler: PlatformHandler
    patterns: list[re.Pattern] = field(default_factory=list)
    enabled: bool = True
    priority: int = DEFAULT_PRIORITY

    @property
    def key(self) -> str:
        return self.name.lower()

    def matches(self, url: str) -> bool:
        return any(p.search(url) for p in self.patterns)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "priority": self.priority,
            "patterns": [p.pattern for p in self.patterns],
        }


class PlatformRegistry:
    """
    Registry of platform handlers.

    Entries are keyed by lower-cased name. resolve() tries enabled entries in
    ascending priority; ties go to the entry registered first. Mutations on
    unknown names are silently ignored.
    """

    def __init__(
        self,
        default_priority: int = DEFAULT_PRIORITY,
        generic_handler: Optional[PlatformHandler] = None,
    ) -> None:
        self.default_priority = default_priority
        self.generic_handler = generic_handler or GenericHandler()
        self._entries: dict[str, PlatformEntry] = {}
        self._subscribers: dict[tuple[str, str], list[EventHandler]] = {}

    # -- registration -----------------------------------------------------

    def register(
        self,
        name: str,
        handler: PlatformHandler,
        patterns: Optional[list[Pattern]] = None,
        priority: Optional[int] = None,
    ) -> PlatformEntry:
        """Insert or replace the entry for name (case-insensitive)."""
        compiled = [_compile(p) for p in patterns] if patterns is not None else default_patterns(name)
        entry = PlatformEntry(
            name=name,
            handler=handler,
            patterns=compiled,
            enabled=True,
            priority=self.default_priority if priority is None else priority,
        )
        # Replacing keeps the original dict position, so tie order is stable
        self._entries[entry.key] = entry
        logger.info("Registered platform %s with priority %d", name, entry.priority)
        return entry

    def unregister(self, name: str) -> None:
        if self._entries.pop(name.lower(), None) is not None:
            logger.info("Unregistered platform %s", name)

    def get(self, name: str) -> Optional[PlatformEntry]:
        return self._entries.get(name.lower())

    def all(self) -> list[PlatformEntry]:
        return list(self._entries.values())

    def enabled(self) -> list[PlatformEntry]:
        return [e for e in self._entries.values() if e.enabled]

    def names(self) -> list[str]:
        return [e.name for e in self._entries.values()]

    def set_enabled(self, name: str, enabled: bool) -> None:
        entry = self.get(name)
        if entry:
            entry.enabled = enabled
            logger.info("Platform %s %s", entry.name, "enabled" if enabled else "disabled")

    def set_priority(self, name: str, priority: int) -> None:
        entry = self.get(name)
        if entry:
            entry.priority = priority
            logger.info("Platform %s priority set to %d", entry.name, priority)

    def add_pattern(self, name: str, pattern: Pattern) -> None:
        entry = self.get(name)
        if entry:
            entry.patterns.append(_compile(pattern))
            logger.info("Added pattern to %s", entry.name)

    def clear(self) -> None:
        """Remove all platforms. Subscribers are kept."""
        self._entries.clear()
        logger.info("All platforms cleared")

    def reset(self) -> None:
        """Remove all platforms and all event subscribers."""
        self._entries.clear()
        self._subscribers.clear()
        logger.info("Registry reset")

    # -- resolution -------------------------------------------------------

    def resolve(self, url: str) -> Optional[PlatformEntry]:
        """Return the first enabled entry matching url, by priority then registration order."""
        if not url:
            return None
        # sorted() is stable, so equal priorities keep registration order
        for entry in sorted(self.enabled(), key=lambda e: e.priority):
            if entry.matches(url):
                return entry
        return None

    def resolve_name(self, url: str) -> Optional[str]:
        """Return the platform name for url, "generic" if unmatched, None if url is invalid."""
        if not is_valid_url(url):
            return None
        entry = self.resolve(url.strip())
        return entry.name if entry else GENERIC_PLATFORM

    def handler_for(self, url: str) -> tuple[str, PlatformHandler]:
        """Return (platform name, handler) for url, falling back to the generic handler."""
        entry = self.resolve(url)
        if entry:
            return entry.name, entry.handler
        return GENERIC_PLATFORM, self.generic_handler

    def summary(self) -> str:
        return f"{len(self._entries)} platforms registered ({len(self.enabled())} enabled)"

    # -- events -----------------------------------------------------------

    @staticmethod
    def _event_key(event: str, platform: str) -> tuple[str, str]:
        return event, platform.lower()

    def subscribe(self, event: str, platform: str, handler: EventHandler) -> None:
        self._subscribers.setdefault(self._event_key(event, platform), []).append(handler)

    def unsubscribe(self, event: str, platform: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(self._event_key(event, platform))
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event: str, platform: str, payload: Any = None) -> None:
        """Call subscribers in order. A failing subscriber is logged and skipped."""
        key = self._event_key(event, platform)
        for handler in list(self._subscribers.get(key, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("Error in event subscriber for %s:%s", *key)


def create_default_registry(default_priority: int = DEFAULT_PRIORITY) -> PlatformRegistry:
    """Build a registry with the built-in platform handlers registered."""
    registry = PlatformRegistry(default_priority=default_priority)
    for handler_cls in BUILTIN_HANDLERS:
        handler = handler_cls()
        registry.register(handler.name, handler)
    return registry
