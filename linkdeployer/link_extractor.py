"""Extract ordered, de-duplicated video URLs from JSON, Markdown and plain text files."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Union
from urllib.parse import urlparse

from .errors import ReadFailure
from .url_parser import clean_url, is_valid_url

if TYPE_CHECKING:
    from .registry import PlatformRegistry

logger = logging.getLogger(__name__)

# Top-level keys holding the URL list in a JSON document, checked in order
URL_LIST_KEYS = ("urls", "videos", "links")
COMMENT_MARKERS = ("#", "//")

VIDEO_HOSTS = (
    "youtube.com",
    "youtu.be",
    "facebook.com",
    "fb.watch",
    "instagram.com",
    "vimeo.com",
    "tiktok.com",
    "twitch.tv",
    "dailymotion.com",
    "dai.ly",
    "streamable.com",
    "video",
)
VIDEO_PATH_RE = re.compile(r"\.(mp4|webm|ogg|mov|avi|mkv)$", re.IGNORECASE)

MARKDOWN_LINK_RE = re.compile(r"\[[^\]]+\]\(([^)]+)\)")
MARKDOWN_BARE_URL_RE = re.compile(r"https?://[^\s)]+", re.IGNORECASE)
BARE_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)


class ContentKind(str, Enum):
    STRUCTURED = "structured"
    LINKED_DOCUMENT = "linked-document"
    PLAIN_TEXT = "plain-text"
    UNKNOWN = "unknown"


_KIND_ALIASES = {
    "structured": ContentKind.STRUCTURED,
    "json": ContentKind.STRUCTURED,
    "linked-document": ContentKind.LINKED_DOCUMENT,
    "markdown": ContentKind.LINKED_DOCUMENT,
    "md": ContentKind.LINKED_DOCUMENT,
    "plain-text": ContentKind.PLAIN_TEXT,
    "text": ContentKind.PLAIN_TEXT,
    "txt": ContentKind.PLAIN_TEXT,
    "list": ContentKind.PLAIN_TEXT,
}


def kind_for_filename(file_name: str) -> ContentKind:
    """Map a file name's extension to the content kind used for extraction."""
    suffix = Path(file_name).suffix.lower().lstrip(".")
    return _KIND_ALIASES.get(suffix, ContentKind.UNKNOWN)


def resolve_content_kind(hint: Union[ContentKind, str, None]) -> ContentKind:
    """Accept a ContentKind, a kind name ("json", "md", ...) or a file name."""
    if isinstance(hint, ContentKind):
        return hint
    if not hint:
        return ContentKind.UNKNOWN
    key = hint.strip().lower()
    if key in _KIND_ALIASES:
        return _KIND_ALIASES[key]
    return kind_for_filename(key)


def is_video_url(url: str) -> bool:
    """Return True if the URL's host or path looks like a video reference."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    return any(h in host for h in VIDEO_HOSTS) or VIDEO_PATH_RE.search(parsed.path) is not None


def _dedupe(urls: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            result.append(url)
    return result


def _scan_bare_urls(text: str, pattern: re.Pattern = BARE_URL_RE) -> list[str]:
    """Find http(s) tokens, strip trailing punctuation and keep the valid ones."""
    found = []
    for match in pattern.finditer(text):
        url = clean_url(match.group(0))
        if is_valid_url(url):
            found.append(url)
    return found


def _valid_strings(items: list) -> list[str]:
    return [item.strip() for item in items if isinstance(item, str) and is_valid_url(item)]


def _walk_structure(value) -> list[str]:
    """Depth-first walk collecting every string that is a valid http(s) URL."""
    urls: list[str] = []
    # Iterative: nesting depth never hits the recursion limit
    stack = [value]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            if is_valid_url(item):
                urls.append(item.strip())
        elif isinstance(item, dict):
            stack.extend(reversed(list(item.values())))
        elif isinstance(item, list):
            stack.extend(reversed(item))
    return urls


def read_json_urls(content: str) -> list[str]:
    """
    Read URLs from JSON content.

    Supported layouts:
    - ["url1", "url2"]
    - {"urls": [...]}, {"videos": [...]} or {"links": [...]}
    - any other structure, walked depth-first for URL strings
    """
    try:
        data = json.loads(content)
    except (ValueError, RecursionError) as e:
        logger.warning("Could not parse JSON link file: %s", e)
        return []

    if isinstance(data, list) and all(isinstance(item, str) for item in data):
        return _dedupe(_valid_strings(data))

    if isinstance(data, dict):
        for key in URL_LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                return _dedupe(_valid_strings(value))

    return _dedupe(_walk_structure(data))


def read_markdown_urls(content: str) -> list[str]:
    """
    Read URLs from Markdown content.

    [text](url) links come first in document order, then bare URLs not
    already captured.
    """
    urls: list[str] = []
    for match in MARKDOWN_LINK_RE.finditer(content):
        url = match.group(1).strip()
        if is_valid_url(url):
            urls.append(url)

    urls.extend(_scan_bare_urls(content, MARKDOWN_BARE_URL_RE))
    return _dedupe(urls)


def read_text_urls(content: str) -> list[str]:
    """Read URLs line by line, skipping blank and comment lines."""
    urls: list[str] = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(COMMENT_MARKERS):
            continue
        if is_valid_url(line):
            urls.append(line)
            continue
        urls.extend(_scan_bare_urls(line))
    return _dedupe(urls)


def read_any_video_urls(content: str) -> list[str]:
    """Fallback for unknown content: bare URL scan filtered to video-looking links."""
    return _dedupe(url for url in _scan_bare_urls(content) if is_video_url(url))


def extract_urls(content: str, hint: Union[ContentKind, str, None] = None) -> list[str]:
    """
    Extract candidate video URLs from file content.

    hint is a ContentKind, a kind name or the source file name. The result is
    recomputed on every call.
    """
    if not content:
        return []
    kind = resolve_content_kind(hint)
    if kind is ContentKind.STRUCTURED:
        urls = read_json_urls(content)
    elif kind is ContentKind.LINKED_DOCUMENT:
        urls = read_markdown_urls(content)
    elif kind is ContentKind.PLAIN_TEXT:
        urls = read_text_urls(content)
    else:
        urls = read_any_video_urls(content)
    logger.debug("Extracted %d URL(s) from %s content", len(urls), kind.value)
    return urls


@dataclass
class ExtractedLink:
    """A candidate URL plus the facts derived from it."""

    original: str
    cleaned: str
    valid: bool
    platform: str

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "cleaned": self.cleaned,
            "valid": self.valid,
            "platform": self.platform,
        }


def annotate_links(urls: Iterable[str], registry: PlatformRegistry) -> list[ExtractedLink]:
    """Clean, validate and resolve each URL against the registry."""
    links = []
    for url in urls:
        cleaned = clean_url(url)
        valid = is_valid_url(cleaned)
        platform = registry.resolve_name(cleaned) if valid else None
        links.append(
            ExtractedLink(
                original=url,
                cleaned=cleaned,
                valid=valid,
                platform=platform or "unresolved",
            )
        )
    return links


@dataclass
class SelectedFile:
    """A user-selected link file: either on disk (path) or uploaded (data)."""

    name: str
    path: Optional[Path] = None
    data: Optional[bytes] = None


def read_selected_file(file: SelectedFile) -> str:
    """Return the file's text content. Raises ReadFailure."""
    try:
        raw = file.data if file.data is not None else Path(file.path).read_bytes()
    except (OSError, TypeError) as e:
        raise ReadFailure(f"Failed to read file {file.name}: {e}") from e
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ReadFailure(f"File {file.name} is not UTF-8 text") from e
