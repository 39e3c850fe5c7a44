"""Extensible URL handlers for video platforms. Recognize video URLs and derive playable/embed data."""

from __future__ import annotations

import html
import re
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

from .errors import InvalidReference

# YouTube video ID: 11 chars, alphanumeric + underscore + hyphen
YOUTUBE_VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")
VIMEO_VIDEO_ID_RE = re.compile(r"^\d+$")
DAILYMOTION_VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9]+$")

TRAILING_PUNCTUATION = ".,;:!?)"
MEDIA_EXTENSIONS = (".mp4", ".webm", ".ogg", ".ogv", ".mov", ".avi", ".mkv", ".m4v", ".m3u8", ".mpd")

_IFRAME_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"


def is_valid_url(url: object) -> bool:
    """Return True if url is an absolute http(s) URL."""
    if not isinstance(url, str):
        return False
    candidate = url.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    try:
        parsed = urlparse(candidate)
        # Accessing .port validates it (raises ValueError on garbage)
        parsed.port
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.hostname)


def clean_url(url: str) -> str:
    """Strip trailing sentence punctuation and whitespace from a URL token."""
    return url.strip().rstrip(TRAILING_PUNCTUATION).strip()


def has_media_extension(url: str) -> bool:
    """Return True if the URL path ends in a direct media file extension."""
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return path.endswith(MEDIA_EXTENSIONS)


def _iframe_markup(src: str) -> str:
    return (
        f'<iframe width="100%" height="100%" src="{html.escape(src, quote=True)}" '
        f'frameborder="0" allow="{_IFRAME_ALLOW}" allowfullscreen></iframe>'
    )


@dataclass
class EmbedData:
    """Everything a caller needs to render an embedded player."""

    url: str
    html: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class VideoMetadata:
    """Best-effort display metadata for a video."""

    title: Optional[str] = None
    author: Optional[str] = None
    author_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    thumbnail_width: Optional[int] = None
    thumbnail_height: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class PlatformHandler:
    """Interface for platform-specific URL handlers."""

    name: str = ""
    embed_width: int = 640
    embed_height: int = 360

    def identify_reference(self, url: str) -> Optional[str]:
        """Return the platform reference (e.g. video ID) in url, or None. Never raises."""
        raise NotImplementedError

    def make_playable(self, url: str) -> str:
        """Return a URL usable as a playback or iframe source. Raises InvalidReference."""
        raise NotImplementedError

    def make_embeddable(self, url: str) -> EmbedData:
        """Return embed data for url. Raises InvalidReference."""
        raise NotImplementedError

    def metadata_endpoint(self, url: str) -> Optional[str]:
        """Return the platform's public metadata (oEmbed) endpoint for url, if any."""
        return None

    def _require_reference(self, url: str) -> str:
        reference = self.identify_reference(url)
        if not reference:
            raise InvalidReference(f"Invalid {self.name} URL: could not extract video ID")
        return reference

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class YouTubeHandler(PlatformHandler):
    """Handle YouTube watch, short-link, embed, /v/ and shorts URLs."""

    name = "YouTube"
    embed_width = 560
    embed_height = 315

    _THUMBNAIL_QUALITIES = {
        "default": "default",
        "medium": "mqdefault",
        "high": "hqdefault",
        "maxres": "maxresdefault",
    }

    def identify_reference(self, url: str) -> Optional[str]:
        if not isinstance(url, str):
            return None
        url = url.strip()
        if not url:
            return None

        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if not parsed.scheme or not parsed.netloc:
            return None

        host = parsed.netloc.lower()
        video_id: Optional[str] = None

        # youtu.be/VIDEO_ID
        if "youtu.be" in host:
            path = parsed.path.strip("/")
            if path:
                video_id = path.split("/")[0]

        elif "youtube.com" in host:
            # youtube.com/watch?v=VIDEO_ID
            qs = parse_qs(parsed.query)
            if "v" in qs and qs["v"]:
                video_id = qs["v"][0]
            else:
                # youtube.com/embed/VIDEO_ID, /v/VIDEO_ID, /shorts/VIDEO_ID
                for marker in ("/embed/", "/v/", "/shorts/"):
                    if marker in parsed.path:
                        video_id = parsed.path.split(marker, 1)[1].split("/")[0]
                        break

        if not video_id or not YOUTUBE_VIDEO_ID_RE.match(video_id):
            return None
        return video_id

    def make_playable(self, url: str) -> str:
        video_id = self._require_reference(url)
        # YouTube does not serve raw media; the embed player is the playback source
        return f"https://www.youtube.com/embed/{video_id}?autoplay=1&enablejsapi=1"

    def make_embeddable(self, url: str) -> EmbedData:
        video_id = self._require_reference(url)
        embed_url = f"https://www.youtube.com/embed/{video_id}?autoplay=1"
        return EmbedData(
            url=embed_url,
            html=_iframe_markup(embed_url),
            width=self.embed_width,
            height=self.embed_height,
        )

    def metadata_endpoint(self, url: str) -> Optional[str]:
        if not self.identify_reference(url):
            return None
        return f"https://www.youtube.com/oembed?url={quote(url.strip(), safe='')}&format=json"

    def thumbnail_url(self, url: str, quality: str = "high") -> Optional[str]:
        """Return the static thumbnail URL for a YouTube video, or None."""
        video_id = self.identify_reference(url)
        if not video_id:
            return None
        suffix = self._THUMBNAIL_QUALITIES.get(quality, self._THUMBNAIL_QUALITIES["high"])
        return f"https://img.youtube.com/vi/{video_id}/{suffix}.jpg"


class VimeoHandler(PlatformHandler):
    """Handle vimeo.com/ID and player.vimeo.com/video/ID URLs."""

    name = "Vimeo"

    def identify_reference(self, url: str) -> Optional[str]:
        if not isinstance(url, str):
            return None
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return None
        if "vimeo.com" not in parsed.netloc.lower():
            return None

        parts = [p for p in parsed.path.split("/") if p]
        if parsed.netloc.lower().startswith("player.") and len(parts) >= 2 and parts[0] == "video":
            candidate = parts[1]
        else:
            # vimeo.com/123, vimeo.com/channels/staffpicks/123
            candidate = next((p for p in parts if VIMEO_VIDEO_ID_RE.match(p)), None)

        if not candidate or not VIMEO_VIDEO_ID_RE.match(candidate):
            return None
        return candidate

    def make_playable(self, url: str) -> str:
        video_id = self._require_reference(url)
        return f"https://player.vimeo.com/video/{video_id}?autoplay=1"

    def make_embeddable(self, url: str) -> EmbedData:
        embed_url = self.make_playable(url)
        return EmbedData(
            url=embed_url,
            html=_iframe_markup(embed_url),
            width=self.embed_width,
            height=self.embed_height,
        )

    def metadata_endpoint(self, url: str) -> Optional[str]:
        if not self.identify_reference(url):
            return None
        return f"https://vimeo.com/api/oembed.json?url={quote(url.strip(), safe='')}"


class DailymotionHandler(PlatformHandler):
    """Handle dailymotion.com/video/ID and dai.ly/ID URLs."""

    name = "Dailymotion"

    def identify_reference(self, url: str) -> Optional[str]:
        if not isinstance(url, str):
            return None
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return None

        host = parsed.netloc.lower()
        candidate: Optional[str] = None
        if host.endswith("dai.ly"):
            candidate = parsed.path.strip("/").split("/")[0]
        elif "dailymotion.com" in host and "/video/" in parsed.path:
            candidate = parsed.path.split("/video/", 1)[1].split("/")[0]
            # Old-style links append a slug: x7tgad0_some-title
            candidate = candidate.split("_")[0]

        if not candidate or not DAILYMOTION_VIDEO_ID_RE.match(candidate):
            return None
        return candidate

    def make_playable(self, url: str) -> str:
        video_id = self._require_reference(url)
        return f"https://www.dailymotion.com/embed/video/{video_id}?autoplay=1"

    def make_embeddable(self, url: str) -> EmbedData:
        embed_url = self.make_playable(url)
        return EmbedData(
            url=embed_url,
            html=_iframe_markup(embed_url),
            width=self.embed_width,
            height=self.embed_height,
        )

    def metadata_endpoint(self, url: str) -> Optional[str]:
        if not self.identify_reference(url):
            return None
        return f"https://www.dailymotion.com/services/oembed?url={quote(url.strip(), safe='')}&format=json"


class GenericHandler(PlatformHandler):
    """
    Fallback for URLs that match no registered platform.

    The reference is the cleaned URL itself. Only direct media files are
    playable on the stage; anything else can still be embedded in an iframe.
    """

    name = "Generic"

    def identify_reference(self, url: str) -> Optional[str]:
        if not isinstance(url, str):
            return None
        cleaned = clean_url(url)
        return cleaned if is_valid_url(cleaned) else None

    def make_playable(self, url: str) -> str:
        reference = self._require_reference(url)
        if not has_media_extension(reference):
            raise InvalidReference(f"Not a direct media URL: {reference}")
        return reference

    def make_embeddable(self, url: str) -> EmbedData:
        reference = self._require_reference(url)
        src = html.escape(reference, quote=True)
        if has_media_extension(reference):
            markup = f'<video src="{src}" controls autoplay style="width:100%;height:100%"></video>'
        else:
            markup = _iframe_markup(reference)
        return EmbedData(
            url=reference,
            html=markup,
            width=self.embed_width,
            height=self.embed_height,
        )


BUILTIN_HANDLERS: tuple[type[PlatformHandler], ...] = (YouTubeHandler, VimeoHandler, DailymotionHandler)
