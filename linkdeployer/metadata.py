"""Best-effort display metadata: oEmbed endpoints via httpx, yt-dlp for everything else."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import MetadataUnavailable
from .url_parser import PlatformHandler, VideoMetadata

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _from_oembed(data: dict) -> VideoMetadata:
    return VideoMetadata(
        title=data.get("title"),
        author=data.get("author_name"),
        author_url=data.get("author_url"),
        thumbnail_url=data.get("thumbnail_url"),
        thumbnail_width=_int_or_none(data.get("thumbnail_width")),
        thumbnail_height=_int_or_none(data.get("thumbnail_height")),
    )


def fetch_oembed(
    endpoint: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> VideoMetadata:
    """
    GET an oEmbed endpoint and map the response into VideoMetadata.

    Raises MetadataUnavailable on transport errors, non-2xx or malformed JSON.
    """
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        resp = http.get(endpoint)
        if not resp.is_success:
            raise MetadataUnavailable(f"Metadata endpoint returned HTTP {resp.status_code}")
        data = resp.json()
    except httpx.HTTPError as e:
        raise MetadataUnavailable(f"Could not reach metadata endpoint: {e}") from e
    except ValueError as e:
        raise MetadataUnavailable("Metadata endpoint returned malformed JSON") from e
    finally:
        if owns_client:
            http.close()

    if not isinstance(data, dict):
        raise MetadataUnavailable("Metadata endpoint returned an unexpected payload")
    return _from_oembed(data)


def fetch_with_ytdlp(url: str) -> VideoMetadata:
    """Read title/uploader/thumbnail with yt-dlp without downloading anything."""
    import yt_dlp

    opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
    }
    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)
    except Exception as e:
        raise MetadataUnavailable(f"yt-dlp could not read {url}: {e}") from e

    if not info:
        raise MetadataUnavailable(f"yt-dlp returned no info for {url}")
    return VideoMetadata(
        title=info.get("title"),
        author=info.get("uploader"),
        author_url=info.get("uploader_url"),
        thumbnail_url=info.get("thumbnail"),
    )


def fetch_metadata(
    handler: PlatformHandler,
    url: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> VideoMetadata:
    """
    Fetch display metadata for url using the handler's metadata endpoint.

    Handlers without an endpoint fall back to yt-dlp. Any failure is raised
    as MetadataUnavailable; callers decide whether to ignore it.
    """
    endpoint = handler.metadata_endpoint(url)
    if endpoint:
        logger.debug("Fetching %s metadata from %s", handler.name, endpoint)
        return fetch_oembed(endpoint, client=client, timeout=timeout)
    logger.debug("No metadata endpoint for %s, trying yt-dlp", handler.name)
    return fetch_with_ytdlp(url)
