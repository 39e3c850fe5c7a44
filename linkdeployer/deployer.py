"""Deployment core: turns a URL or a link file into playback on the embed surface or the main stage."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from .errors import (
    DeployError,
    InvalidInput,
    InvalidReference,
    MetadataUnavailable,
    PlaybackFailed,
    SurfaceUnavailable,
    UnsupportedPlatform,
)
from .link_extractor import SelectedFile, extract_urls, read_selected_file
from .metadata import fetch_metadata
from .registry import GENERIC_PLATFORM, PlatformRegistry
from .url_parser import EmbedData, PlatformHandler, VideoMetadata, is_valid_url

logger = logging.getLogger(__name__)


class DeployTarget(str, Enum):
    EMBED = "embed"
    STAGE = "video_stage"


class RequestKind(str, Enum):
    URL = "url"
    FILE = "file"


class DeployState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DEPLOYING = "deploying"
    DEPLOYING_FIRST = "deploying_first"
    AWAITING_ADVANCE = "awaiting_advance"
    DEPLOYING_NEXT = "deploying_next"


class OutcomeStatus(str, Enum):
    DELIVERED_SINGLE = "delivered-single"
    DELIVERED_BATCH = "delivered-batch"
    EMPTY_BATCH = "empty-batch"
    FAILED = "failed"


class PlaylistFailurePolicy(str, Enum):
    """What to do when a playlist item cannot be deployed."""

    HALT = "halt"
    SKIP = "skip"


# -- collaborators ------------------------------------------------------------


class PlayableSink:
    """Addressable playback element on the main stage."""

    def set_source(self, url: str) -> None:
        raise NotImplementedError

    def load(self) -> None:
        raise NotImplementedError

    def play_when_ready(self) -> None:
        """Begin playback once the loaded source reports ready."""
        raise NotImplementedError


class StageSurface:
    """The application's main video stage."""

    def get_current_playable_sink(self) -> Optional[PlayableSink]:
        raise NotImplementedError

    def subscribe_ended(self, callback: Callable[[], None]) -> None:
        """Call callback when the current item ends naturally."""
        raise NotImplementedError

    def unsubscribe_ended(self, callback: Callable[[], None]) -> None:
        raise NotImplementedError

    def subscribe_failed(self, callback: Callable[[str], None]) -> None:
        """Call callback with a reason when the current item fails to play. Optional."""

    def unsubscribe_failed(self, callback: Callable[[str], None]) -> None:
        pass


class EmbedSurface:
    """Popup player. Owns its own open/close lifecycle."""

    def show(self, data: EmbedData) -> None:
        raise NotImplementedError


# -- requests and results -----------------------------------------------------


@dataclass
class DeploymentRequest:
    """One user-initiated deployment."""

    kind: RequestKind
    target: DeployTarget
    url: Optional[str] = None
    file: Optional[SelectedFile] = None
    urls: Optional[list[str]] = None

    @classmethod
    def single(cls, url: str, target: DeployTarget = DeployTarget.STAGE) -> DeploymentRequest:
        return cls(kind=RequestKind.URL, target=target, url=url)

    @classmethod
    def from_file(cls, file: SelectedFile, target: DeployTarget = DeployTarget.STAGE) -> DeploymentRequest:
        return cls(kind=RequestKind.FILE, target=target, file=file)

    @classmethod
    def batch(cls, urls: list[str], target: DeployTarget = DeployTarget.STAGE) -> DeploymentRequest:
        return cls(kind=RequestKind.FILE, target=target, urls=list(urls))


@dataclass
class DeployedItem:
    url: str
    platform: str
    result: Union[str, EmbedData]


@dataclass
class DeployOutcome:
    """Result reported to the caller of DeploymentCore.deploy()."""

    status: OutcomeStatus
    count: int = 0
    url: Optional[str] = None
    platform: Optional[str] = None
    result: Union[str, EmbedData, None] = None
    metadata: Optional[VideoMetadata] = None
    error: Optional[DeployError] = None

    @classmethod
    def failed(cls, error: DeployError) -> DeployOutcome:
        return cls(status=OutcomeStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def to_dict(self) -> dict:
        result = self.result.to_dict() if isinstance(self.result, EmbedData) else self.result
        return {
            "status": self.status.value,
            "count": self.count,
            "url": self.url,
            "platform": self.platform,
            "result": result,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "error": {"kind": self.error_kind, "message": self.reason} if self.error else None,
        }


@dataclass
class PlaylistCursor:
    """Position in a batch playing on the main stage."""

    urls: list[str]
    index: int = 0
    failures: list[DeployError] = field(default_factory=list)

    @property
    def current(self) -> Optional[str]:
        return self.urls[self.index] if not self.exhausted else None

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.urls)

    def advance(self) -> bool:
        """Move to the next item. Returns False once past the end."""
        self.index += 1
        return not self.exhausted


# -- core ---------------------------------------------------------------------


class DeploymentCore:
    """
    Orchestrates one deployment at a time.

    A single URL is resolved and delivered to the chosen surface. A batch
    delivers its first item; on the main stage the remaining items follow
    each time the stage reports that the current item ended. Starting a new
    deployment cancels any live playlist.

    Display metadata is not part of a deployment; callers look it up with
    fetch_metadata() and record it with attach_metadata().
    """

    def __init__(
        self,
        registry: PlatformRegistry,
        stage: Optional[StageSurface] = None,
        embed: Optional[EmbedSurface] = None,
        file_reader: Callable[[SelectedFile], str] = read_selected_file,
        failure_policy: PlaylistFailurePolicy = PlaylistFailurePolicy.HALT,
        metadata_fetcher: Callable[[PlatformHandler, str], VideoMetadata] = fetch_metadata,
    ) -> None:
        self.registry = registry
        self.stage = stage
        self.embed = embed
        self.file_reader = file_reader
        self.failure_policy = PlaylistFailurePolicy(failure_policy)
        self.metadata_fetcher = metadata_fetcher

        self.state = DeployState.IDLE
        self.current_url = ""
        self.selected_file: Optional[SelectedFile] = None
        self._cursor: Optional[PlaylistCursor] = None

    # -- user selection ---------------------------------------------------

    def set_current_url(self, url: str) -> None:
        self.current_url = url or ""

    def set_selected_file(self, file: Optional[SelectedFile]) -> None:
        self.selected_file = file

    def reset(self) -> None:
        self.current_url = ""
        self.selected_file = None

    def can_deploy(self) -> bool:
        return bool(self.current_url or self.selected_file)

    def deploy_current(
        self,
        target: DeployTarget,
        on_complete: Optional[Callable[[DeployOutcome], None]] = None,
    ) -> DeployOutcome:
        """Deploy the current selection; a URL takes precedence over a file."""
        if self.current_url:
            request = DeploymentRequest.single(self.current_url, target)
        elif self.selected_file:
            request = DeploymentRequest.from_file(self.selected_file, target)
        else:
            request = DeploymentRequest(kind=RequestKind.URL, target=target)
        return self.deploy(request, on_complete)

    # -- playlist ---------------------------------------------------------

    @property
    def playlist(self) -> Optional[PlaylistCursor]:
        return self._cursor

    def cancel_playlist(self) -> None:
        """Discard the live playlist (if any) and detach its end-of-item observer."""
        if self._cursor is None:
            return
        logger.info(
            "Cancelling playlist at item %d of %d",
            self._cursor.index + 1,
            len(self._cursor.urls),
        )
        self._detach_observer()
        self._cursor = None
        self.state = DeployState.IDLE

    def _attach_observer(self) -> None:
        if self.stage is not None:
            self.stage.subscribe_ended(self._on_item_ended)
            self.stage.subscribe_failed(self._on_item_failed)

    def _detach_observer(self) -> None:
        if self.stage is not None:
            self.stage.unsubscribe_ended(self._on_item_ended)
            self.stage.unsubscribe_failed(self._on_item_failed)

    def _finish_playlist(self) -> None:
        logger.info("Playlist finished")
        self._cursor = None
        self.state = DeployState.IDLE

    def _on_item_ended(self) -> None:
        cursor = self._cursor
        if cursor is None:
            return
        self._advance_playlist(cursor)

    def _on_item_failed(self, reason: str = "") -> None:
        """The stage could not play the current item; apply the failure policy."""
        cursor = self._cursor
        if cursor is None:
            return
        url = cursor.current
        error = PlaybackFailed(f"Video stage could not play {url}: {reason or 'unknown error'}")
        cursor.failures.append(error)
        platform, _ = self.registry.handler_for(url)
        logger.warning("Playlist item %d failed on stage: %s", cursor.index + 1, error.message)
        self.registry.publish("failed", platform, {"url": url, "kind": error.kind, "message": error.message})

        if self.failure_policy is PlaylistFailurePolicy.HALT:
            self._detach_observer()
            logger.warning("Playlist halted at item %d of %d", cursor.index + 1, len(cursor.urls))
            self._finish_playlist()
            return
        self._advance_playlist(cursor)

    def _advance_playlist(self, cursor: PlaylistCursor) -> None:
        # One-shot per item
        self._detach_observer()
        if not cursor.advance():
            self._finish_playlist()
            return

        self.state = DeployState.DEPLOYING_NEXT
        try:
            item = self._play_from(cursor)
        except DeployError:
            logger.warning("Playlist halted at item %d of %d", cursor.index + 1, len(cursor.urls))
            self._finish_playlist()
            return
        if item is None:
            self._finish_playlist()
            return
        self.state = DeployState.AWAITING_ADVANCE
        self._attach_observer()

    def _play_from(self, cursor: PlaylistCursor) -> Optional[DeployedItem]:
        """
        Deploy the cursor's current item to the stage.

        Under the skip policy failed items are passed over until one plays or
        the cursor runs out (returns None). Under halt the error is raised.
        """
        while not cursor.exhausted:
            url = cursor.current
            try:
                return self._deploy_item(url, DeployTarget.STAGE, cursor.index)
            except DeployError as e:
                cursor.failures.append(e)
                if self.failure_policy is PlaylistFailurePolicy.HALT:
                    raise
                logger.info("Skipping playlist item %d: %s", cursor.index + 1, e.message)
                cursor.advance()
        return None

    # -- deployment -------------------------------------------------------

    def deploy(
        self,
        request: DeploymentRequest,
        on_complete: Optional[Callable[[DeployOutcome], None]] = None,
    ) -> DeployOutcome:
        """Run one deployment request and report the outcome."""
        self.cancel_playlist()
        self.state = DeployState.RESOLVING
        try:
            if request.kind is RequestKind.URL:
                outcome = self._deploy_single(request.url, request.target)
            else:
                outcome = self._deploy_batch(request)
        except DeployError as e:
            logger.warning("Deployment failed (%s): %s", e.kind, e.message)
            outcome = DeployOutcome.failed(e)
        finally:
            if self._cursor is None:
                self.state = DeployState.IDLE

        if on_complete is not None:
            on_complete(outcome)
        return outcome

    def _deploy_single(self, url: Optional[str], target: DeployTarget) -> DeployOutcome:
        if not url or not url.strip():
            raise InvalidInput("No URL provided")
        if not is_valid_url(url):
            raise InvalidInput(f"Invalid URL: {url.strip()}")
        self.state = DeployState.DEPLOYING
        item = self._deploy_item(url.strip(), target)
        return DeployOutcome(
            status=OutcomeStatus.DELIVERED_SINGLE,
            count=1,
            url=item.url,
            platform=item.platform,
            result=item.result,
        )

    def _read_batch(self, request: DeploymentRequest) -> list[str]:
        if request.urls is not None:
            return [u for u in request.urls if is_valid_url(u)]
        if request.file is None:
            raise InvalidInput("No file selected")
        content = self.file_reader(request.file)
        return extract_urls(content, request.file.name)

    def _deploy_batch(self, request: DeploymentRequest) -> DeployOutcome:
        urls = self._read_batch(request)
        if not urls:
            logger.info("No video URLs found, nothing to deploy")
            return DeployOutcome(status=OutcomeStatus.EMPTY_BATCH)

        logger.info("Deploying %d video(s) to %s", len(urls), request.target.value)
        self.state = DeployState.DEPLOYING_FIRST

        if request.target is DeployTarget.EMBED:
            if len(urls) > 1:
                logger.info("Embed playlist not supported, playing first of %d videos", len(urls))
            item = self._deploy_item(urls[0], DeployTarget.EMBED)
        else:
            cursor = PlaylistCursor(urls)
            item = self._play_from(cursor)
            if item is None:
                raise cursor.failures[-1]
            if len(urls) > 1:
                self._cursor = cursor
                self.state = DeployState.AWAITING_ADVANCE
                self._attach_observer()

        return DeployOutcome(
            status=OutcomeStatus.DELIVERED_BATCH,
            count=len(urls),
            url=item.url,
            platform=item.platform,
            result=item.result,
        )

    def _deploy_item(self, url: str, target: DeployTarget, index: int = 0) -> DeployedItem:
        """Resolve url, derive the playable/embed result and hand it to the surface."""
        platform, handler = self.registry.handler_for(url)
        try:
            try:
                if target is DeployTarget.EMBED:
                    result: Union[str, EmbedData] = handler.make_embeddable(url)
                else:
                    result = handler.make_playable(url)
            except InvalidReference as e:
                if platform == GENERIC_PLATFORM:
                    raise UnsupportedPlatform(f"No platform can play {url}: {e.message}") from e
                raise

            if target is DeployTarget.EMBED:
                self._deliver_embed(result)
            else:
                self._deliver_stage(result)
        except DeployError as e:
            logger.warning("Could not deploy %s video %s: %s", platform, url, e.message)
            self.registry.publish("failed", platform, {"url": url, "kind": e.kind, "message": e.message})
            raise

        logger.info("Deployed %s video to %s: %s", platform, target.value, url)
        self.registry.publish(
            "deployed",
            platform,
            {"url": url, "target": target.value, "result": result, "index": index},
        )
        return DeployedItem(url=url, platform=platform, result=result)

    def _deliver_stage(self, playable_url: str) -> None:
        sink = self.stage.get_current_playable_sink() if self.stage is not None else None
        if sink is None:
            raise SurfaceUnavailable("Video stage elements not found")
        sink.set_source(playable_url)
        sink.load()
        sink.play_when_ready()

    def _deliver_embed(self, data: EmbedData) -> None:
        if self.embed is None:
            raise SurfaceUnavailable("Embed surface is not available")
        self.embed.show(data)

    # -- metadata ---------------------------------------------------------

    def fetch_metadata(self, url: str) -> Optional[VideoMetadata]:
        """
        Look up display metadata for a deployed URL. Returns None on failure.

        Separate from deploy(): it touches no deployment state, so callers may
        run it on a worker thread and hand the result to attach_metadata().
        """
        _, handler = self.registry.handler_for(url)
        try:
            return self.metadata_fetcher(handler, url)
        except MetadataUnavailable as e:
            logger.info("No metadata for %s: %s", url, e.message)
            return None

    def attach_metadata(self, outcome: DeployOutcome, metadata: Optional[VideoMetadata]) -> None:
        """Record fetched metadata on an outcome and publish it."""
        if metadata is None or not outcome.url:
            return
        outcome.metadata = metadata
        self.registry.publish(
            "metadata",
            outcome.platform or GENERIC_PLATFORM,
            {"url": outcome.url, "metadata": metadata},
        )
