"""Main entry point - wires the registry, mpv stage, web interface and deployment core."""

from __future__ import annotations

import functools
import logging
import signal
import sys
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Optional

from . import activity_log
from .config import load_config
from .deployer import DeploymentCore, DeploymentRequest, DeployOutcome, PlaylistFailurePolicy
from .metadata import fetch_metadata
from .registry import GENERIC_PLATFORM, PlatformRegistry, create_default_registry
from .url_parser import VideoMetadata
from .video_service import STAGE_ENDED, MpvStage, StageFailed
from .web.app import EmbedBoard, run_web_server

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class MetadataReady:
    """Metadata lookup result, handed back to the main loop."""

    outcome: DeployOutcome
    metadata: Optional[VideoMetadata]


def _report_outcome(outcome: DeployOutcome) -> None:
    if outcome.ok:
        activity_log.add(f"{outcome.status.value}: {outcome.count} video(s) [{outcome.platform or '-'}]")
    else:
        activity_log.add(f"Error ({outcome.error_kind}): {outcome.reason}")


def _start_metadata_lookup(core: DeploymentCore, outcome: DeployOutcome, events: Queue) -> None:
    """Fetch metadata on a worker thread so a slow lookup never holds up the main loop."""

    def lookup() -> None:
        events.put(MetadataReady(outcome, core.fetch_metadata(outcome.url)))

    threading.Thread(target=lookup, daemon=True).start()


def _subscribe_activity(registry: PlatformRegistry) -> None:
    """Mirror per-item deploy events into the dashboard activity log."""

    def on_deployed(payload: dict) -> None:
        activity_log.add(f"Playing item {payload['index'] + 1}: {payload['url'][:60]}")

    def on_failed(payload: dict) -> None:
        activity_log.add(f"Failed ({payload['kind']}): {payload['url'][:60]}")

    for platform in [*registry.names(), GENERIC_PLATFORM]:
        registry.subscribe("deployed", platform, on_deployed)
        registry.subscribe("failed", platform, on_failed)


def main() -> int:
    """Run the link deployer service."""
    config = load_config()
    if config.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
    activity_log.configure(config.activity_lines)

    registry = create_default_registry(config.default_priority)
    _subscribe_activity(registry)

    events: Queue = Queue()
    embed_board = EmbedBoard()
    stage = MpvStage(config.mpv_socket, events)
    if not stage.start():
        logger.error("Failed to start mpv. Exiting.")
        return 1

    core = DeploymentCore(
        registry,
        stage=stage,
        embed=embed_board,
        failure_policy=PlaylistFailurePolicy(config.playlist_failure_policy),
        metadata_fetcher=functools.partial(fetch_metadata, timeout=config.metadata_timeout),
    )

    # Start web server in background
    web_thread = threading.Thread(
        target=run_web_server,
        kwargs={
            "registry": registry,
            "deploy_queue": events,
            "embed_board": embed_board,
            "config": config,
        },
        daemon=True,
    )
    web_thread.start()
    logger.info("Web interface at http://%s:%d", config.web_host, config.web_port)

    def shutdown(signum=None, frame=None):
        logger.info("Shutting down...")
        stage.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    def on_complete(outcome: DeployOutcome) -> None:
        _report_outcome(outcome)
        if config.fetch_metadata and outcome.ok and outcome.url:
            _start_metadata_lookup(core, outcome, events)

    # Main loop: the only thread that mutates the deployment core
    logger.info("Ready. %s", registry.summary())
    while True:
        try:
            item = events.get(timeout=1.0)
        except Empty:
            if not stage.is_running():
                logger.error("mpv exited unexpectedly")
                return 1
            continue

        if item == STAGE_ENDED:
            stage.dispatch_ended()
        elif isinstance(item, StageFailed):
            stage.dispatch_failed(item.reason)
        elif isinstance(item, DeploymentRequest):
            core.deploy(item, on_complete=on_complete)
        elif isinstance(item, MetadataReady):
            core.attach_metadata(item.outcome, item.metadata)
            if item.metadata and item.metadata.title:
                activity_log.add(f"Now playing: {item.metadata.title}")
        else:
            logger.debug("Ignoring unknown event: %r", item)


if __name__ == "__main__":
    sys.exit(main())
