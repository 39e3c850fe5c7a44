"""Tests for deployer module."""

import json
import threading

import pytest

from linkdeployer.deployer import (
    DeploymentCore,
    DeploymentRequest,
    DeployState,
    DeployTarget,
    EmbedSurface,
    OutcomeStatus,
    PlayableSink,
    PlaylistCursor,
    PlaylistFailurePolicy,
    RequestKind,
    StageSurface,
)
from linkdeployer.errors import MetadataUnavailable, ReadFailure
from linkdeployer.link_extractor import SelectedFile
from linkdeployer.registry import create_default_registry
from linkdeployer.url_parser import VideoMetadata

URL_A = "https://www.youtube.com/watch?v=aaaaaaaaaaa"
URL_B = "https://youtu.be/bbbbbbbbbbb"
URL_C = "https://vimeo.com/76979871"
PLAYABLE_A = "https://www.youtube.com/embed/aaaaaaaaaaa?autoplay=1&enablejsapi=1"
PLAYABLE_B = "https://www.youtube.com/embed/bbbbbbbbbbb?autoplay=1&enablejsapi=1"
PLAYABLE_C = "https://player.vimeo.com/video/76979871?autoplay=1"
BAD_YOUTUBE = "https://www.youtube.com/watch?v=short"


class FakeSink(PlayableSink):
    def __init__(self):
        self.source = None
        self.played = []

    def set_source(self, url):
        self.source = url

    def load(self):
        pass

    def play_when_ready(self):
        self.played.append(self.source)


class FakeStage(StageSurface):
    def __init__(self, available=True):
        self.sink = FakeSink() if available else None
        self.observers = []
        self.failure_observers = []

    def get_current_playable_sink(self):
        return self.sink

    def subscribe_ended(self, callback):
        self.observers.append(callback)

    def unsubscribe_ended(self, callback):
        if callback in self.observers:
            self.observers.remove(callback)

    def subscribe_failed(self, callback):
        self.failure_observers.append(callback)

    def unsubscribe_failed(self, callback):
        if callback in self.failure_observers:
            self.failure_observers.remove(callback)

    def fire_ended(self):
        for callback in list(self.observers):
            callback()

    def fire_failed(self, reason="loading failed"):
        for callback in list(self.failure_observers):
            callback(reason)

    @property
    def played(self):
        return self.sink.played if self.sink else []


class FakeEmbed(EmbedSurface):
    def __init__(self):
        self.shown = []

    def show(self, data):
        self.shown.append(data)


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def stage():
    return FakeStage()


@pytest.fixture
def embed():
    return FakeEmbed()


@pytest.fixture
def core(registry, stage, embed):
    return DeploymentCore(registry, stage=stage, embed=embed)


def _file(name, content):
    return SelectedFile(name=name, data=content.encode("utf-8"))


class TestSingleUrl:
    def test_stage_deploy(self, core, stage, embed):
        outcome = core.deploy(DeploymentRequest.single(URL_A, DeployTarget.STAGE))
        assert outcome.status is OutcomeStatus.DELIVERED_SINGLE
        assert outcome.count == 1
        assert outcome.platform == "YouTube"
        assert outcome.result == PLAYABLE_A
        assert stage.played == [PLAYABLE_A]
        assert embed.shown == []
        assert core.state is DeployState.IDLE

    def test_embed_deploy(self, core, stage, embed):
        outcome = core.deploy(DeploymentRequest.single(URL_C, DeployTarget.EMBED))
        assert outcome.status is OutcomeStatus.DELIVERED_SINGLE
        assert len(embed.shown) == 1
        assert embed.shown[0].url == PLAYABLE_C
        assert stage.played == []

    def test_invalid_url(self, core, stage, embed):
        outcome = core.deploy(DeploymentRequest.single("not a url"))
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.error_kind == "invalid_input"
        assert outcome.reason
        assert stage.played == [] and embed.shown == []

    def test_empty_request(self, core):
        outcome = core.deploy(DeploymentRequest(kind=RequestKind.URL, target=DeployTarget.STAGE))
        assert outcome.error_kind == "invalid_input"

    def test_invalid_reference(self, core, stage):
        outcome = core.deploy(DeploymentRequest.single(BAD_YOUTUBE))
        assert outcome.error_kind == "invalid_reference"
        assert stage.played == []

    def test_generic_direct_media_plays(self, core, stage):
        outcome = core.deploy(DeploymentRequest.single("https://cdn.example.com/clip.mp4"))
        assert outcome.platform == "generic"
        assert stage.played == ["https://cdn.example.com/clip.mp4"]

    def test_generic_page_is_unsupported_on_stage(self, core, stage):
        outcome = core.deploy(DeploymentRequest.single("https://example.com/article"))
        assert outcome.error_kind == "unsupported_platform"
        assert stage.played == []

    def test_generic_page_can_be_embedded(self, core, embed):
        outcome = core.deploy(DeploymentRequest.single("https://example.com/article", DeployTarget.EMBED))
        assert outcome.ok
        assert embed.shown[0].url == "https://example.com/article"

    def test_stage_without_sink(self, registry):
        core = DeploymentCore(registry, stage=FakeStage(available=False))
        outcome = core.deploy(DeploymentRequest.single(URL_A))
        assert outcome.error_kind == "surface_unavailable"

    def test_completion_callback(self, core):
        seen = []
        outcome = core.deploy(DeploymentRequest.single(URL_A), on_complete=seen.append)
        assert seen == [outcome]

    def test_events_published(self, core, registry):
        deployed, failed = [], []
        registry.subscribe("deployed", "youtube", deployed.append)
        registry.subscribe("failed", "youtube", failed.append)
        core.deploy(DeploymentRequest.single(URL_A))
        core.deploy(DeploymentRequest.single(BAD_YOUTUBE))
        assert [p["url"] for p in deployed] == [URL_A]
        assert [p["kind"] for p in failed] == ["invalid_reference"]


class TestBatch:
    def test_three_item_playlist_advances_in_order(self, core, stage):
        outcome = core.deploy(DeploymentRequest.batch([URL_A, URL_B, URL_C]))
        assert outcome.status is OutcomeStatus.DELIVERED_BATCH
        assert outcome.count == 3
        assert stage.played == [PLAYABLE_A]
        assert core.state is DeployState.AWAITING_ADVANCE

        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B]
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B, PLAYABLE_C]

        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B, PLAYABLE_C]
        assert core.playlist is None
        assert core.state is DeployState.IDLE
        assert stage.observers == []

        stage.fire_ended()
        assert len(stage.played) == 3

    def test_new_deployment_cancels_playlist(self, core, stage):
        core.deploy(DeploymentRequest.batch([URL_A, URL_B, URL_C]))
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B]

        core.deploy(DeploymentRequest.single(URL_C))
        assert core.playlist is None
        stage.fire_ended()
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B, PLAYABLE_C]

    def test_single_item_batch_has_no_playlist(self, core, stage):
        outcome = core.deploy(DeploymentRequest.batch([URL_A]))
        assert outcome.status is OutcomeStatus.DELIVERED_BATCH
        assert outcome.count == 1
        assert core.playlist is None
        assert stage.observers == []

    def test_file_batch(self, core, stage):
        content = json.dumps({"videos": [URL_A, "nope", URL_B]})
        outcome = core.deploy(DeploymentRequest.from_file(_file("list.json", content)))
        assert outcome.count == 2
        assert stage.played == [PLAYABLE_A]
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B]

    def test_embed_batch_deploys_first_only(self, core, stage, embed):
        outcome = core.deploy(DeploymentRequest.batch([URL_A, URL_B], DeployTarget.EMBED))
        assert outcome.status is OutcomeStatus.DELIVERED_BATCH
        assert outcome.count == 2
        assert len(embed.shown) == 1
        assert stage.observers == []
        assert core.playlist is None

    @pytest.mark.parametrize("content", ["", "# only a comment\n", "see nothing here"])
    def test_empty_file(self, core, stage, embed, content):
        outcome = core.deploy(DeploymentRequest.from_file(_file("list.txt", content)))
        assert outcome.status is OutcomeStatus.EMPTY_BATCH
        assert outcome.count == 0
        assert stage.played == [] and embed.shown == []
        assert core.state is DeployState.IDLE

    def test_all_invalid_json(self, core, stage):
        outcome = core.deploy(DeploymentRequest.from_file(_file("x.json", '{"urls": ["a", "b"]}')))
        assert outcome.status is OutcomeStatus.EMPTY_BATCH
        assert stage.played == []

    def test_too_deeply_nested_json_file_is_empty(self, core, stage):
        content = '{"a": ' * 5000 + json.dumps(URL_A) + "}" * 5000
        outcome = core.deploy(DeploymentRequest.from_file(_file("deep.json", content)))
        assert outcome.status is OutcomeStatus.EMPTY_BATCH
        assert stage.played == []

    def test_read_failure(self, registry, stage):
        def broken_reader(file):
            raise ReadFailure("disk on fire")

        core = DeploymentCore(registry, stage=stage, file_reader=broken_reader)
        outcome = core.deploy(DeploymentRequest.from_file(SelectedFile(name="x.txt")))
        assert outcome.error_kind == "read_failure"
        assert outcome.reason == "disk on fire"
        assert stage.played == []

    def test_missing_file(self, core):
        outcome = core.deploy(DeploymentRequest(kind=RequestKind.FILE, target=DeployTarget.STAGE))
        assert outcome.error_kind == "invalid_input"


class TestPlaylistFailurePolicy:
    def test_halt_stops_playlist_on_bad_item(self, core, stage):
        core.deploy(DeploymentRequest.batch([URL_A, BAD_YOUTUBE, URL_C]))
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A]
        assert core.playlist is None
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A]

    def test_halt_fails_batch_when_first_item_bad(self, core, stage):
        outcome = core.deploy(DeploymentRequest.batch([BAD_YOUTUBE, URL_A]))
        assert outcome.error_kind == "invalid_reference"
        assert core.playlist is None
        assert stage.played == []

    def test_skip_moves_past_bad_items(self, registry, stage):
        core = DeploymentCore(registry, stage=stage, failure_policy=PlaylistFailurePolicy.SKIP)
        outcome = core.deploy(DeploymentRequest.batch([BAD_YOUTUBE, URL_A, BAD_YOUTUBE, URL_C]))
        assert outcome.ok
        assert stage.played == [PLAYABLE_A]
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_C]
        assert core.playlist.failures and len(core.playlist.failures) == 2
        stage.fire_ended()
        assert core.playlist is None

    def test_skip_with_nothing_playable(self, registry, stage):
        core = DeploymentCore(registry, stage=stage, failure_policy="skip")
        outcome = core.deploy(DeploymentRequest.batch([BAD_YOUTUBE, "https://example.com/page"]))
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.error_kind == "unsupported_platform"
        assert core.playlist is None


    def test_stage_failure_halts_playlist(self, core, stage, registry):
        failed = []
        registry.subscribe("failed", "youtube", failed.append)
        core.deploy(DeploymentRequest.batch([URL_A, URL_B, URL_C]))
        stage.fire_failed("Failed to recognize file format.")
        assert core.playlist is None
        assert core.state is DeployState.IDLE
        assert stage.observers == [] and stage.failure_observers == []
        assert [p["kind"] for p in failed] == ["playback_failed"]
        assert failed[0]["url"] == URL_A
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A]

    def test_stage_failure_skips_to_next_item(self, registry, stage):
        core = DeploymentCore(registry, stage=stage, failure_policy=PlaylistFailurePolicy.SKIP)
        core.deploy(DeploymentRequest.batch([URL_A, URL_B, URL_C]))
        stage.fire_failed()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B]
        assert [e.kind for e in core.playlist.failures] == ["playback_failed"]
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B, PLAYABLE_C]
        stage.fire_failed()
        assert core.playlist is None
        assert stage.failure_observers == []

    def test_stage_failure_without_playlist_is_ignored(self, core, stage):
        core.deploy(DeploymentRequest.single(URL_A))
        stage.fire_failed()
        assert stage.played == [PLAYABLE_A]
        assert core.state is DeployState.IDLE


class TestSelection:
    def test_can_deploy(self, core):
        assert not core.can_deploy()
        core.set_current_url(URL_A)
        assert core.can_deploy()
        core.reset()
        assert not core.can_deploy()
        core.set_selected_file(_file("x.txt", URL_A))
        assert core.can_deploy()

    def test_deploy_current_prefers_url(self, core, stage):
        core.set_selected_file(_file("x.txt", URL_B))
        core.set_current_url(URL_A)
        outcome = core.deploy_current(DeployTarget.STAGE)
        assert outcome.status is OutcomeStatus.DELIVERED_SINGLE
        assert stage.played == [PLAYABLE_A]

    def test_deploy_current_file(self, core, stage):
        core.set_selected_file(_file("x.txt", f"{URL_B}\n{URL_A}\n"))
        outcome = core.deploy_current(DeployTarget.STAGE)
        assert outcome.status is OutcomeStatus.DELIVERED_BATCH
        assert stage.played == [PLAYABLE_B]

    def test_deploy_current_nothing_selected(self, core):
        assert core.deploy_current(DeployTarget.STAGE).error_kind == "invalid_input"


class TestMetadata:
    def test_deploy_never_fetches_metadata(self, registry, stage):
        def fetcher(handler, url):
            raise AssertionError("should not be called")

        core = DeploymentCore(registry, stage=stage, metadata_fetcher=fetcher)
        outcome = core.deploy(DeploymentRequest.batch([URL_A, URL_B]))
        assert outcome.ok
        assert outcome.metadata is None
        stage.fire_ended()
        assert stage.played == [PLAYABLE_A, PLAYABLE_B]

    def test_fetch_and_attach(self, registry, stage):
        def fetcher(handler, url):
            return VideoMetadata(title=f"{handler.name} video")

        published = []
        registry.subscribe("metadata", "youtube", published.append)
        core = DeploymentCore(registry, stage=stage, metadata_fetcher=fetcher)
        outcome = core.deploy(DeploymentRequest.single(URL_A))
        assert outcome.url == URL_A

        metadata = core.fetch_metadata(outcome.url)
        core.attach_metadata(outcome, metadata)
        assert outcome.metadata.title == "YouTube video"
        assert published == [{"url": URL_A, "metadata": metadata}]

    def test_fetch_failure_returns_none(self, registry, stage):
        def fetcher(handler, url):
            raise MetadataUnavailable("offline")

        published = []
        registry.subscribe("metadata", "youtube", published.append)
        core = DeploymentCore(registry, stage=stage, metadata_fetcher=fetcher)
        outcome = core.deploy(DeploymentRequest.single(URL_A))

        metadata = core.fetch_metadata(outcome.url)
        core.attach_metadata(outcome, metadata)
        assert metadata is None
        assert outcome.metadata is None
        assert published == []
        assert outcome.status is OutcomeStatus.DELIVERED_SINGLE

    def test_blocked_lookup_does_not_hold_up_playlist(self, registry, stage):
        started = threading.Event()
        release = threading.Event()

        def fetcher(handler, url):
            started.set()
            release.wait(5)
            return VideoMetadata(title="late")

        core = DeploymentCore(registry, stage=stage, metadata_fetcher=fetcher)
        outcome = core.deploy(DeploymentRequest.batch([URL_A, URL_B, URL_C]))
        results = []
        worker = threading.Thread(target=lambda: results.append(core.fetch_metadata(outcome.url)))
        worker.start()
        try:
            assert started.wait(5)
            stage.fire_ended()
            stage.fire_ended()
            assert stage.played == [PLAYABLE_A, PLAYABLE_B, PLAYABLE_C]
            assert core.deploy(DeploymentRequest.single(URL_A)).ok
        finally:
            release.set()
            worker.join(5)
        assert results[0].title == "late"


def test_playlist_cursor():
    cursor = PlaylistCursor(["a", "b"])
    assert cursor.current == "a"
    assert cursor.advance()
    assert cursor.current == "b"
    assert not cursor.advance()
    assert cursor.exhausted
    assert cursor.current is None


def test_outcome_to_dict(core):
    outcome = core.deploy(DeploymentRequest.single(URL_C, DeployTarget.EMBED))
    d = outcome.to_dict()
    assert d["status"] == "delivered-single"
    assert d["url"] == URL_C
    assert d["platform"] == "Vimeo"
    assert d["result"]["url"] == PLAYABLE_C
    assert d["error"] is None
