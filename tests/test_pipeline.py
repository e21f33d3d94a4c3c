"""Integration tests for the resolve pipeline (sources, network and Gemini faked)."""

import asyncio
import json
import random
import threading
from dataclasses import replace

import pytest

from config.settings import SearchConfig
from core.pipeline import Outcome, ShoeImagePipeline, ValidationStatus
from imaging.normalizer import ImageNormalizer
from imaging.verifier import Verdict, VerdictStatus
from sources.base import ImageResult, ImageSource
from utils.exceptions import (
    ImageNotFoundError,
    ProcessingError,
    SemanticUnavailableError,
    TransientNetworkError,
)

APPROVED = Verdict(
    VerdictStatus.APPROVED,
    brand="Xero Shoes",
    canonical_model="HFS II",
    keywords=["road", "mesh"],
)


class FakeSource(ImageSource):

    def __init__(self, name, urls=(), error=None):
        super().__init__(SearchConfig())
        self.name = name
        self.urls = list(urls)
        self.error = error
        self.calls = 0

    async def search(self, query, max_results):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [ImageResult(url=u, source=self.name) for u in self.urls]


class FakeDownloader:

    def __init__(self, payloads):
        self.payloads = payloads
        self.calls = []

    async def download(self, url):
        self.calls.append(url)
        value = self.payloads[url]
        if isinstance(value, Exception):
            raise value
        return value


class FakeVerifier:
    """Replays ``outcomes`` in order; the last one repeats."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def classify(self, data, model):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class BrokenNormalizer:

    def normalize(self, data, verdict):
        raise ProcessingError("encoder exploded")


@pytest.fixture
def build(test_config, sleeper):
    """``build(sources, payloads, verifier, cfg=None, **kw) -> pipeline``"""
    made = []

    def _build(sources, payloads, verifier, cfg=None, **kw):
        kw.setdefault("normalizer", ImageNormalizer((cfg or test_config).output, random.Random(0)))
        pipeline = ShoeImagePipeline(
            cfg or test_config,
            sources=sources,
            downloader=FakeDownloader(payloads),
            verifier=verifier,
            sleep=sleeper,
            **kw,
        )
        made.append(pipeline)
        return pipeline

    yield _build
    for p in made:
        p.executor.shutdown(wait=True)


def _resolve(pipeline, model):
    return asyncio.run(pipeline.resolve(model))


def _with_bypass(cfg, enabled):
    return replace(cfg, semantic=replace(cfg.semantic, bypass_on_failure=enabled))


class TestHappyPath:

    def test_success_publishes_image(self, build, shoe_bytes, test_config):
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        result = _resolve(p, "Xero HFS 2")

        assert result.success
        assert result.outcome is Outcome.SUCCESS
        assert result.error is None
        assert result.source == "bing"
        assert result.model == "HFS II"
        assert result.validation_status is ValidationStatus.APPROVED
        assert result.original_image_url == "https://x/1.jpg"
        assert result.final_path.name == "xero-shoes-hfs-ii-side-view.jpg"
        assert result.final_path.read_bytes()[:2] == b"\xff\xd8"

        index = json.loads(test_config.paths.index_file.read_text())
        assert index == {"xero_hfs_2": "xero-shoes-hfs-ii-side-view.jpg"}

    def test_intermediate_artifacts_saved(self, build, shoe_bytes):
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        result = _resolve(p, "Xero HFS 2")
        assert result.raw_download_path.name == "xero_hfs_2-RAW-DOWNLOAD.jpg"
        assert result.validator_input_path.name == "xero_hfs_2-VALIDATOR-INPUT.jpg"
        assert result.approved_raw_path.name == "xero_hfs_2-APPROVED-RAW.jpg"
        assert result.rejected_path is None
        assert result.approved_raw_path.read_bytes() == shoe_bytes

    def test_artifact_writes_run_off_the_event_loop(self, build, shoe_bytes):
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        loop_thread = threading.get_ident()
        writers = []
        store_intermediate = p.cache.store_intermediate

        def record(model, stage, data):
            writers.append(threading.get_ident())
            return store_intermediate(model, stage, data)

        p.cache.store_intermediate = record
        assert _resolve(p, "Xero HFS 2").success
        assert len(writers) == 3
        assert loop_thread not in writers

    def test_intermediate_artifacts_disabled(self, build, shoe_bytes, test_config):
        cfg = replace(test_config, pipeline=replace(test_config.pipeline, save_intermediate=False))
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED), cfg=cfg)
        result = _resolve(p, "Xero HFS 2")
        assert result.success
        assert all(path is None for path in result.artifacts().values())
        assert sorted(f.name for f in cfg.paths.images_dir.glob("*.jpg")) == ["xero-shoes-hfs-ii-side-view.jpg"]

    def test_raise_for_outcome_returns_path(self, build, shoe_bytes):
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        result = _resolve(p, "Xero HFS 2")
        assert result.raise_for_outcome() == result.final_path


class TestCache:

    def test_second_request_is_cache_hit_without_network(self, build, shoe_bytes):
        source = FakeSource("bing", ["https://x/1.jpg"])
        p = build([source], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        first = _resolve(p, "Xero HFS 2")
        second = _resolve(p, "xero-hfs (2)")

        assert second.success
        assert second.outcome is Outcome.CACHED
        assert second.source == "cache"
        assert second.final_path == first.final_path
        assert source.calls == 1
        assert p.downloader.calls == ["https://x/1.jpg"]
        assert p.verifier.calls == 1
        assert p.stats.cache_hits.value == 1


class TestCandidateFailures:

    def test_structural_reject_never_reaches_vision(self, build, black_bytes):
        verifier = FakeVerifier(APPROVED)
        p = build([FakeSource("bing", ["https://x/black.jpg"])], {"https://x/black.jpg": black_bytes}, verifier)
        result = _resolve(p, "Xero HFS 2")
        assert not result.success
        assert result.outcome is Outcome.NOT_FOUND
        assert verifier.calls == 0
        assert "Structural" in result.error
        assert result.validation_status is ValidationStatus.NA

    def test_all_structural_rejects_leave_index_untouched(self, build, black_bytes, test_config):
        index_file = test_config.paths.index_file
        index_file.parent.mkdir(parents=True, exist_ok=True)
        index_file.write_text(json.dumps({"other": "x.jpg"}), encoding="utf-8")
        before = index_file.read_bytes()

        verifier = FakeVerifier(APPROVED)
        p = build(
            [
                FakeSource("bing", ["https://x/b1.jpg", "https://x/b2.jpg"]),
                FakeSource("duckduckgo", ["https://x/d1.jpg"]),
            ],
            {
                "https://x/b1.jpg": black_bytes,
                "https://x/b2.jpg": black_bytes,
                "https://x/d1.jpg": black_bytes,
            },
            verifier,
        )
        result = _resolve(p, "Xero HFS 2")

        assert result.outcome is Outcome.NOT_FOUND
        assert result.final_path is None
        assert verifier.calls == 0
        assert p.downloader.calls == ["https://x/b1.jpg", "https://x/b2.jpg", "https://x/d1.jpg"]
        assert index_file.read_bytes() == before
        assert len(p.cache) == 1

    def test_falls_through_to_next_candidate(self, build, black_bytes, shoe_bytes):
        p = build(
            [FakeSource("bing", ["https://x/black.jpg", "https://x/ok.jpg"])],
            {"https://x/black.jpg": black_bytes, "https://x/ok.jpg": shoe_bytes},
            FakeVerifier(APPROVED),
        )
        result = _resolve(p, "Xero HFS 2")
        assert result.success
        assert result.original_image_url == "https://x/ok.jpg"

    def test_download_failure_moves_on(self, build, shoe_bytes):
        p = build(
            [FakeSource("bing", ["https://x/dead.jpg", "https://x/ok.jpg"])],
            {"https://x/dead.jpg": TransientNetworkError("HTTP 404", status=404), "https://x/ok.jpg": shoe_bytes},
            FakeVerifier(APPROVED),
        )
        assert _resolve(p, "Xero HFS 2").success

    def test_unexpected_candidate_error_does_not_abort(self, build, shoe_bytes):
        p = build(
            [FakeSource("bing", ["https://x/weird.jpg", "https://x/ok.jpg"])],
            {"https://x/weird.jpg": RuntimeError("boom"), "https://x/ok.jpg": shoe_bytes},
            FakeVerifier(APPROVED),
        )
        assert _resolve(p, "Xero HFS 2").success

    def test_semantic_rejection_not_retried(self, build, shoe_bytes, sleeper):
        verifier = FakeVerifier(None)
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, verifier)
        result = _resolve(p, "Xero HFS 2")
        assert not result.success
        assert verifier.calls == 1
        assert sleeper.delays == []
        assert result.validation_status is ValidationStatus.REJECTED
        assert result.rejected_path.name == "xero_hfs_2-REJECTED.jpg"

    def test_processing_error_fails_candidate(self, build, shoe_bytes, test_config):
        p = build(
            [FakeSource("bing", ["https://x/1.jpg"])],
            {"https://x/1.jpg": shoe_bytes},
            FakeVerifier(APPROVED),
            normalizer=BrokenNormalizer(),
        )
        result = _resolve(p, "Xero HFS 2")
        assert not result.success
        assert "Processing error" in result.error
        assert len(p.cache) == 0


class TestSemanticRetry:

    def test_unavailable_then_approved(self, build, shoe_bytes, sleeper):
        verifier = FakeVerifier(SemanticUnavailableError("timeout"), APPROVED)
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, verifier)
        result = _resolve(p, "Xero HFS 2")
        assert result.success
        assert verifier.calls == 2
        assert sleeper.delays == [1.0]

    def test_exhausted_without_bypass_fails(self, build, shoe_bytes, sleeper, test_config):
        verifier = FakeVerifier(SemanticUnavailableError("timeout"))
        p = build(
            [FakeSource("bing", ["https://x/1.jpg"])],
            {"https://x/1.jpg": shoe_bytes},
            verifier,
            cfg=_with_bypass(test_config, False),
        )
        result = _resolve(p, "Xero HFS 2")
        assert not result.success
        assert result.outcome is Outcome.NOT_FOUND
        assert result.validation_status is ValidationStatus.FAILED
        assert verifier.calls == test_config.semantic.max_retries
        assert "Semantic validation failed" in result.error
        assert len(p.cache) == 0
        assert not test_config.paths.index_file.exists()

    def test_exhausted_with_bypass_publishes(self, build, shoe_bytes, test_config):
        verifier = FakeVerifier(SemanticUnavailableError("timeout"))
        p = build(
            [FakeSource("bing", ["https://x/1.jpg"])],
            {"https://x/1.jpg": shoe_bytes},
            verifier,
            cfg=_with_bypass(test_config, True),
        )
        result = _resolve(p, "Primus Lite")
        assert result.success
        assert result.validation_status is ValidationStatus.BYPASSED
        assert result.model == "Primus Lite"
        assert result.final_path.name == "unknown-primus-lite-side-view.jpg"
        assert result.validator_input_path.name == "primus_lite-BYPASSED-INPUT.jpg"
        assert p.stats.bypassed.value == 1


class TestSources:

    def test_later_sources_untouched_after_success(self, build, shoe_bytes):
        first = FakeSource("bing", ["https://x/1.jpg"])
        second = FakeSource("duckduckgo", ["https://y/1.jpg"])
        p = build([first, second], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        assert _resolve(p, "Xero HFS 2").success
        assert second.calls == 0

    def test_faulting_source_falls_back(self, build, shoe_bytes):
        p = build(
            [FakeSource("bing", error=RuntimeError("browser crashed")),
             FakeSource("duckduckgo", ["https://y/1.jpg"])],
            {"https://y/1.jpg": shoe_bytes},
            FakeVerifier(APPROVED),
        )
        result = _resolve(p, "Xero HFS 2")
        assert result.success
        assert result.source == "duckduckgo"
        assert p.stats.source_faults.value == 1

    def test_all_sources_fault(self, build):
        p = build(
            [FakeSource("bing", error=RuntimeError("down")),
             FakeSource("duckduckgo", error=RuntimeError("ratelimited"))],
            {},
            FakeVerifier(APPROVED),
        )
        result = _resolve(p, "Xero HFS 2")
        assert not result.success
        assert result.outcome is Outcome.SOURCE_ERROR
        assert "ratelimited" in result.error
        assert result.final_path is None

    def test_no_candidates_is_not_found(self, build):
        p = build(
            [FakeSource("bing", error=RuntimeError("down")), FakeSource("duckduckgo", [])],
            {},
            FakeVerifier(APPROVED),
        )
        result = _resolve(p, "Xero HFS 2")
        assert result.outcome is Outcome.NOT_FOUND
        with pytest.raises(ImageNotFoundError):
            result.raise_for_outcome()

    def test_stats_snapshot(self, build, shoe_bytes):
        p = build([FakeSource("bing", ["https://x/1.jpg"])], {"https://x/1.jpg": shoe_bytes}, FakeVerifier(APPROVED))
        _resolve(p, "Xero HFS 2")
        _resolve(p, "Xero HFS 2")
        snap = p.stats.snapshot()
        assert snap["requests"] == 2
        assert snap["success"] == 1
        assert snap["cache_hits"] == 1
