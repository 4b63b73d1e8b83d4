"""Tests for moodscope.backfill — resumable short-description backfill."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from conftest import FakeLLM, InMemoryIndex, make_payload

from moodscope.backfill import BackfillRunner, initial_progress, load_progress, save_progress
from moodscope.config import BackfillConfig
from moodscope.exceptions import BackfillError, LLMError
from moodscope.ingest.describe import ShortDescriber
from moodscope.isrc import isrc_to_point_id
from moodscope.prompts import PromptRenderer
from moodscope.types import AudioFeatures

if TYPE_CHECKING:
    from pathlib import Path

# --- Helpers ---

_ISRCS = ("USRC11700001", "GBAYE0601498", "USUM71703861", "GBUM71029604")


def _populate(index: InMemoryIndex) -> list[str]:
    """Index four tracks; the second already has a description."""
    for i, isrc in enumerate(_ISRCS):
        extra: dict[str, object] = {}
        if i == 1:
            extra["short_description"] = "Already described."
        if i == 2:
            extra["audio_features"] = AudioFeatures(energy=0.9)
        index.payloads[isrc_to_point_id(isrc)] = make_payload(isrc, title=f"Track {i}", **extra)
    return sorted(index.payloads)


@pytest.fixture
def index() -> InMemoryIndex:
    return InMemoryIndex()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM(["A fresh one-line description."])


@pytest.fixture
def progress_path(tmp_path: Path) -> Path:
    return tmp_path / ".moodscope" / "backfill.json"


@pytest.fixture
def runner(index, llm, progress_path, no_sleep) -> BackfillRunner:
    describer = ShortDescriber(llm, PromptRenderer(), "haiku")
    return BackfillRunner(
        index, describer, progress_path, BackfillConfig(batch_size=2, delay_s=0.5), sleep=no_sleep
    )


# --- Progress file ---


class TestProgressFile:
    def test_missing_file_starts_fresh(self, progress_path: Path):
        progress = load_progress(progress_path)
        assert progress.last_point_id is None
        assert progress.processed_count == 0
        assert progress.is_complete is False

    def test_round_trip(self, progress_path: Path):
        progress = initial_progress()
        progress.last_point_id = "abc"
        progress.processed_count = 3
        progress.success_count = 2
        progress.skipped_count = 1
        save_progress(progress, progress_path)
        loaded = load_progress(progress_path)
        assert loaded.last_point_id == "abc"
        assert loaded.processed_count == 3
        assert loaded.skipped_count == 1

    def test_save_stamps_updated_at(self, progress_path: Path):
        progress = initial_progress()
        progress.updated_at = "stale"
        save_progress(progress, progress_path)
        assert progress.updated_at != "stale"
        assert json.loads(progress_path.read_text())["updated_at"] == progress.updated_at

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            '{"started_at": "x"}',
            '{"started_at": "x", "updated_at": "y", "processed_count": -1}',
            '{"started_at": "x", "updated_at": "y", "last_point_id": 7}',
        ],
    )
    def test_corrupt_file_starts_fresh(self, progress_path: Path, content: str, caplog):
        progress_path.parent.mkdir(parents=True)
        progress_path.write_text(content)
        progress = load_progress(progress_path)
        assert progress.processed_count == 0
        assert progress.last_point_id is None
        assert "starting fresh" in caplog.text

    def test_save_failure_raises(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(BackfillError, match="Failed to save"):
            save_progress(initial_progress(), blocker / "backfill.json")


# --- Runner ---


class TestBackfillRunner:
    def test_describes_tracks_without_description(self, runner, index, llm, progress_path):
        ids = _populate(index)
        progress = runner.run()

        assert progress.is_complete is True
        assert progress.processed_count == 4
        assert progress.success_count == 3
        assert progress.skipped_count == 1
        assert progress.error_count == 0
        assert progress.last_point_id == ids[-1]
        assert len(llm.calls) == 3
        for payload in index.payloads.values():
            assert payload.short_description
        saved = json.loads(progress_path.read_text())
        assert saved["is_complete"] is True

    def test_existing_description_untouched(self, runner, index):
        _populate(index)
        runner.run()
        payload = index.payloads[isrc_to_point_id("GBAYE0601498")]
        assert payload.short_description == "Already described."

    def test_uses_audio_feature_tier(self, runner, index, llm):
        _populate(index)
        runner.run()
        feature_prompts = [c for c in llm.calls if "Audio Features" in str(c["prompt"])]
        assert len(feature_prompts) == 1
        assert all(c["model"] == "haiku" for c in llm.calls)

    def test_errors_counted_and_run_continues(self, index, progress_path, no_sleep):
        ids = _populate(index)
        describer = ShortDescriber(
            FakeLLM(error=LLMError("overloaded", 529)), PromptRenderer(), "haiku"
        )
        runner = BackfillRunner(
            index, describer, progress_path, BackfillConfig(delay_s=0.0), sleep=no_sleep
        )
        progress = runner.run()
        assert progress.error_count == 3
        assert progress.success_count == 0
        assert progress.processed_count == 4
        assert progress.last_point_id == ids[-1]
        assert no_sleep.delays == []

    def test_delay_after_each_described_track(self, runner, index, no_sleep):
        _populate(index)
        runner.run()
        assert no_sleep.delays == [0.5, 0.5, 0.5]

    def test_resumes_after_last_point_id(self, runner, index, llm, progress_path):
        ids = _populate(index)
        progress = initial_progress()
        progress.last_point_id = ids[1]
        progress.processed_count = 2
        progress.success_count = 2
        save_progress(progress, progress_path)

        result = runner.run()

        assert result.processed_count == 4
        remaining = [i for i in ids[2:] if i != isrc_to_point_id("GBAYE0601498")]
        assert len(llm.calls) == len(remaining)
        untouched = [index.payloads[i] for i in ids[:2]]
        assert all(
            p.short_description in (None, "Already described.") for p in untouched
        )

    def test_reset_starts_over(self, runner, index, llm, progress_path):
        _populate(index)
        progress = initial_progress()
        progress.last_point_id = "ffffffff-ffff-ffff-ffff-ffffffffffff"
        progress.processed_count = 99
        save_progress(progress, progress_path)

        result = runner.run(reset=True)

        assert result.processed_count == 4
        assert len(llm.calls) == 3

    def test_second_run_skips_everything(self, runner, index, llm):
        _populate(index)
        runner.run()
        calls = len(llm.calls)
        result = runner.run(reset=True)
        assert result.skipped_count == 4
        assert len(llm.calls) == calls

    def test_on_track_callback(self, runner, index):
        _populate(index)
        seen: list[tuple[str, str | None]] = []
        runner.run(on_track=lambda payload, text: seen.append((payload.isrc, text)))
        assert len(seen) == 3
        assert all(text == "A fresh one-line description." for _, text in seen)

    def test_empty_index(self, runner, progress_path):
        progress = runner.run()
        assert progress.is_complete is True
        assert progress.processed_count == 0
        assert progress_path.exists()
