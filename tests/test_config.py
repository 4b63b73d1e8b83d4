"""Tests for moodscope.config module."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from moodscope.config import MoodscopeConfig, default_config, load_config, save_config
from moodscope.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config.toml"


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_discovery_paging_limits(self):
        discovery = default_config().discovery
        assert (discovery.default_page_size, discovery.max_page_size) == (20, 20)
        assert discovery.max_total_results == 100
        assert discovery.max_expansions == 3

    def test_local_tei_embeddings(self):
        embedding = default_config().embedding
        assert embedding.provider == "tei"
        assert embedding.dimension == 1024
        assert embedding.query_instruction.startswith("Instruct:")

    def test_ingestion_throttle_and_retries(self):
        ingestion = default_config().ingestion
        assert ingestion.throttle_limit == 10
        assert ingestion.throttle_period_s == 60.0
        assert ingestion.retries == 5
        assert ingestion.idempotency_window_hours == 24.0

    def test_index_fusion_constant(self):
        assert default_config().index.rrf_k == 60


class TestSaveAndLoad:
    def test_defaults_survive(self, config_path: Path):
        save_config(default_config(), config_path)
        assert load_config(config_path) == default_config()

    def test_edited_values_survive(self, config_path: Path):
        config = MoodscopeConfig()
        config.user.default_user_id = "listener-42"
        config.embedding.provider = "openai"
        config.embedding.base_url = "http://localhost:9000/v1"
        config.scheduling.concurrency = 4
        config.backfill.delay_s = 0.0
        config.ingestion.retries = 0

        save_config(config, config_path)

        assert load_config(config_path) == config

    def test_writes_every_table(self, config_path: Path):
        save_config(default_config(), config_path)
        text = config_path.read_text(encoding="utf-8")
        for table in ("[user]", "[discovery]", "[ingestion]", "[scheduling]", "[backfill]"):
            assert table in text

    def test_creates_parent_directories(self, tmp_path: Path):
        path = tmp_path / ".moodscope" / "nested" / "config.toml"
        save_config(default_config(), path)
        assert path.exists()

    def test_save_failure_raises(self, tmp_path: Path):
        blocker = _write(tmp_path / "blocker", "file, not dir")
        with pytest.raises(ConfigError, match="Failed to save"):
            save_config(default_config(), blocker / "config.toml")


class TestPartialFiles:
    def test_missing_tables_use_defaults(self, config_path: Path):
        _write(config_path, '[user]\ndefault_user_id = "partial"\n')
        loaded = load_config(config_path)
        assert loaded.user.default_user_id == "partial"
        assert loaded.embedding.dimension == 1024

    def test_unknown_keys_dropped(self, config_path: Path):
        _write(config_path, '[index]\ncollection = "songs"\nshards = 3\n')
        assert load_config(config_path).index.collection == "songs"

    def test_integer_widened_for_float_setting(self, config_path: Path):
        _write(config_path, "[backfill]\ndelay_s = 3\n")
        delay = load_config(config_path).backfill.delay_s
        assert delay == 3.0
        assert isinstance(delay, float)


class TestErrors:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_broken_toml(self, config_path: Path):
        _write(config_path, "[user\nbroken")
        with pytest.raises(ConfigError, match="Failed to load"):
            load_config(config_path)

    def test_section_must_be_table(self, config_path: Path):
        _write(config_path, 'index = "tracks"\n')
        with pytest.raises(ConfigError, match=r"\[index\] must be a table"):
            load_config(config_path)

    @pytest.mark.parametrize(
        ("toml", "setting"),
        [
            ("[scheduling]\nconcurrency = 0\n", "scheduling.concurrency"),
            ("[scheduling]\nconcurrency = 51\n", "scheduling.concurrency"),
            ("[scheduling]\nsla_ms = 100\n", "scheduling.sla_ms"),
            ("[discovery]\nmax_expansions = 5\n", "discovery.max_expansions"),
            ("[embedding]\ndimension = 0\n", "embedding.dimension"),
            ("[ingestion]\nretries = -1\n", "ingestion.retries"),
        ],
    )
    def test_out_of_range_rejected(self, config_path: Path, toml: str, setting: str):
        _write(config_path, toml)
        with pytest.raises(ConfigError, match=setting):
            load_config(config_path)
