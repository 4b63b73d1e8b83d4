"""Typed settings for a moodscope project, stored in ``.moodscope/config.toml``.

One dataclass per TOML table. Every field has a default, so a fresh
``moodscope init`` writes a complete file and older files keep loading
after new settings are added.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, TypeVar

import tomli_w

if sys.version_info >= (3, 12):
    import tomllib
else:
    import tomli as tomllib

from moodscope.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "BackfillConfig",
    "DiscoveryConfig",
    "EmbeddingConfig",
    "IndexConfig",
    "IngestionConfig",
    "LlmConfig",
    "MoodscopeConfig",
    "ProvidersConfig",
    "SchedulingConfig",
    "UserConfig",
    "default_config",
    "load_config",
    "save_config",
]

logger = logging.getLogger(__name__)


@dataclass
class UserConfig:
    """[user] section."""

    default_user_id: str = "default"


@dataclass
class DiscoveryConfig:
    """[discovery] section."""

    default_page_size: int = 20
    max_page_size: int = 20
    max_total_results: int = 100
    max_query_length: int = 2000
    max_expansions: int = 3
    request_timeout_s: float = 30.0
    prefetch_extra: int = 50


@dataclass
class EmbeddingConfig:
    """[embedding] section."""

    provider: str = "tei"
    model: str = "mixedbread-ai/mxbai-embed-large-v1"
    base_url: str = ""
    api_key_env: str = ""
    dimension: int = 1024
    query_instruction: str = "Instruct: Find music tracks matching this description\nQuery:"
    timeout_s: float = 60.0


@dataclass
class LlmConfig:
    """[llm] section."""

    provider: str = "anthropic"
    base_url: str = ""
    api_key_env: str = "ANTHROPIC_API_KEY"
    expansion_model: str = "claude-haiku-4-5-20251001"
    interpretation_model: str = "claude-sonnet-4-5"
    description_model: str = "claude-haiku-4-5-20251001"
    timeout_s: float = 60.0


@dataclass
class IndexConfig:
    """[index] section."""

    collection: str = "tracks"
    rrf_k: int = 60


@dataclass
class ProvidersConfig:
    """[providers] section."""

    reccobeats_url: str = "https://api.reccobeats.com/v1"
    musixmatch_url: str = "https://api.musixmatch.com/ws/1.1"
    musixmatch_key_env: str = "MUSIXMATCH_API_KEY"
    timeout_s: float = 10.0


@dataclass
class IngestionConfig:
    """[ingestion] section."""

    concurrency: int = 10
    throttle_limit: int = 10
    throttle_period_s: float = 60.0
    retries: int = 5
    backoff_base_s: float = 1.0
    idempotency_window_hours: float = 24.0


@dataclass
class SchedulingConfig:
    """[scheduling] section."""

    concurrency: int = 10
    sla_ms: int = 5000


@dataclass
class BackfillConfig:
    """[backfill] section."""

    batch_size: int = 100
    delay_s: float = 2.0


_SECTIONS: dict[str, type] = {
    "user": UserConfig,
    "discovery": DiscoveryConfig,
    "embedding": EmbeddingConfig,
    "llm": LlmConfig,
    "index": IndexConfig,
    "providers": ProvidersConfig,
    "ingestion": IngestionConfig,
    "scheduling": SchedulingConfig,
    "backfill": BackfillConfig,
}


@dataclass
class MoodscopeConfig:
    """Root configuration combining all sections."""

    user: UserConfig = field(default_factory=UserConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LlmConfig = field(default_factory=LlmConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    backfill: BackfillConfig = field(default_factory=BackfillConfig)


def default_config() -> MoodscopeConfig:
    """Return a config with all default values."""
    return MoodscopeConfig()


def save_config(config: MoodscopeConfig, path: Path) -> None:
    """Write every section of ``config`` to ``path`` as TOML."""
    tables = {name: dict(vars(getattr(config, name))) for name in _SECTIONS}
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(tomli_w.dumps(tables).encode("utf-8"))
    except OSError as e:
        logger.error("Could not write %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e
    logger.info("Saved config to %s", path)


def _build_section(cls: type[_T], table: object, name: str) -> _T:
    """Instantiate section ``cls`` from a TOML table.

    Keys the dataclass does not declare are dropped, and TOML integers given
    for float settings (``delay_s = 2``) are widened.
    """
    if not isinstance(table, dict):
        raise ConfigError(f"[{name}] must be a table, got {type(table).__name__}")
    defaults = {f.name: f.default for f in fields(cls)}  # type: ignore[arg-type]
    values: dict[str, object] = {}
    for key, value in table.items():
        if key not in defaults:
            logger.debug("Ignoring unknown setting %s.%s", name, key)
            continue
        if isinstance(defaults[key], float) and isinstance(value, int):
            value = float(value)
        values[key] = value
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid [{name}] section: {e}") from e


def _validate(config: MoodscopeConfig) -> None:
    """Reject values the search and ingestion code cannot work with."""
    checks = [
        (config.discovery.max_page_size >= 1, "discovery.max_page_size must be >= 1"),
        (config.discovery.max_total_results >= 1, "discovery.max_total_results must be >= 1"),
        (1 <= config.discovery.max_expansions <= 3, "discovery.max_expansions must be 1..3"),
        (config.embedding.dimension >= 1, "embedding.dimension must be >= 1"),
        (1 <= config.scheduling.concurrency <= 50, "scheduling.concurrency must be 1..50"),
        (1000 <= config.scheduling.sla_ms <= 60000, "scheduling.sla_ms must be 1000..60000"),
        (config.ingestion.concurrency >= 1, "ingestion.concurrency must be >= 1"),
        (config.ingestion.throttle_limit >= 1, "ingestion.throttle_limit must be >= 1"),
        (config.ingestion.retries >= 0, "ingestion.retries must be >= 0"),
        (config.backfill.batch_size >= 1, "backfill.batch_size must be >= 1"),
    ]
    for ok, message in checks:
        if not ok:
            raise ConfigError(message)


def load_config(path: Path) -> MoodscopeConfig:
    """Read ``path`` into a validated :class:`MoodscopeConfig`.

    Sections or keys absent from the file keep their defaults.

    Raises:
        ConfigError: Missing or unparsable file, a malformed section, or a
            value outside its allowed range.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        document = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Could not parse %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    sections = {
        name: _build_section(cls, document[name], name)
        for name, cls in _SECTIONS.items()
        if name in document
    }
    config = MoodscopeConfig(**sections)  # type: ignore[arg-type]
    _validate(config)
    logger.info("Loaded config from %s", path)
    return config
