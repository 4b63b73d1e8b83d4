"""Project manager for moodscope.

Handles project initialization, status reporting, project root discovery,
and wiring of the configured collaborators into ready-to-use services.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

from moodscope.backfill import BackfillRunner, load_progress
from moodscope.config import MoodscopeConfig, default_config, load_config, save_config
from moodscope.discovery import DiscoveryService
from moodscope.exceptions import ConfigError, ProjectError
from moodscope.index.chroma import ChromaIndex
from moodscope.ingest.describe import ShortDescriber
from moodscope.ingest.events import LoggingEventSink
from moodscope.ingest.ledger import CompletionLedger
from moodscope.ingest.runtime import WorkflowRuntime
from moodscope.ingest.workflow import TrackIngestionWorkflow
from moodscope.llm.expansion import QueryExpander
from moodscope.prompts import PromptRenderer
from moodscope.registry import default_registry
from moodscope.scheduler import IngestionScheduler, RuntimeDispatcher
from moodscope.sources.audio_features import ReccoBeatsClient
from moodscope.sources.lyrics import MusixmatchClient
from moodscope.types import BackfillProgress

if TYPE_CHECKING:
    from moodscope.embed.base import BaseEmbedder
    from moodscope.llm.base import BaseLLM

__all__ = [
    "BACKFILL_FILE",
    "COMPLETIONS_FILE",
    "CONFIG_FILE",
    "PROJECT_DIR",
    "ProjectManager",
    "ProjectStatus",
    "Services",
]

logger = logging.getLogger(__name__)

PROJECT_DIR = ".moodscope"
CONFIG_FILE = "config.toml"
BACKFILL_FILE = "backfill.json"
COMPLETIONS_FILE = "completions.json"

SUBDIRS = [
    "index",
    "prompts",
]


@dataclass
class ProjectStatus:
    """Summary of the current project state."""

    initialized: bool
    root: Path
    track_count: int
    config: MoodscopeConfig | None
    backfill: BackfillProgress | None = None


class ProjectManager:
    """Manages moodscope project lifecycle."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or Path.cwd()

    @property
    def project_dir(self) -> Path:
        return self.root / PROJECT_DIR

    @property
    def config_path(self) -> Path:
        return self.project_dir / CONFIG_FILE

    @property
    def index_path(self) -> Path:
        return self.project_dir / "index"

    @property
    def backfill_path(self) -> Path:
        return self.project_dir / BACKFILL_FILE

    @property
    def completions_path(self) -> Path:
        return self.project_dir / COMPLETIONS_FILE

    @property
    def is_initialized(self) -> bool:
        return self.project_dir.is_dir() and self.config_path.exists()

    def init(self, user_id: str = "", embedding_provider: str = "") -> Path:
        """Initialize a new moodscope project.

        Creates the .moodscope/ directory structure and a default config.
        Safe to call on an already-initialized project (idempotent).

        Returns the .moodscope/ directory path.
        """
        self.project_dir.mkdir(parents=True, exist_ok=True)
        for subdir in SUBDIRS:
            (self.project_dir / subdir).mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            config = load_config(self.config_path)
            logger.info("Existing config found at %s", self.config_path)
        else:
            config = default_config()

        if user_id:
            config.user.default_user_id = user_id
        if embedding_provider:
            config.embedding.provider = embedding_provider

        save_config(config, self.config_path)
        logger.info("Initialized moodscope project at %s", self.project_dir)
        return self.project_dir

    def load_config(self) -> MoodscopeConfig:
        """Load the project config.

        Raises:
            ProjectError: If the project has not been initialized.
            ConfigError: If the config file is invalid.
        """
        if not self.is_initialized:
            raise ProjectError(f"No moodscope project at {self.root}; run 'moodscope init'")
        return load_config(self.config_path)

    def status(self) -> ProjectStatus:
        """Get current project status.

        The track count is read from the index; it is 0 when the index has
        not been created yet.
        """
        if not self.is_initialized:
            return ProjectStatus(initialized=False, root=self.root, track_count=0, config=None)

        config = load_config(self.config_path)
        track_count = 0
        if self.index_path.is_dir() and any(self.index_path.iterdir()):
            index = ChromaIndex(self.index_path, config.index.collection, config.index.rrf_k)
            track_count = index.count()

        backfill = load_progress(self.backfill_path) if self.backfill_path.exists() else None
        return ProjectStatus(
            initialized=True,
            root=self.root,
            track_count=track_count,
            config=config,
            backfill=backfill,
        )

    @staticmethod
    def find_project_root(start: Path | None = None) -> Path | None:
        """Walk up from start directory to find a .moodscope/ directory.

        Returns the project root (parent of .moodscope/) or None if not found.
        """
        current = (start or Path.cwd()).resolve()
        while True:
            if (current / PROJECT_DIR).is_dir():
                return current
            parent = current.parent
            if parent == current:
                return None
            current = parent


class Services:
    """Builds the configured services for one project, each at most once.

    Usage::

        services = Services(ProjectManager(root))
        response = services.discovery.search("songs about leaving home")
        services.close()
    """

    def __init__(self, project: ProjectManager, config: MoodscopeConfig | None = None) -> None:
        self.project = project
        self.config = config or project.load_config()

    @cached_property
    def prompts(self) -> PromptRenderer:
        return PromptRenderer(self.project.root)

    @cached_property
    def index(self) -> ChromaIndex:
        return ChromaIndex(
            self.project.index_path, self.config.index.collection, self.config.index.rrf_k
        )

    @cached_property
    def embedder(self) -> BaseEmbedder:
        return default_registry.create("embedding", self.config.embedding.provider, self.config)

    @cached_property
    def llm(self) -> BaseLLM:
        return default_registry.create("llm", self.config.llm.provider, self.config)

    @cached_property
    def describer(self) -> ShortDescriber:
        return ShortDescriber(self.llm, self.prompts, self.config.llm.description_model)

    @cached_property
    def discovery(self) -> DiscoveryService:
        expander = QueryExpander(
            self.llm,
            self.prompts,
            self.config.llm.expansion_model,
            self.config.discovery.max_expansions,
        )
        return DiscoveryService(expander, self.embedder, self.index, self.config)

    @cached_property
    def runtime(self) -> WorkflowRuntime:
        try:
            lyrics_source: MusixmatchClient | None = MusixmatchClient.from_config(self.config)
        except ConfigError as e:
            logger.warning("Lyrics lookups disabled: %s", e)
            lyrics_source = None
        workflow = TrackIngestionWorkflow(
            ReccoBeatsClient.from_config(self.config),
            lyrics_source,
            self.llm,
            self.embedder,
            self.index,
            self.prompts,
            self.describer,
            self.config,
        )
        ledger = CompletionLedger(
            self.config.ingestion.idempotency_window_hours * 3600, self.project.completions_path
        )
        return WorkflowRuntime(workflow, LoggingEventSink(), self.config.ingestion, ledger=ledger)

    @cached_property
    def scheduler(self) -> IngestionScheduler:
        return IngestionScheduler(
            self.index, RuntimeDispatcher(self.runtime), self.config.scheduling
        )

    @cached_property
    def backfill(self) -> BackfillRunner:
        return BackfillRunner(
            self.index, self.describer, self.project.backfill_path, self.config.backfill
        )

    def close(self, wait: bool = True) -> None:
        """Stop the ingestion pool; waits for in-flight runs by default."""
        if "runtime" in self.__dict__:
            self.runtime.shutdown(wait=wait)
