"""Jinja2 prompt templates for expansion, interpretation and short descriptions.

Built-in templates ship in ``moodscope/prompts/templates/``. A project may
override any of them by dropping a file with the same name into
``.moodscope/prompts/``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import jinja2

from moodscope.exceptions import PromptError

if TYPE_CHECKING:
    from moodscope.types import AudioFeatures

__all__ = [
    "NO_FEATURES_DESCRIPTION",
    "PromptRenderer",
    "format_audio_features",
]

logger = logging.getLogger(__name__)

NO_FEATURES_DESCRIPTION = "No distinctive audio characteristics available"


def _threshold_label(
    value: float | None, low: float, high: float, low_label: str, high_label: str
) -> str | None:
    if value is None:
        return None
    if value >= high:
        return high_label
    if value <= low:
        return low_label
    return None


def format_audio_features(features: AudioFeatures) -> str:
    """Turn audio features into a comma-separated list of descriptors.

    Only values past a threshold produce a descriptor; tempo always does.
    Returns :data:`NO_FEATURES_DESCRIPTION` when nothing qualifies.
    """
    candidates = [
        _threshold_label(features.energy, 0.3, 0.7, "low energy", "high energy"),
        _threshold_label(features.valence, 0.3, 0.7, "melancholic mood", "uplifting mood"),
        _threshold_label(features.acousticness, 0.2, 0.7, "electronic", "acoustic"),
        _threshold_label(features.danceability, 0.3, 0.7, "ambient", "danceable"),
    ]
    descriptors = [c for c in candidates if c]

    if features.tempo is not None:
        bpm = round(features.tempo)
        if features.tempo >= 140:
            descriptors.append(f"fast tempo ({bpm} BPM)")
        elif features.tempo <= 80:
            descriptors.append(f"slow tempo ({bpm} BPM)")
        else:
            descriptors.append(f"{bpm} BPM")

    if features.liveness is not None and features.liveness >= 0.8:
        descriptors.append("live recording")
    if features.speechiness is not None and features.speechiness >= 0.66:
        descriptors.append("spoken word elements")

    if not descriptors:
        return NO_FEATURES_DESCRIPTION
    return ", ".join(descriptors)


class PromptRenderer:
    """Renders prompt templates with optional per-project overrides.

    Template search order:
      1. ``<project_root>/.moodscope/prompts/`` (user overrides, optional)
      2. ``moodscope/prompts/templates/`` (built-in)

    Args:
        project_root: Project root directory. If provided, enables user
            prompt overrides.
    """

    def __init__(self, project_root: Path | None = None) -> None:
        from importlib.resources import files

        search_paths: list[str] = []
        if project_root is not None:
            user_dir = project_root / ".moodscope" / "prompts"
            if user_dir.is_dir():
                search_paths.append(str(user_dir))
                logger.info("User prompt overrides enabled: %s", user_dir)

        builtin_dir = Path(str(files("moodscope.prompts") / "templates"))
        if not builtin_dir.is_dir():
            raise PromptError("Built-in prompt directory not found; installation may be corrupted")
        search_paths.append(str(builtin_dir))

        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(search_paths),
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, **context: object) -> str:
        """Render ``template_name`` with ``context`` and strip surrounding whitespace.

        Raises:
            PromptError: If the template is not found or rendering fails.
        """
        try:
            template = self._env.get_template(template_name)
        except jinja2.TemplateNotFound as e:
            raise PromptError(f"Prompt template not found: {template_name}") from e

        try:
            return template.render(**context).strip()
        except jinja2.TemplateError as e:
            raise PromptError(f"Failed to render prompt {template_name}: {e}") from e

    def query_expansion(self, query: str, max_queries: int = 3) -> str:
        return self.render("query_expansion.j2", query=query, max_queries=max_queries)

    def query_expansion_system(self) -> str:
        return self.render("query_expansion_system.j2")

    def interpretation(self, title: str, artist: str, album: str, lyrics: str) -> str:
        return self.render(
            "interpretation.j2", title=title, artist=artist, album=album, lyrics=lyrics
        )

    def short_description(self, title: str, artist: str, interpretation: str) -> str:
        """Tier 1: summarize an existing interpretation."""
        return self.render(
            "short_description.j2", title=title, artist=artist, interpretation=interpretation
        )

    def instrumental_short_description(
        self, title: str, artist: str, album: str, features: AudioFeatures
    ) -> str:
        """Tier 2: describe a track from its audio features."""
        return self.render(
            "short_description_instrumental.j2",
            title=title,
            artist=artist,
            album=album,
            features=format_audio_features(features),
        )

    def metadata_short_description(self, title: str, artist: str, album: str) -> str:
        """Tier 3: neutral description from title, artist and album only."""
        return self.render(
            "short_description_metadata.j2", title=title, artist=artist, album=album
        )
