"""Lookup of embedding and LLM clients by the names used in ``config.toml``.

``[embedding] provider = "tei"`` resolves through here to a ``TEIEmbedder``;
``[llm] provider = "anthropic"`` to an ``AnthropicLLM``.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from moodscope.exceptions import PluginError

if TYPE_CHECKING:
    from collections.abc import Callable

    from moodscope.config import MoodscopeConfig

__all__ = ["BUILTIN_MODULES", "ProviderRegistry", "default_registry"]

logger = logging.getLogger(__name__)

# Importing one of these registers the built-in clients for that kind.
BUILTIN_MODULES: dict[str, str] = {
    "embedding": "moodscope.embed",
    "llm": "moodscope.llm",
}


class ProviderRegistry:
    """Named client factories grouped by kind (``"embedding"`` or ``"llm"``).

    A registry built with ``auto_discover=True`` imports the matching entry
    of ``BUILTIN_MODULES`` the first time a kind is looked up, so callers
    never need to import the client packages themselves.
    """

    def __init__(self, *, auto_discover: bool = False) -> None:
        self._kinds: dict[str, dict[str, Callable[[MoodscopeConfig], Any]]] = {}
        self._auto_discover = auto_discover
        self._loaded: set[str] = set()

    def register(
        self,
        kind: str,
        name: str,
        factory: Callable[[MoodscopeConfig], Any],
    ) -> None:
        """Make ``factory`` available as ``name`` for ``kind``.

        Raises:
            PluginError: ``name`` is already taken for ``kind``.
        """
        clients = self._kinds.setdefault(kind, {})
        if name in clients:
            raise PluginError(f"{kind} client {name!r} is already registered")
        clients[name] = factory
        logger.debug("Registered %s client %s", kind, name)

    def _load_builtins(self, kind: str) -> None:
        if not self._auto_discover or kind in self._loaded:
            return
        self._loaded.add(kind)
        module = BUILTIN_MODULES.get(kind)
        if module is not None:
            importlib.import_module(module)

    def create(self, kind: str, name: str, config: MoodscopeConfig) -> Any:
        """Build the ``kind`` client registered as ``name``.

        Raises:
            PluginError: Nothing is registered for ``kind``, or not under ``name``.
        """
        self._load_builtins(kind)
        clients = self._kinds.get(kind)
        if not clients:
            raise PluginError(f"No {kind} clients are registered")
        factory = clients.get(name)
        if factory is None:
            choices = ", ".join(sorted(clients))
            raise PluginError(
                f"{kind} provider {name!r} is not supported (choose from: {choices})"
            )
        logger.info("Using %s client %s", kind, name)
        return factory(config)

    def names(self, kind: str) -> list[str]:
        """Sorted client names registered for ``kind``."""
        self._load_builtins(kind)
        return sorted(self._kinds.get(kind, ()))

    def supports(self, kind: str, name: str) -> bool:
        return name in self.names(kind)


default_registry = ProviderRegistry(auto_discover=True)
