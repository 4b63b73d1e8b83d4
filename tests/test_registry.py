"""Tests for moodscope.registry module."""

from __future__ import annotations

import pytest

from moodscope.config import MoodscopeConfig
from moodscope.embed.tei import TEIEmbedder
from moodscope.exceptions import PluginError
from moodscope.llm.anthropic import AnthropicLLM
from moodscope.registry import BUILTIN_MODULES, ProviderRegistry, default_registry


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


class TestRegistration:
    def test_created_client_comes_from_factory(self, registry):
        registry.register("embedding", "stub", lambda cfg: ("stub", cfg.embedding.dimension))
        assert registry.create("embedding", "stub", MoodscopeConfig()) == ("stub", 1024)

    def test_same_name_twice_rejected(self, registry):
        registry.register("llm", "anthropic", lambda cfg: object())
        with pytest.raises(PluginError, match="'anthropic' is already registered"):
            registry.register("llm", "anthropic", lambda cfg: object())

    def test_same_name_in_other_kind_allowed(self, registry):
        registry.register("llm", "shared", lambda cfg: "llm")
        registry.register("embedding", "shared", lambda cfg: "embedding")
        assert registry.create("llm", "shared", MoodscopeConfig()) == "llm"

    def test_names_sorted_per_kind(self, registry):
        registry.register("embedding", "tei", lambda cfg: None)
        registry.register("embedding", "openai", lambda cfg: None)
        assert registry.names("embedding") == ["openai", "tei"]
        assert registry.names("llm") == []
        assert registry.supports("embedding", "tei") is True
        assert registry.supports("llm", "tei") is False


class TestLookupErrors:
    def test_kind_without_clients(self, registry):
        with pytest.raises(PluginError, match="No llm clients"):
            registry.create("llm", "anthropic", MoodscopeConfig())

    def test_unsupported_name_lists_choices(self, registry):
        registry.register("embedding", "tei", lambda cfg: None)
        with pytest.raises(PluginError, match=r"'cohere' is not supported \(choose from: tei\)"):
            registry.create("embedding", "cohere", MoodscopeConfig())

    def test_plain_registry_does_not_load_builtins(self, registry):
        with pytest.raises(PluginError):
            registry.create("embedding", "tei", MoodscopeConfig())


class TestBuiltins:
    def test_every_kind_has_a_module(self):
        assert set(BUILTIN_MODULES) == {"embedding", "llm"}

    @pytest.mark.parametrize(
        ("kind", "name"),
        [("embedding", "tei"), ("embedding", "openai"), ("llm", "anthropic")],
    )
    def test_default_registry_knows_builtin(self, kind, name):
        assert default_registry.supports(kind, name)

    def test_default_registry_builds_clients(self):
        config = MoodscopeConfig()
        assert isinstance(default_registry.create("embedding", "tei", config), TEIEmbedder)
        assert isinstance(default_registry.create("llm", "anthropic", config), AnthropicLLM)
