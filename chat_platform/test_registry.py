import pytest

from chat_platform.config import Settings
from chat_platform.exceptions import ProviderNotFoundError, ProviderUnavailableError
from chat_platform.providers import (
    FakeBackend,
    OllamaBackend,
    OpenRouterBackend,
    ProviderRegistry,
    build_default_registry,
)


def test_get_passes_model_to_factory():
    registry = ProviderRegistry()
    registry.register("fake", lambda model: FakeBackend(model or "fallback"))
    assert registry.get("fake", "m1").model == "m1"
    assert registry.get("fake", "").model == "fallback"


def test_names_are_normalized():
    registry = ProviderRegistry()
    registry.register("  Fake ", lambda model: FakeBackend(model))
    assert registry.names() == ["fake"]
    assert isinstance(registry.get("FAKE", "x"), FakeBackend)


def test_unknown_provider():
    registry = ProviderRegistry().freeze()
    with pytest.raises(ProviderNotFoundError):
        registry.get("missing", "model")


def test_each_get_yields_a_fresh_handle():
    registry = ProviderRegistry()
    registry.register("fake", lambda model: FakeBackend(model))
    assert registry.get("fake", "a") is not registry.get("fake", "a")


def test_frozen_registry_rejects_registration():
    registry = ProviderRegistry()
    registry.register("fake", lambda model: FakeBackend(model))
    registry.freeze()
    assert registry.frozen
    with pytest.raises(RuntimeError):
        registry.register("other", lambda model: FakeBackend(model))
    assert registry.names() == ["fake"]


def test_empty_name_rejected():
    with pytest.raises(ValueError):
        ProviderRegistry().register("  ", lambda model: FakeBackend(model))


def test_default_registry_contents():
    settings = Settings(ollama_model="llama3:latest", openrouter_api_key="sk-test", openrouter_model="openrouter/auto")
    registry = build_default_registry(settings)
    assert registry.frozen
    assert registry.names() == ["fake", "ollama", "openrouter"]

    ollama = registry.get("ollama", "")
    assert isinstance(ollama, OllamaBackend)
    assert ollama.model == "llama3:latest"
    assert registry.get("ollama", "mistral").model == "mistral"

    openrouter = registry.get("openrouter", "")
    assert isinstance(openrouter, OpenRouterBackend)
    assert openrouter.model == "openrouter/auto"
    assert openrouter.supports_streaming

    assert not registry.get("fake", "").supports_streaming


def test_openrouter_without_key_is_unavailable():
    registry = build_default_registry(Settings(openrouter_api_key=""))
    with pytest.raises(ProviderUnavailableError):
        registry.get("openrouter", "")
