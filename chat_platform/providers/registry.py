"""Provider registry: selects a backend implementation by name at request time."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Dict, List

from ..config import Settings
from ..exceptions import ProviderNotFoundError, ProviderUnavailableError
from .base import ChatBackend
from .fake import FakeBackend
from .ollama import OllamaBackend
from .openrouter import OpenRouterBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str], ChatBackend]


def _normalize(name: str) -> str:
    return (name or "").strip().lower()


class ProviderRegistry:
    """Maps provider names to backend factories.

    Registration happens once at startup; ``freeze`` then turns the table into a
    read-only mapping so request handlers can look it up without locking.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, BackendFactory] = {}
        self._frozen = False

    def register(self, name: str, factory: BackendFactory) -> None:
        if self._frozen:
            raise RuntimeError("provider registry is frozen")
        key = _normalize(name)
        if not key:
            raise ValueError("provider name must not be empty")
        self._factories[key] = factory

    def freeze(self) -> "ProviderRegistry":
        if not self._frozen:
            self._factories = MappingProxyType(dict(self._factories))
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return sorted(self._factories)

    def get(self, name: str, model: str = "") -> ChatBackend:
        factory = self._factories.get(_normalize(name))
        if factory is None:
            raise ProviderNotFoundError(f"provider {name!r} is not registered")
        return factory((model or "").strip())


def build_default_registry(settings: Settings) -> ProviderRegistry:
    registry = ProviderRegistry()

    def fake_factory(model: str) -> ChatBackend:
        return FakeBackend(model or "default")

    def ollama_factory(model: str) -> ChatBackend:
        return OllamaBackend(
            settings.ollama_base_url,
            model or settings.ollama_model,
            timeout=settings.request_timeout,
        )

    def openrouter_factory(model: str) -> ChatBackend:
        if not settings.openrouter_api_key.strip():
            raise ProviderUnavailableError("openrouter is not configured")
        return OpenRouterBackend(
            settings.openrouter_base_url,
            settings.openrouter_api_key,
            model or settings.openrouter_model,
            site_url=settings.openrouter_site_url,
            app_name=settings.openrouter_app_name,
            timeout=settings.request_timeout,
        )

    registry.register("fake", fake_factory)
    registry.register("ollama", ollama_factory)
    registry.register("openrouter", openrouter_factory)
    logger.info("Registered providers: %s", ", ".join(registry.names()))
    return registry.freeze()
