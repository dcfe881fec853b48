"""Interchangeable chat backends and the registry that selects them."""

from .base import Capability, ChatBackend, PromptMessage
from .fake import FakeBackend
from .ollama import OllamaBackend
from .openrouter import OpenRouterBackend
from .registry import ProviderRegistry, build_default_registry

__all__ = [
    "Capability",
    "ChatBackend",
    "FakeBackend",
    "OllamaBackend",
    "OpenRouterBackend",
    "PromptMessage",
    "ProviderRegistry",
    "build_default_registry",
]
