"""Chat Platform — runtime configuration loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

DEFAULT_WINDOW_SIZE = 20
MAX_WINDOW_SIZE = 100


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def clamp_window_size(size: int) -> int:
    """Keep the context window within 1..100, falling back to 20."""
    if size <= 0 or size > MAX_WINDOW_SIZE:
        return DEFAULT_WINDOW_SIZE
    return size


@dataclass
class Settings:
    database_url: str = "sqlite:///chat.db"
    jwt_secret: str = "dev-secret-change-me"

    context_window_size: int = DEFAULT_WINDOW_SIZE
    list_default_limit: int = 50
    list_max_limit: int = 100

    default_provider: str = "fake"
    default_model: str = "default"

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3:latest"

    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_api_key: str = ""
    openrouter_model: str = "openrouter/auto"
    openrouter_site_url: str = ""
    openrouter_app_name: str = ""

    request_timeout: float = 60.0

    demo_provider: str = "openrouter"
    demo_model: str = "openrouter/auto"
    demo_max_messages: int = 20

    log_level: str = "INFO"


def load_settings() -> Settings:
    db_path = os.getenv("CHAT_DB_PATH", "chat.db")
    return Settings(
        database_url=os.getenv("DATABASE_URL") or f"sqlite:///{db_path}",
        jwt_secret=os.getenv("JWT_SECRET") or "dev-secret-change-me",
        context_window_size=clamp_window_size(_env_int("CHAT_CONTEXT_WINDOW_SIZE", DEFAULT_WINDOW_SIZE)),
        list_default_limit=_env_int("CHAT_LIST_DEFAULT_LIMIT", 50),
        list_max_limit=_env_int("CHAT_LIST_MAX_LIMIT", 100),
        default_provider=os.getenv("CHAT_DEFAULT_PROVIDER") or "fake",
        default_model=os.getenv("CHAT_DEFAULT_MODEL") or "default",
        ollama_base_url=os.getenv("OLLAMA_BASE_URL") or "http://localhost:11434",
        ollama_model=os.getenv("OLLAMA_MODEL") or "llama3:latest",
        openrouter_base_url=os.getenv("OPENROUTER_BASE_URL") or "https://openrouter.ai/api/v1",
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
        openrouter_model=os.getenv("OPENROUTER_MODEL") or "openrouter/auto",
        openrouter_site_url=os.getenv("OPENROUTER_SITE_URL", ""),
        openrouter_app_name=os.getenv("OPENROUTER_APP_NAME", ""),
        request_timeout=_env_float("LLM_REQUEST_TIMEOUT", 60.0),
        demo_provider=os.getenv("DEMO_PROVIDER") or "openrouter",
        demo_model=os.getenv("DEMO_MODEL") or "openrouter/auto",
        demo_max_messages=_env_int("DEMO_MAX_MESSAGES", 20),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
