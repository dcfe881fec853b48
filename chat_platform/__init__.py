"""Provider-routed chat service.

Sessions pin a provider and model; each user turn is persisted, a bounded
context window is assembled from history, and the reply comes from whichever
backend the provider registry resolves. Streaming backends can be relayed to
the caller as server-sent events. ``chat_platform.main.create_app`` builds the
HTTP service; ``chat_platform.service.ChatService`` is the engine behind it.
"""

from .config import Settings, load_settings
from .service import ChatService

__all__ = ["ChatService", "Settings", "load_settings"]
