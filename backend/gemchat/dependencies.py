"""Dependency injection providers for FastAPI."""

from gemchat.agent.backend import GeminiBackend
from gemchat.config import settings
from gemchat.core.lifecycle import MessageLifecycleController
from gemchat.memory.gateway import PersistenceGateway
from gemchat.memory.manager import SessionManager
from gemchat.memory.store import create_store

# Global singleton instances (one event loop, one sending slot)
_session_manager: SessionManager | None = None
_backend: GeminiBackend | None = None
_controller: MessageLifecycleController | None = None


def get_session_manager() -> SessionManager:
    """Return singleton SessionManager instance."""
    global _session_manager
    if _session_manager is None:
        gateway = PersistenceGateway(
            create_store(settings), key_prefix=settings.storage_key_prefix
        )
        _session_manager = SessionManager(gateway)
    return _session_manager


def get_backend() -> GeminiBackend:
    """Return singleton GeminiBackend instance."""
    global _backend
    if _backend is None:
        _backend = GeminiBackend(settings)
    return _backend


def get_controller() -> MessageLifecycleController:
    """Return singleton MessageLifecycleController instance."""
    global _controller
    if _controller is None:
        _controller = MessageLifecycleController(get_session_manager(), get_backend())
    return _controller
