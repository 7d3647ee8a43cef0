"""System instructions and canned bot texts."""

import logging

from gemchat.config import settings
from gemchat.personality.loader import (
    cached_personality,
    get_system_instruction,
    get_welcome_message,
)

logger = logging.getLogger(__name__)

ERROR_MESSAGE_TEMPLATE = "Sorry, I couldn't complete that response. {reason}"
CANCELLED_MESSAGE = "Response generation was cancelled."
INTERRUPTED_MESSAGE = "Response was interrupted."


def default_system_instruction() -> str:
    """Global instruction used by sessions without their own override."""
    return get_system_instruction(cached_personality(settings.personality_path))


def welcome_message() -> str:
    """Greeting synthesized as the first message of every new session."""
    return get_welcome_message(cached_personality(settings.personality_path))


def resolve_system_instruction(override: str | None) -> str:
    """Return the session override when it is non-blank, else the default."""
    if override and override.strip():
        return override
    return default_system_instruction()


def error_message(reason: object) -> str:
    """User-visible text for a bot message whose exchange failed."""
    text = str(reason).strip() or reason.__class__.__name__
    return ERROR_MESSAGE_TEMPLATE.format(reason=text)
