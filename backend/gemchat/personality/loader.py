"""Persona configuration loader."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml


_DEFAULT_PATH = Path(__file__).parent / "default.yaml"

_FALLBACK_INSTRUCTION = "You are a helpful AI assistant."
_FALLBACK_WELCOME = "Welcome! I'm your AI assistant. How can I help you today?"


def load_personality(path: Path | None = None) -> dict[str, Any]:
    """Load persona configuration from a YAML file.

    Args:
        path: Optional path to a persona YAML file.
              Defaults to default.yaml in this directory.

    Returns:
        Dictionary with persona configuration.

    Raises:
        FileNotFoundError: If the persona file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    config_path = path or _DEFAULT_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Personality file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config: dict[str, Any] = yaml.safe_load(f) or {}

    return config


@lru_cache(maxsize=8)
def cached_personality(path: str = "") -> dict[str, Any]:
    """Load a persona once per path (empty string means the default)."""
    return load_personality(Path(path) if path else None)


def get_system_instruction(personality: dict[str, Any] | None = None) -> str:
    """Extract the global system instruction from persona config."""
    if personality is None:
        personality = cached_personality()

    instruction = str(personality.get("system_instruction", "")).strip()
    if not instruction:
        return _FALLBACK_INSTRUCTION
    return instruction.replace("{name}", str(personality.get("name", "Gem Chat")))


def get_welcome_message(personality: dict[str, Any] | None = None) -> str:
    """Extract the greeting placed at the top of every new session."""
    if personality is None:
        personality = cached_personality()

    welcome = str(personality.get("welcome", "")).strip()
    if not welcome:
        return _FALLBACK_WELCOME
    return welcome.replace("{name}", str(personality.get("name", "Gem Chat")))
