"""
Chat settings — the read-only configuration consumed by the chat session.

Settings come from a JSON file (``~/.bmo_chatbot/config.json`` by default)::

    {
      "apiKey": "sk-...",
      "displayName": "BMO",
      "model": "gpt-3.5-turbo",
      "max_tokens": 4096,
      "temperature": 1.0,
      "system_role": "You are a helpful assistant.",
      "logging": {"level": "INFO", "log_to_file": true}
    }

The file is never written by the application.  Numeric values may be given
as strings; values that cannot be coerced fall back to their defaults.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from bmo.constants import REQUEST_TIMEOUT_SECONDS, logger
from bmo.errors import ConfigurationError

DEFAULT_DISPLAY_NAME = "BMO"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 1.0
DEFAULT_SYSTEM_ROLE = "You are a helpful assistant."

MISSING_API_KEY_MESSAGE = (
    "API key not found. Please add your OpenAI API key in the settings file."
)


@dataclass
class ChatSettings:
    """Settings for one chat session."""
    api_key: str = ""
    display_name: str = DEFAULT_DISPLAY_NAME
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    system_role: str = DEFAULT_SYSTEM_ROLE
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def require_api_key(self) -> str:
        if not self.has_api_key:
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)
        return self.api_key.strip()

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ChatSettings":
        display_name = d.get("displayName") or d.get("chatbotName") or ""
        return cls(
            api_key=str(d.get("apiKey") or ""),
            display_name=str(display_name).strip() or DEFAULT_DISPLAY_NAME,
            model=str(d.get("model") or "").strip() or DEFAULT_MODEL,
            max_tokens=_coerce(d, "max_tokens", int, DEFAULT_MAX_TOKENS),
            temperature=_coerce(d, "temperature", float, DEFAULT_TEMPERATURE),
            system_role=str(d.get("system_role") or DEFAULT_SYSTEM_ROLE),
            request_timeout=_coerce(d, "request_timeout", float,
                                    REQUEST_TIMEOUT_SECONDS),
            raw=dict(d),
        )


def _coerce(d: Dict[str, Any], key: str, kind, default):
    value = d.get(key)
    if value is None or value == "":
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        logger.warning(f"Config: invalid {key}={value!r}, using default {default}")
        return default


def load_settings(path: Path) -> ChatSettings:
    """Read settings from *path*.

    A missing file yields defaults (and therefore no API key).  A malformed
    file is logged and also yields defaults; the missing key is then
    reported on the first submission like any other unconfigured session.
    """
    if not path.exists():
        logger.info(f"Config: {path} not found, using defaults")
        return ChatSettings()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Config: invalid configuration file {path}: {e}")
        return ChatSettings()
    except OSError as e:
        logger.error(f"Config: failed to read {path}: {e}")
        return ChatSettings()

    if not isinstance(data, dict):
        logger.error(f"Config: expected a JSON object in {path}")
        return ChatSettings()

    settings = ChatSettings.from_dict(data)
    logger.info(f"Config: loaded from {path} (model={settings.model}, "
                f"api_key={'set' if settings.has_api_key else 'missing'})")
    return settings


def format_model_name(model: Optional[str]) -> str:
    """Display form of a model id: every ``g``, ``p`` and ``t`` upper-cased.

    ``gpt-3.5-turbo`` becomes ``GPT-3.5-Turbo``.
    """
    return re.sub(r"[gpt]", lambda m: m.group(0).upper(), model or DEFAULT_MODEL)
