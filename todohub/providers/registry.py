"""Provider registry for assistant-specific adapters."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional

from todohub import config
from todohub.providers.base import ProviderAdapter
from todohub.providers.claude import ClaudeAdapter
from todohub.providers.transcripts import CodexAdapter, GeminiAdapter

_FACTORIES: dict[str, Callable[[], ProviderAdapter]] = {
    "claude": ClaudeAdapter,
    "codex": CodexAdapter,
    "gemini": GeminiAdapter,
}

_HOMES: dict[str, Callable[[], Path]] = {
    "claude": lambda: config.CLAUDE_HOME,
    "codex": lambda: config.CODEX_HOME,
    "gemini": lambda: config.GEMINI_HOME,
}


def known_providers() -> list[str]:
    return list(_FACTORIES)


def build_adapters(enabled: Optional[Iterable[str]] = None) -> list[ProviderAdapter]:
    """Instantiate adapters for the enabled provider ids, in registry order.

    Unknown ids are ignored. Additional providers can be registered here.
    """
    wanted = {p.lower() for p in (config.ENABLED_PROVIDERS if enabled is None else enabled)}
    return [factory() for provider_id, factory in _FACTORIES.items() if provider_id in wanted]


def provider_presence() -> dict[str, bool]:
    """Which provider home directories exist on this machine."""
    presence = {}
    for provider_id, home in _HOMES.items():
        try:
            presence[provider_id] = home().exists()
        except OSError:
            presence[provider_id] = False
    return presence
