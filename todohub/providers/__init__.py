"""Provider adapters."""

from todohub.providers.base import ProviderAdapter, build_projects
from todohub.providers.claude import ClaudeAdapter
from todohub.providers.registry import build_adapters, known_providers, provider_presence
from todohub.providers.transcripts import CodexAdapter, GeminiAdapter

__all__ = [
    "ProviderAdapter",
    "build_projects",
    "ClaudeAdapter",
    "CodexAdapter",
    "GeminiAdapter",
    "build_adapters",
    "known_providers",
    "provider_presence",
]
