"""todohub configuration."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if not value:
        return default
    return Path(value).expanduser()


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(token.strip().lower() for token in value.split(",") if token.strip())


# Provider homes
CLAUDE_HOME = _env_path("TODOHUB_CLAUDE_HOME", Path.home() / ".claude")
CODEX_HOME = _env_path("TODOHUB_CODEX_HOME", Path.home() / ".codex")
GEMINI_HOME = _env_path("TODOHUB_GEMINI_HOME", Path.home() / ".gemini")

ENABLED_PROVIDERS = _env_list("TODOHUB_ENABLED_PROVIDERS", ("claude", "codex", "gemini"))

# File watching
WATCH_ENABLED = _env_bool("TODOHUB_WATCH_ENABLED", True)
WATCH_DEBOUNCE_MS = _env_int("TODOHUB_WATCH_DEBOUNCE_MS", 300)

# Server settings
HOST = os.getenv("TODOHUB_HOST", "127.0.0.1")
PORT = _env_int("TODOHUB_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("TODOHUB_FRONTEND_ORIGIN", "http://localhost:5173")


@dataclass(frozen=True)
class ProviderPaths:
    """On-disk roots for one provider home. Passed explicitly, never global."""

    home: Path

    @property
    def projects_dir(self) -> Path:
        return self.home / "projects"

    @property
    def todos_dir(self) -> Path:
        return self.home / "todos"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def sessions_dir(self) -> Path:
        return self.home / "sessions"

    @property
    def current_todos_file(self) -> Path:
        return self.logs_dir / "current_todos.json"


def claude_paths(home: Optional[Path] = None) -> ProviderPaths:
    return ProviderPaths(home or CLAUDE_HOME)


def codex_paths(home: Optional[Path] = None) -> ProviderPaths:
    return ProviderPaths(home or CODEX_HOME)


def gemini_paths(home: Optional[Path] = None) -> ProviderPaths:
    return ProviderPaths(home or GEMINI_HOME)
