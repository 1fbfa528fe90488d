"""Write-once cache of resolved real paths, one ``metadata.json`` per project dir."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("todohub.paths")

METADATA_FILENAME = "metadata.json"


class MetadataCache:
    """Maps a flattened directory name to the last known real path.

    Entries are never overwritten: the first resolution persisted for a
    directory stays authoritative even if a later heuristic disagrees.
    """

    def __init__(self, projects_dir: Path):
        self.projects_dir = projects_dir

    def entry_path(self, flattened: str) -> Path:
        return self.projects_dir / flattened / METADATA_FILENAME

    def has(self, flattened: str) -> bool:
        return bool(flattened) and self.entry_path(flattened).is_file()

    def get(self, flattened: str) -> Optional[str]:
        if not flattened:
            return None
        path = self.entry_path(flattened)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable metadata for {flattened}: {e}")
            return None
        if isinstance(data, dict) and isinstance(data.get("path"), str) and data["path"]:
            return data["path"]
        return None

    def put(self, flattened: str, real_path: str) -> bool:
        """Persist ``real_path`` for ``flattened``. Returns True only if written."""
        if not flattened or not real_path:
            return False
        project_dir = self.projects_dir / flattened
        if not project_dir.is_dir():
            return False
        path = project_dir / METADATA_FILENAME
        if path.exists():
            return False
        try:
            path.write_text(json.dumps({"path": real_path}, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to write metadata for {flattened}: {e}")
            return False
        logger.info(f"Cached project path {flattened} -> {real_path}")
        return True
