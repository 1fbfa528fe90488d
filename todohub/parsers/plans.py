"""Parse plan-update events out of Codex / Gemini JSON-lines transcripts."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from todohub.date_utils import latest, to_epoch_ms
from todohub.errors import SourceReadError
from todohub.models import Todo, normalize_status

logger = logging.getLogger("todohub.parsers")

# Lines scanned for session identity and repository markers.
_HEADER_LINES = 10

_GEMINI_SLUG_PATTERNS = (
    re.compile(r'repo(?:sitory)?_url"\s*:\s*"([^"]+)'),
    re.compile(r'workspace"\s*:\s*"([^"]+)'),
    re.compile(r'project"\s*:\s*"([^"]+)'),
)


@dataclass
class PlanSession:
    session_id: str
    file_path: Path
    todos: list[Todo] = field(default_factory=list)
    slug: Optional[str] = None
    updated_at: Optional[float] = None


def _slug_from_url(url: str) -> str:
    tail = url.rstrip("/").split("/")[-1] or url
    return re.sub(r"\.git$", "", tail, flags=re.IGNORECASE)


def codex_slug(event: dict) -> Optional[str]:
    git = event.get("git")
    if not isinstance(git, dict) and isinstance(event.get("payload"), dict):
        git = event["payload"].get("git")
    if isinstance(git, dict) and isinstance(git.get("repository_url"), str):
        return _slug_from_url(git["repository_url"])
    return None


def gemini_slug(event: dict) -> Optional[str]:
    text = json.dumps(event).lower()
    for pattern in _GEMINI_SLUG_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            return _slug_from_url(match.group(1))
    return None


def _decode_arguments(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


def _plan_call(event: dict) -> Optional[dict]:
    """Return the function-call record of an event, unwrapping response items."""
    if event.get("type") == "function_call":
        return event
    payload = event.get("payload")
    if event.get("type") == "response_item" and isinstance(payload, dict) and payload.get("type") == "function_call":
        return payload
    return None


def parse_plan_session(
    path: Path,
    plan_names: frozenset[str],
    slug_finder: Callable[[dict], Optional[str]],
) -> PlanSession:
    """Parse a transcript; the last ``update_plan`` call is the current todo list."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceReadError(path, e) from e

    events: list[dict] = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except ValueError:
            continue
        if isinstance(event, dict):
            events.append(event)

    session_id = ""
    slug: Optional[str] = None
    for event in events[:_HEADER_LINES]:
        meta = event.get("payload") if isinstance(event.get("payload"), dict) else event
        if not session_id:
            raw_id = meta.get("id") or meta.get("session_id") or event.get("id") or event.get("session_id")
            if raw_id:
                session_id = str(raw_id)
        slug = slug_finder(event) or slug

    updated_at: Optional[float] = None
    last_plan: Optional[list] = None
    for event in events:
        updated_at = latest(updated_at, to_epoch_ms(event.get("timestamp")))
        call = _plan_call(event)
        if call is None or call.get("name") not in plan_names:
            continue
        args = _decode_arguments(call.get("arguments"))
        if isinstance(args, dict) and isinstance(args.get("plan"), list):
            last_plan = args["plan"]

    todos = [
        Todo(
            content=str(item.get("step") or ""),
            status=normalize_status(item.get("status") or "pending"),
            updatedAt=updated_at,
        )
        for item in (last_plan or [])
        if isinstance(item, dict)
    ]

    if not session_id:
        # rollout-<timestamp>-<uuid>.jsonl: fall back to the trailing token.
        session_id = path.stem.split("-")[-1]

    return PlanSession(session_id=session_id, file_path=path, todos=todos, slug=slug, updated_at=updated_at)
