"""Parse the Claude-style session files found in the projects and todos trees."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from todohub.date_utils import latest, to_epoch_ms
from todohub.errors import SourceParseError, SourceReadError
from todohub.models import Todo, normalize_status

logger = logging.getLogger("todohub.parsers")

LEGACY_SESSION_PATTERN = re.compile(r"^\.session_(.+)\.json$")
EVENT_LOG_PATTERN = re.compile(r"^(.+)\.jsonl$")
TODO_FILE_PATTERN = re.compile(r"^([0-9a-f-]+)-agent(?:-[0-9a-f-]+)?\.json$", re.IGNORECASE)
SIDECAR_SUFFIX = "-agent.meta.json"

_CONTENT_KEYS = ("content", "text", "title", "step")
_PROJECT_PATH_KEYS = ("projectPath", "project_path")


@dataclass
class ParsedSessionFile:
    session_id: str
    file_path: Path
    todos: list[Todo] = field(default_factory=list)
    project_path: Optional[str] = None
    updated_at: Optional[float] = None  # latest event timestamp, epoch ms


def read_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceReadError(path, e) from e
    try:
        return json.loads(raw)
    except ValueError as e:
        raise SourceParseError(path, e) from e


def _first_string(payload: dict, keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_todo_items(raw: Any) -> list[Todo]:
    """Normalize a raw todo array. Non-list input yields an empty list."""
    if not isinstance(raw, list):
        return []

    todos: list[Todo] = []
    for item in raw:
        if isinstance(item, str):
            todos.append(Todo(content=item))
            continue
        if not isinstance(item, dict):
            continue
        raw_id = item.get("id")
        todos.append(
            Todo(
                content=_first_string(item, _CONTENT_KEYS) or "",
                status=normalize_status(item.get("status")),
                id=str(raw_id) if raw_id is not None else None,
                createdAt=to_epoch_ms(item.get("createdAt", item.get("created"))),
                updatedAt=to_epoch_ms(item.get("updatedAt", item.get("updated"))),
                activeForm=item.get("activeForm") if isinstance(item.get("activeForm"), str) else None,
            )
        )
    return todos


def legacy_session_id(filename: str) -> Optional[str]:
    match = LEGACY_SESSION_PATTERN.match(filename)
    return match.group(1) if match else None


def todo_file_session_id(filename: str) -> Optional[str]:
    match = TODO_FILE_PATTERN.match(filename)
    return match.group(1) if match else None


def is_session_file(filename: str) -> bool:
    if filename.endswith(".jsonl"):
        return True
    return LEGACY_SESSION_PATTERN.match(filename) is not None


def parse_legacy_session(path: Path) -> ParsedSessionFile:
    """Parse ``.session_<id>.json``: an array of todos or an object with ``todos``."""
    data = read_json(path)
    fallback_id = legacy_session_id(path.name) or path.name

    if isinstance(data, list):
        return ParsedSessionFile(session_id=fallback_id, file_path=path, todos=parse_todo_items(data))

    if isinstance(data, dict):
        todos_raw = data.get("todos", [])
        if not isinstance(todos_raw, list):
            raise SourceParseError(path, ValueError("'todos' is not an array"))
        session_id = str(data.get("sessionId") or data.get("id") or "") or fallback_id
        return ParsedSessionFile(
            session_id=session_id,
            file_path=path,
            todos=parse_todo_items(todos_raw),
            project_path=_first_string(data, _PROJECT_PATH_KEYS),
        )

    raise SourceParseError(path, ValueError("expected a JSON array or object"))


def _todos_from_event(event: dict) -> Optional[list]:
    """The full todo list an event carries, or None.

    Only whole-list snapshots count: a ``todos`` array (on ``type: "todo"``
    events and others) or a ``TodoWrite`` tool call. An event describing a
    single todo item is not a snapshot and leaves the current list alone.
    """
    if isinstance(event.get("todos"), list):
        return event["todos"]

    # Claude transcripts carry TodoWrite tool calls inside assistant messages.
    message = event.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("content"), list):
        return None
    found = None
    for block in message["content"]:
        if not isinstance(block, dict) or block.get("type") != "tool_use":
            continue
        if block.get("name") != "TodoWrite":
            continue
        tool_input = block.get("input")
        if isinstance(tool_input, dict) and isinstance(tool_input.get("todos"), list):
            found = tool_input["todos"]
    return found


def parse_event_log(path: Path) -> ParsedSessionFile:
    """Parse a ``<uuid>.jsonl`` event log. The last todo list seen wins.

    Malformed lines are skipped; an unreadable file raises SourceReadError.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceReadError(path, e) from e

    match = EVENT_LOG_PATTERN.match(path.name)
    session_id = match.group(1) if match else path.stem
    current: Optional[list] = None
    updated_at: Optional[float] = None
    skipped = 0
    single_items = 0

    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except ValueError:
            skipped += 1
            continue
        if not isinstance(event, dict):
            continue

        updated_at = latest(updated_at, to_epoch_ms(event.get("timestamp")))
        todos = _todos_from_event(event)
        if todos is not None:
            current = todos
        elif event.get("type") == "todo":
            single_items += 1

    if skipped:
        logger.debug(f"Skipped {skipped} malformed lines in {path}")
    if single_items:
        logger.debug(f"Ignored {single_items} todo events without a todos array in {path}")

    return ParsedSessionFile(
        session_id=session_id,
        file_path=path,
        todos=parse_todo_items(current or []),
        updated_at=updated_at,
    )


def parse_session_file(path: Path) -> Optional[ParsedSessionFile]:
    """Route a projects-tree file to its parser. Unrecognized names yield None."""
    if path.suffix.lower() == ".jsonl":
        return parse_event_log(path)
    if LEGACY_SESSION_PATTERN.match(path.name):
        return parse_legacy_session(path)
    return None


def parse_todo_file(path: Path) -> ParsedSessionFile:
    """Parse ``<sessionId>-agent[-<suffix>].json`` from the todos tree."""
    session_id = todo_file_session_id(path.name)
    if session_id is None:
        raise SourceParseError(path, ValueError("not a todo session filename"))

    data = read_json(path)
    if isinstance(data, list):
        return ParsedSessionFile(session_id=session_id, file_path=path, todos=parse_todo_items(data))
    if isinstance(data, dict) and isinstance(data.get("todos", []), list):
        return ParsedSessionFile(
            session_id=session_id,
            file_path=path,
            todos=parse_todo_items(data.get("todos", [])),
            project_path=_first_string(data, _PROJECT_PATH_KEYS),
        )
    raise SourceParseError(path, ValueError("expected a todo array or {todos: [...]}"))


def read_sidecar_project_path(todos_dir: Path, session_id: str) -> Optional[str]:
    """Read ``<sessionId>-agent.meta.json`` -> ``projectPath`` if present."""
    sidecar = todos_dir / f"{session_id}{SIDECAR_SUFFIX}"
    if not sidecar.is_file():
        return None
    try:
        data = read_json(sidecar)
    except (SourceReadError, SourceParseError) as e:
        logger.warning(f"Ignoring sidecar {sidecar.name}: {e}")
        return None
    if isinstance(data, dict):
        return _first_string(data, _PROJECT_PATH_KEYS)
    return None
