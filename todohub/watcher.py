"""File watcher service using watchfiles.

Monitors provider directories and invokes a change callback once per
debounced batch of relevant file changes.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from watchfiles import Change, DefaultFilter, awatch

logger = logging.getLogger("todohub.watcher")

ChangeCallback = Callable[[], Any]

DEFAULT_SUFFIXES = (".json", ".jsonl")


class SuffixFilter(DefaultFilter):
    """Accept only files with one of ``suffixes``, on top of watchfiles' default ignores."""

    def __init__(self, suffixes: tuple[str, ...] = DEFAULT_SUFFIXES):
        self.suffixes = tuple(suffixes)
        super().__init__()

    def __call__(self, change: Change, path: str) -> bool:
        return path.endswith(self.suffixes) and super().__call__(change, path)


class FileWatcher:
    """Background file watcher that calls ``on_change`` when watched files change.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(
        self,
        paths: Iterable[Path],
        on_change: ChangeCallback,
        suffixes: tuple[str, ...] = DEFAULT_SUFFIXES,
        debounce_ms: int = 300,
    ):
        self.paths = list(paths)
        self.on_change = on_change
        self.watch_filter = SuffixFilter(suffixes)
        self.debounce_ms = debounce_ms
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self) -> None:
        """Start watching in a background task."""
        self.start_background()

    def start_background(self) -> bool:
        if self._running:
            logger.warning("File watcher already running")
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; file watching disabled")
            return False

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._watch_loop())
        return True

    def cancel(self) -> None:
        """Synchronous stop, suitable as an unsubscribe callable."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        """Stop the file watcher and wait for the task to finish."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self) -> None:
        watch_paths = [p for p in self.paths if p.exists()]

        if not watch_paths:
            logger.warning("No watch paths exist, watcher has nothing to monitor")
            self._running = False
            return

        logger.info(f"Watching {len(watch_paths)} directories: {[str(p) for p in watch_paths]}")

        try:
            async for changes in awatch(
                *watch_paths,
                watch_filter=self.watch_filter,
                stop_event=self._stop_event,
                debounce=self.debounce_ms,
            ):
                if not self._running:
                    break

                logger.info(f"Detected {len(changes)} file changes")
                await self._notify()
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False

    async def _notify(self) -> None:
        try:
            result = self.on_change()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in change callback: {e}")


def watch_paths(
    paths: Iterable[Path],
    on_change: ChangeCallback,
    suffixes: tuple[str, ...] = DEFAULT_SUFFIXES,
    debounce_ms: int = 300,
) -> Callable[[], None]:
    """Start a watcher on the running loop and return its unsubscribe callable."""
    watcher = FileWatcher(paths, on_change, suffixes=suffixes, debounce_ms=debounce_ms)
    if not watcher.start_background():
        return lambda: None
    return watcher.cancel
