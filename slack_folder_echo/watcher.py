from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterator

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from .errors import FileSystemError, WatcherError

POLL_INTERVAL = 2.0
LIVENESS_CHECK_INTERVAL = 1.0

_FOLDER_GONE = object()


def make_observer(force_polling: bool = False) -> BaseObserver:
    """Pick the directory observer once: native events, else polling.

    watchdog aliases ``Observer`` to ``PollingObserver`` on platforms without
    a native backend (inotify, FSEvents, kqueue, ReadDirectoryChangesW).
    """
    if force_polling or Observer is PollingObserver:
        return PollingObserver(timeout=POLL_INTERVAL)
    return Observer()


class _CreatedFileHandler(FileSystemEventHandler):
    def __init__(
        self, folder: Path, loop: asyncio.AbstractEventLoop, events: asyncio.Queue
    ) -> None:
        self.folder = folder
        self.loop = loop
        self.events = events

    def _emit(self, item: object) -> None:
        self.loop.call_soon_threadsafe(self.events.put_nowait, item)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(os.fsdecode(event.src_path))
        logging.debug("Watcher saw new entry: %s", path)
        if path.is_file():
            self._emit(path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if Path(os.fsdecode(event.src_path)) == self.folder:
            self._emit(_FOLDER_GONE)


async def watch(
    folder: Path, *, force_polling: bool = False, existing: bool = False
) -> AsyncIterator[Path]:
    """Yield paths of regular files created directly inside ``folder``.

    With ``existing`` the files already present once the observer is running
    are yielded first, so files left behind by a previous run are found again.

    The sequence never ends on its own; it raises WatcherError when the
    observer cannot be started, dies, or the folder itself is removed.
    """
    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()
    observer = make_observer(force_polling)
    observer.schedule(
        _CreatedFileHandler(folder, loop, events), str(folder), recursive=False
    )
    try:
        observer.start()
    except OSError as exc:
        observer.stop()
        raise WatcherError(f"Cannot watch {folder}: {exc}") from exc

    logging.info("Watching folder %s (%s)", folder, type(observer).__name__)
    try:
        if existing:
            for path in scan_once(folder):
                yield path
        while True:
            try:
                item = await asyncio.wait_for(events.get(), LIVENESS_CHECK_INTERVAL)
            except asyncio.TimeoutError:
                if not observer.is_alive():
                    raise WatcherError(f"Observer for {folder} stopped unexpectedly")
                continue
            if item is _FOLDER_GONE:
                raise WatcherError(f"Watched folder removed: {folder}")
            yield item
    finally:
        observer.stop()
        await asyncio.to_thread(observer.join)


def scan_once(folder: Path) -> list[Path]:
    """List the regular files currently in ``folder`` (not recursive)."""
    try:
        entries = sorted(folder.iterdir())
    except OSError as exc:
        raise FileSystemError(f"Cannot list {folder}: {exc}") from exc
    return [entry for entry in entries if entry.is_file()]
