"""
Filesystem watcher: turns watchdog events into reconcile / delete events.
"""

import logging
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from typehole.config import log_event
from typehole.services.queue_processor import FILE_CHANGED, FILE_DELETED, EventQueue
from typehole.services.sources import is_source_file


class SourceEventHandler(FileSystemEventHandler):
    """Forwards changes to supported source files under `root`."""

    def __init__(self, root: Path, events: EventQueue):
        super().__init__()
        self.root = Path(root).resolve()
        self.events = events

    def _file_name(self, path: str) -> Optional[str]:
        try:
            relative = Path(path).resolve().relative_to(self.root)
        except ValueError:
            return None
        if not is_source_file(relative):
            return None
        return relative.as_posix()

    def _changed(self, path: str):
        file_name = self._file_name(path)
        if file_name is not None:
            self.events.enqueue(FILE_CHANGED, file=file_name)

    def _deleted(self, path: str):
        file_name = self._file_name(path)
        if file_name is not None:
            self.events.enqueue(FILE_DELETED, file=file_name)

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self._changed(event.src_path)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._changed(event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory:
            self._deleted(event.src_path)

    def on_moved(self, event: FileSystemEvent):
        if not event.is_directory:
            self._deleted(event.src_path)
            self._changed(event.dest_path)


def start_watcher(root: Path, events: EventQueue) -> Observer:
    observer = Observer()
    observer.schedule(SourceEventHandler(root, events), str(root), recursive=True)
    observer.start()
    log_event(logging.INFO, "watcher_started", root=str(root))
    return observer
