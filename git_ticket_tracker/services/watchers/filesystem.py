"""Detection by watching HEAD pointer files"""
import logging
import os
import threading
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.repository import RepositoryHandle
from git_ticket_tracker.services.watchers.base import DetectionStrategy, Disposable, SignalCallback


def _normalize(path) -> str:
    return os.path.normpath(os.fsdecode(path))


class PointerFileHandler(FileSystemEventHandler):
    """Route events for watched files in one directory to their repository.

    Every other file in the directory (index, ORIG_HEAD, HEAD.lock, ...) is
    ignored so a checkout produces a handful of signals, not hundreds.
    """

    def __init__(self, targets: Dict[str, str], on_signal: SignalCallback, logger: logging.Logger):
        """
        Args:
            targets: Normalized file path -> repository path
            on_signal: Called with the repository path to re-check
            logger: Logger to report through
        """
        super().__init__()
        self.targets = targets
        self.on_signal = on_signal
        self.logger = logger

    def _fire(self, path, kind: str) -> None:
        repo_path = self.targets.get(_normalize(path))
        if repo_path is None:
            return
        self.logger.debug(f"{kind} {path} -> recheck {repo_path}")
        try:
            self.on_signal(repo_path)
        except Exception as e:
            self.logger.error(f"Recheck for {repo_path} failed: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._fire(event.src_path, "Modified")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._fire(event.src_path, "Created")

    def on_moved(self, event: FileSystemEvent) -> None:
        # git writes HEAD.lock then renames it over HEAD
        if not event.is_directory:
            self._fire(event.dest_path, "Replaced")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        repo_path = self.targets.get(_normalize(event.src_path))
        if repo_path is not None:
            self.logger.debug(f"Deleted {event.src_path} in {repo_path} (not treated as a branch change)")


class FileSystemStrategy(DetectionStrategy):
    """Watch each repository's HEAD file (and HEAD reflog) with watchdog."""

    name = "filesystem"

    def __init__(
        self,
        observer_factory: Callable[[], Observer] = Observer,
        watch_reflog: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.observer_factory = observer_factory
        self.watch_reflog = watch_reflog
        self.logger = logger or get_logger(__name__)
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None
        self._watched: Dict[str, str] = {}
        self._failed: List[str] = []

    @property
    def watched_files(self) -> Dict[str, str]:
        """Watched file path -> repository path."""
        with self._lock:
            return dict(self._watched)

    def start(self, handles: Iterable[RepositoryHandle], on_signal: SignalCallback) -> Disposable:
        self.stop()

        by_directory: Dict[str, Dict[str, str]] = defaultdict(dict)
        for handle in handles:
            files = [handle.head_path]
            if self.watch_reflog and handle.reflog_path.parent.is_dir():
                files.append(handle.reflog_path)
            for path in files:
                by_directory[_normalize(path.parent)][_normalize(path)] = handle.key

        observer = self.observer_factory()
        watched: Dict[str, str] = {}
        failed: List[str] = []
        try:
            observer.start()
        except OSError as e:
            self.logger.warning(f"Filesystem watch unavailable: {e}")
            failed.extend(by_directory)
            by_directory = {}
            observer = None

        # A running observer starts each emitter inside schedule(), so an
        # unwatchable directory fails on its own schedule call
        for directory, targets in by_directory.items():
            if not os.path.isdir(directory):
                self.logger.warning(f"Cannot watch {directory}: directory does not exist")
                failed.append(directory)
                continue
            handler = PointerFileHandler(targets, on_signal, self.logger)
            try:
                observer.schedule(handler, directory, recursive=False)
            except OSError as e:
                # Vanished directory or inotify watch limit reached
                self.logger.warning(f"Cannot watch {directory}: {e}")
                failed.append(directory)
                continue
            watched.update(targets)

        if observer is not None and not watched:
            observer.stop()
            observer.join(timeout=5)
            observer = None
        with self._lock:
            self._observer = observer
            self._watched = watched
            self._failed = failed

        self.logger.info(f"Watching {len(watched)} pointer files, {len(failed)} directories unwatchable")
        return Disposable(self.stop)

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
            self._watched = {}
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5)
        self.logger.debug("Filesystem watch stopped")

    def describe(self) -> dict:
        with self._lock:
            return {
                "strategy": self.name,
                "running": self._observer is not None,
                "watched_files": sorted(self._watched),
                "failed_directories": list(self._failed),
            }
