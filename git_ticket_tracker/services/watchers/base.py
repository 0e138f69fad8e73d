"""Shared pieces of the detection strategies"""
import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

from git_ticket_tracker.models.repository import RepositoryHandle

# Receives the repository path whose branch should be re-checked
SignalCallback = Callable[[str], None]


class Disposable:
    """Release handle for a subscription or watch.

    dispose() runs the release callback at most once, however often it is
    called and from whichever thread.
    """

    def __init__(self, on_dispose: Optional[Callable[[], None]] = None):
        self._on_dispose = on_dispose
        self._lock = threading.Lock()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            callback, self._on_dispose = self._on_dispose, None
        if callback is not None:
            callback()


class DetectionStrategy(ABC):
    """A producer of branch re-check signals.

    Several strategies may watch the same repositories at once; duplicate
    signals are resolved by the detector.
    """

    name = "strategy"

    @abstractmethod
    def start(self, handles: Iterable[RepositoryHandle], on_signal: SignalCallback) -> Disposable:
        """Begin watching the given repositories.

        Returns:
            Disposable that stops this strategy
        """

    @abstractmethod
    def stop(self) -> None:
        """Release every watch. Safe to call repeatedly."""

    @abstractmethod
    def describe(self) -> dict:
        """Current watch state, for diagnostics."""
