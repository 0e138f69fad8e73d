"""Branch change detection.

The detector turns raw "something changed in repo X" signals into branch
change events. Every signal triggers a fresh read of the branch, but only a
real difference from the last known branch is emitted. Reads, the state update
and listener dispatch for one repository all happen under that repository's
lock, so two strategies firing at once produce one event, delivered in
transition order.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from git_ticket_tracker.exceptions import BranchReadFailure
from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.repository import (
    BranchChangeEvent,
    BranchSnapshot,
    BranchState,
    CommitEvent,
    CommitInfo,
    RepositoryHandle,
)
from git_ticket_tracker.services.git.branch_reader import BranchReader
from git_ticket_tracker.services.git.commits import read_head_commit
from git_ticket_tracker.services.watchers.base import Disposable

BranchChangeListener = Callable[[BranchChangeEvent], None]
InitializeListener = Callable[[BranchSnapshot], None]
CommitListener = Callable[[CommitEvent], None]


class BranchChangeDetector:
    """Keep the last known branch per repository and emit real changes."""

    def __init__(
        self,
        reader: BranchReader,
        commit_reader: Optional[Callable[[RepositoryHandle], Optional[CommitInfo]]] = read_head_commit,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the detector.

        Args:
            reader: Branch reader used for every recheck
            commit_reader: HEAD commit lookup for commit detection, None to disable
            clock: Timestamp source for states and events
            logger: Logger to report through
        """
        self.reader = reader
        self.commit_reader = commit_reader
        self.clock = clock
        self.logger = logger or get_logger(__name__)

        self._handles: Dict[str, RepositoryHandle] = {}
        self._states: Dict[str, BranchState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._change_listeners: List[BranchChangeListener] = []
        self._initialize_listeners: List[InitializeListener] = []
        self._commit_listeners: List[CommitListener] = []
        self._disposed = False

    # Listener registration

    def on_branch_change(self, listener: BranchChangeListener) -> Disposable:
        """Register a listener for confirmed branch transitions."""
        return self._register(self._change_listeners, listener)

    def on_initialize(self, listener: InitializeListener) -> Disposable:
        """Register a listener for the startup branch notification."""
        return self._register(self._initialize_listeners, listener)

    def on_commit(self, listener: CommitListener) -> Disposable:
        """Register a listener for new commits on an unchanged branch."""
        return self._register(self._commit_listeners, listener)

    def _register(self, listeners: list, listener) -> Disposable:
        with self._guard:
            listeners.append(listener)

        def remove():
            with self._guard:
                if listener in listeners:
                    listeners.remove(listener)
        return Disposable(remove)

    # Repository set

    def track(self, handles: Iterable[RepositoryHandle]) -> None:
        """Replace the tracked repository set.

        State for repositories that are no longer present is dropped; state
        for repositories that remain is kept.
        """
        new_handles = {handle.key: handle for handle in handles}
        with self._guard:
            dropped = set(self._handles) - set(new_handles)
            self._handles = new_handles
            for key in dropped:
                self._states.pop(key, None)
                self._locks.pop(key, None)
        if dropped:
            self.logger.debug(f"Dropped state for {len(dropped)} repositories")

    @property
    def handles(self) -> List[RepositoryHandle]:
        with self._guard:
            return list(self._handles.values())

    def seed(self, repo_path: str, branch_name: str) -> None:
        """Set a remembered branch as the prior state without emitting."""
        with self._lock_for(repo_path):
            if repo_path in self._states:
                return
            self._states[repo_path] = BranchState(
                repo_path=repo_path,
                branch_name=branch_name,
                last_observed_at=self.clock(),
            )
        self.logger.debug(f"Seeded {repo_path} with remembered branch '{branch_name}'")

    def states(self) -> Dict[str, BranchState]:
        """Snapshot of the per-repository state."""
        with self._guard:
            return {
                key: BranchState(s.repo_path, s.branch_name, s.last_observed_at, s.commit_hash)
                for key, s in self._states.items()
            }

    def current_branch(self, repo_path: str) -> Optional[str]:
        with self._guard:
            state = self._states.get(repo_path)
        return state.branch_name if state else None

    # Signals

    def prime(self, repo_path: str) -> Optional[BranchChangeEvent]:
        """Read the branch at startup and push it to listeners.

        With no prior state, or a remembered branch equal to the current one,
        the initialize notification fires. A remembered branch that differs
        from the current one is a real change made while we were not running,
        so a change event fires instead.
        """
        handle = self._handle(repo_path)
        if handle is None:
            return None

        with self._lock_for(repo_path):
            branch = self._read(handle)
            if branch is None:
                return None
            commit = self._read_commit(handle)
            now = self.clock()
            prior = self._states.get(repo_path)

            if prior is not None and prior.branch_name != branch:
                return self._emit_change(prior, branch, commit, now)

            self._states[repo_path] = BranchState(
                repo_path=repo_path,
                branch_name=branch,
                last_observed_at=now,
                commit_hash=commit.hexsha if commit else None,
            )
            snapshot = BranchSnapshot(repo_path=repo_path, branch=branch, timestamp=now)
            self._dispatch(self._initialize_listeners, snapshot, "initialize")
            return None

    def recheck(self, repo_path: str) -> Optional[BranchChangeEvent]:
        """Re-read the branch and emit an event if it changed.

        Returns:
            The emitted event, or None when nothing changed
        """
        handle = self._handle(repo_path)
        if handle is None:
            self.logger.debug(f"Ignoring signal for untracked repository {repo_path}")
            return None

        with self._lock_for(repo_path):
            branch = self._read(handle)
            if branch is None:
                return None
            commit = self._read_commit(handle)
            now = self.clock()
            prior = self._states.get(repo_path)

            if prior is None:
                self._states[repo_path] = BranchState(
                    repo_path=repo_path,
                    branch_name=branch,
                    last_observed_at=now,
                    commit_hash=commit.hexsha if commit else None,
                )
                self.logger.debug(f"Baseline for {repo_path}: '{branch}'")
                return None

            if prior.branch_name != branch:
                return self._emit_change(prior, branch, commit, now)

            prior.last_observed_at = now
            if commit is None or commit.hexsha == prior.commit_hash:
                return None

            previous_commit = prior.commit_hash
            prior.commit_hash = commit.hexsha
            # No known commit yet (seeded or unborn branch): take it as baseline
            if previous_commit is None:
                return None

            event = CommitEvent(
                repo_path=repo_path,
                branch=branch,
                commit_hash=commit.hexsha,
                message=commit.message,
                timestamp=now,
            )
            self.logger.info(f"New commit {commit.short_sha} on '{branch}' in {repo_path}")
            self._dispatch(self._commit_listeners, event, "commit")
            return None

    def dispose(self) -> None:
        """Drop all listeners; later signals are ignored."""
        with self._guard:
            self._disposed = True
            self._change_listeners.clear()
            self._initialize_listeners.clear()
            self._commit_listeners.clear()

    # Internals

    def _emit_change(self, prior: BranchState, branch: str, commit: Optional[CommitInfo],
                     now: datetime) -> BranchChangeEvent:
        event = BranchChangeEvent(
            repo_path=prior.repo_path,
            previous_branch=prior.branch_name,
            new_branch=branch,
            timestamp=now,
        )
        prior.branch_name = branch
        prior.last_observed_at = now
        prior.commit_hash = commit.hexsha if commit else None

        self.logger.info(f"Branch changed in {event.repo_path}: '{event.previous_branch}' -> '{event.new_branch}'")
        self._dispatch(self._change_listeners, event, "branch change")
        return event

    def _dispatch(self, listeners: list, payload, kind: str) -> None:
        with self._guard:
            if self._disposed:
                return
            targets = list(listeners)
        for listener in targets:
            try:
                listener(payload)
            except Exception as e:
                self.logger.error(f"{kind.capitalize()} listener {listener!r} failed: {e}", exc_info=True)

    def _handle(self, repo_path: str) -> Optional[RepositoryHandle]:
        with self._guard:
            if self._disposed:
                return None
            return self._handles.get(repo_path)

    def _lock_for(self, repo_path: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(repo_path)
            if lock is None:
                lock = self._locks[repo_path] = threading.Lock()
            return lock

    def _read(self, handle: RepositoryHandle) -> Optional[str]:
        try:
            return self.reader.read_branch(handle)
        except BranchReadFailure as e:
            self.logger.debug(f"No signal this round for {handle}: {e}")
            return None

    def _read_commit(self, handle: RepositoryHandle) -> Optional[CommitInfo]:
        if self.commit_reader is None:
            return None
        return self.commit_reader(handle)
