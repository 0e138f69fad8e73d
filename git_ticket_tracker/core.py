"""Core functionality for git-ticket-tracker"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from git_ticket_tracker.config import Config
from git_ticket_tracker.exceptions import BranchReadFailure
from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.messages import UiMessage
from git_ticket_tracker.models.repository import BranchChangeEvent, RepositoryHandle
from git_ticket_tracker.services.correlator import TicketCorrelator
from git_ticket_tracker.services.detector import BranchChangeDetector, BranchChangeListener
from git_ticket_tracker.services.discovery import RepositoryDiscovery
from git_ticket_tracker.services.git.branch_reader import create_branch_reader
from git_ticket_tracker.services.jira_service import JiraService
from git_ticket_tracker.services.orchestrator import AutomationOrchestrator
from git_ticket_tracker.services.productive_service import ProductiveService
from git_ticket_tracker.services.state_store import WorkspaceStateStore
from git_ticket_tracker.services.time_logger import TimeLogger, parse_duration
from git_ticket_tracker.services.timer import WorkTimer
from git_ticket_tracker.services.watchers.base import DetectionStrategy, Disposable
from git_ticket_tracker.services.watchers.filesystem import FileSystemStrategy
from git_ticket_tracker.services.watchers.native import IntegrationProvider, NativeApiStrategy

logger = get_logger(__name__)


class TicketTracker:
    """Wire discovery, detection and automation together for one workspace."""

    def __init__(
        self,
        config: Union[Config, dict],
        integration_provider: Optional[IntegrationProvider] = None,
        jira: Optional[JiraService] = None,
        productive: Optional[ProductiveService] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the tracker.

        Args:
            config: Configuration dict or Config object
            integration_provider: Host Git integration, if the host has one
            jira: Jira client override (default: built from config)
            productive: Productive client override (default: built from config)
            executor: Executor for automation work (default: one worker thread)
        """
        # Convert dict to Config if needed
        if isinstance(config, dict):
            self.config = Config.from_dict(config)
        else:
            self.config = config

        self._ui_listeners: List[Callable[[UiMessage], None]] = []
        self._ui_lock = threading.Lock()

        self.discovery = RepositoryDiscovery(self.config.discovery_depth)
        self.detector = BranchChangeDetector(create_branch_reader(self.config.branch_reader))

        self.jira = jira if jira is not None else JiraService.from_config(self.config)
        self.productive = productive if productive is not None else ProductiveService.from_config(self.config)
        if self.jira is None:
            logger.warning("Jira is not configured; branches will not be correlated with tickets")

        self.store = WorkspaceStateStore(self.config.workspace_roots, self.config.state_dir)
        self.correlator = TicketCorrelator(
            self.jira,
            search_fallback=self.config.search_fallback,
            min_overlap=self.config.search_min_overlap,
            notify=self._publish,
        )
        self.timer = WorkTimer()
        self.time_logger = TimeLogger(self.jira, self.productive)
        self.orchestrator = AutomationOrchestrator(
            self.correlator,
            self.time_logger,
            self.timer,
            self.store,
            ui_sink=self._publish,
            executor=executor,
        )

        self.strategies: List[DetectionStrategy] = []
        if self.config.use_native_api:
            self.strategies.append(NativeApiStrategy(
                integration_provider,
                retries=self.config.native_activation_retries,
                delay=self.config.native_activation_delay,
            ))
        if self.config.use_filesystem_watch:
            self.strategies.append(FileSystemStrategy())

        self._subscriptions = [
            self.detector.on_initialize(self.orchestrator.on_initialize),
            self.detector.on_branch_change(self.orchestrator.on_branch_change),
            self.detector.on_commit(self.orchestrator.on_commit),
        ]
        self._watches: List[Disposable] = []
        self._handles: FrozenSet[RepositoryHandle] = frozenset()
        self._seeded = False
        self._disposed = False

    def __enter__(self) -> "TicketTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # Subscriptions

    def add_ui_listener(self, listener: Callable[[UiMessage], None]) -> Disposable:
        """Receive every UiMessage produced by the automation layer."""
        with self._ui_lock:
            self._ui_listeners.append(listener)

        def remove():
            with self._ui_lock:
                if listener in self._ui_listeners:
                    self._ui_listeners.remove(listener)
        return Disposable(remove)

    def on_branch_change(self, listener: BranchChangeListener) -> Disposable:
        """Receive every confirmed branch change."""
        return self.detector.on_branch_change(listener)

    def _publish(self, message: UiMessage) -> None:
        with self._ui_lock:
            listeners = list(self._ui_listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception as e:
                logger.error(f"UI listener failed on {type(message).__name__}: {e}", exc_info=True)

    # Detection lifecycle

    @property
    def handles(self) -> FrozenSet[RepositoryHandle]:
        return self._handles

    def initialize(self, watch: bool = True) -> FrozenSet[RepositoryHandle]:
        """Discover repositories and (re)start detection.

        On the first call the remembered branch is seeded so an unchanged
        branch after a restart is not reported as a change. Later calls act as
        a refresh: watchers are replaced wholesale and only newly found
        repositories get the initialize notification.

        Args:
            watch: Start the detection strategies; False reads branches once
        """
        if self._disposed:
            raise RuntimeError("TicketTracker has been disposed")

        handles = self.discovery.discover(self.config.workspace_roots)
        self._stop_watches()
        known = set(self.detector.states())
        self.detector.track(handles)
        self._handles = handles

        if not self._seeded:
            self._seed_from_state()
            self._seeded = True

        if watch:
            for strategy in self.strategies:
                self._watches.append(strategy.start(handles, self.detector.recheck))

        for handle in sorted(handles, key=lambda h: h.key):
            if handle.key in known:
                self.detector.recheck(handle.key)
            else:
                self.detector.prime(handle.key)

        if not handles:
            logger.warning(f"No Git repositories found under {', '.join(self.config.workspace_roots)}")
        return handles

    refresh = initialize

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until queued automation work has finished."""
        self.orchestrator.flush(timeout)

    def _seed_from_state(self) -> None:
        last = self.orchestrator.get_state().last_branch_info
        if last is None:
            return
        if any(handle.key == last.repo_path for handle in self._handles):
            self.detector.seed(last.repo_path, last.branch_name)
        else:
            logger.debug(f"Remembered repository {last.repo_path} is no longer in the workspace")

    def trigger_recheck(self, repo_path: Optional[str] = None) -> List[BranchChangeEvent]:
        """Re-check one repository, or all of them, right now."""
        keys = [repo_path] if repo_path else sorted(handle.key for handle in self._handles)
        events = []
        for key in keys:
            event = self.detector.recheck(key)
            if event is not None:
                events.append(event)
        return events

    def _stop_watches(self) -> None:
        for watch in self._watches:
            watch.dispose()
        self._watches = []

    # Queries

    def get_current_branch_info(self) -> Optional[Dict]:
        """The current branch and its ticket, if any.

        Returns:
            {"branch": str, "ticket_info": TicketInfo or None}, or None before
            any branch has been read
        """
        info = self.orchestrator.current_branch_info()
        if info is not None:
            branch = self.detector.current_branch(info["repo_path"]) or info["branch"]
            ticket = info["ticket_info"] if branch == info["branch"] else None
            return {"branch": branch, "ticket_info": ticket}

        states = self.detector.states()
        if not states:
            return None
        return {"branch": states[min(states)].branch_name, "ticket_info": None}

    # Commands

    def toggle_auto_start(self) -> bool:
        return self.orchestrator.toggle_auto_start()

    def toggle_auto_log(self) -> bool:
        return self.orchestrator.toggle_auto_log()

    def commit_log(self, message: str, time_spent: Optional[Union[str, int]] = None) -> Optional[Future]:
        """Log time for the tracked ticket.

        Args:
            message: Worklog description
            time_spent: Duration such as "1h 30m" or minutes; None uses the timer

        Raises:
            ValueError: time_spent cannot be parsed
        """
        minutes = parse_duration(time_spent) if time_spent is not None else None
        return self.orchestrator.commit_log(message, minutes)

    # Diagnostics

    def debug_watchers(self) -> Dict:
        """Current watcher, detector and automation state."""
        state = self.orchestrator.get_state()
        return {
            "repositories": sorted(handle.key for handle in self._handles),
            "branch_states": {
                key: {
                    "branch": s.branch_name,
                    "commit": s.commit_hash,
                    "last_observed_at": s.last_observed_at.isoformat(),
                }
                for key, s in sorted(self.detector.states().items())
            },
            "strategies": [strategy.describe() for strategy in self.strategies],
            "automation": state.to_dict(),
            "timer": {
                "running": self.timer.is_running,
                "issue": self.timer.current_issue,
                "elapsed_seconds": round(self.timer.elapsed_seconds()),
            },
        }

    def debug_head_files(self) -> List[Dict]:
        """Raw HEAD pointer contents and the branch read from each repository."""
        rows = []
        for handle in sorted(self._handles, key=lambda h: h.key):
            row = {"repo_path": handle.key, "head_path": str(handle.head_path)}
            try:
                row["content"] = handle.head_path.read_text(encoding="utf-8", errors="replace").strip()
            except OSError as e:
                row["content"] = None
                row["error"] = str(e)
            try:
                row["branch"] = self.detector.reader.read_branch(handle)
            except BranchReadFailure as e:
                row["branch"] = None
                row.setdefault("error", str(e))
            row["known_branch"] = self.detector.current_branch(handle.key)
            rows.append(row)
        return rows

    def dispose(self) -> None:
        """Stop watchers and background work. Safe to call repeatedly."""
        if self._disposed:
            return
        self._disposed = True
        self._stop_watches()
        for strategy in self.strategies:
            strategy.stop()
        for subscription in self._subscriptions:
            subscription.dispose()
        self.detector.dispose()
        self.orchestrator.dispose()
        for client in (self.jira, self.productive):
            if client is not None:
                client.close()
        logger.debug("TicketTracker disposed")
