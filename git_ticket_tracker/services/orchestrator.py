"""Automation driven by branch changes and commits.

Detector callbacks arrive on watcher threads. Everything that may touch the
network runs on a single worker thread, in submission order, so watchers never
wait on Jira or Productive. Every failure is turned into a Notification for the
UI; nothing raised here reaches the detector.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Optional

from git_ticket_tracker.constants import (
    AUTO_TIMER_STATE_KEY,
    BRANCH_SWITCH_WORKLOG,
    NOTIFY_ERROR,
    NOTIFY_INFO,
    NOTIFY_WARNING,
)
from git_ticket_tracker.exceptions import StateStoreError
from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.messages import (
    AutomationSettingsChanged,
    BranchChanged,
    BranchInitialized,
    Notification,
    TicketPopulated,
    TimeLogged,
    TimerStarted,
    UiMessage,
)
from git_ticket_tracker.models.repository import BranchChangeEvent, BranchSnapshot, CommitEvent
from git_ticket_tracker.models.ticket import AutoTimerState, LastBranchInfo, TicketInfo, TimeLogResult
from git_ticket_tracker.services.correlator import TicketCorrelator, extract_ticket_id
from git_ticket_tracker.services.state_store import WorkspaceStateStore
from git_ticket_tracker.services.time_logger import TimeLogger
from git_ticket_tracker.services.timer import WorkTimer

UiSink = Callable[[UiMessage], None]


class AutomationOrchestrator:
    """Correlate branches with tickets, run the timer and log time."""

    def __init__(
        self,
        correlator: TicketCorrelator,
        time_logger: TimeLogger,
        timer: WorkTimer,
        store: WorkspaceStateStore,
        ui_sink: Optional[UiSink] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.correlator = correlator
        self.time_logger = time_logger
        self.timer = timer
        self.store = store
        self.ui_sink = ui_sink
        self.logger = logger or get_logger(__name__)
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="automation")
        self._lock = threading.Lock()
        self._current_ticket: Optional[TicketInfo] = None
        self._current_branch: Optional[tuple] = None  # (repo_path, branch)
        self._disposed = False

        self.state = AutoTimerState.from_dict(store.get(AUTO_TIMER_STATE_KEY))
        self.logger.debug(
            f"Automation state loaded: auto_start={self.state.auto_start} auto_log={self.state.auto_log}"
        )

    # Queries

    @property
    def current_ticket(self) -> Optional[TicketInfo]:
        return self._current_ticket

    def get_state(self) -> AutoTimerState:
        with self._lock:
            return replace(self.state)

    def current_branch_info(self) -> Optional[dict]:
        """The branch and ticket most recently seen, or None before any."""
        with self._lock:
            if self._current_branch is None:
                return None
            repo_path, branch = self._current_branch
            return {"repo_path": repo_path, "branch": branch, "ticket_info": self._current_ticket}

    # Detector listeners

    def on_branch_change(self, event: BranchChangeEvent) -> Optional[Future]:
        return self._submit(self._handle_branch_change, event)

    def on_initialize(self, snapshot: BranchSnapshot) -> Optional[Future]:
        return self._submit(self._handle_initialize, snapshot)

    def on_commit(self, event: CommitEvent) -> Optional[Future]:
        return self._submit(self._handle_commit, event)

    # Commands

    def toggle_auto_start(self) -> bool:
        with self._lock:
            self.state.auto_start = not self.state.auto_start
            value = self.state.auto_start
        self._persist()
        self._publish_settings()
        self.logger.info(f"Auto-start {'enabled' if value else 'disabled'}")
        return value

    def toggle_auto_log(self) -> bool:
        with self._lock:
            self.state.auto_log = not self.state.auto_log
            value = self.state.auto_log
        self._persist()
        self._publish_settings()
        self.logger.info(f"Auto-log {'enabled' if value else 'disabled'}")
        return value

    def commit_log(self, message: str, minutes: Optional[int] = None) -> Optional[Future]:
        """Log time for the tracked ticket with message as description.

        Args:
            message: Worklog description
            minutes: Time to log; None uses the timer's elapsed time
        """
        return self._submit(self._log_time, message, minutes)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every previously submitted work item has run."""
        # The single worker runs items in order, so a no-op marks the end of the queue
        marker = self._submit(lambda: None)
        if marker is not None:
            marker.result(timeout)

    def dispose(self) -> None:
        """Stop accepting work and cancel anything still queued."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._executor.shutdown(wait=False, cancel_futures=True)

    # Work items (run on the worker thread)

    def _handle_branch_change(self, event: BranchChangeEvent) -> Optional[TicketInfo]:
        ticket = None
        if self.state.auto_start:
            ticket = self.correlator.correlate(event.new_branch)

        with self._lock:
            self._current_branch = (event.repo_path, event.new_branch)
            self._current_ticket = ticket

        self._publish(BranchChanged(
            repo_path=event.repo_path,
            previous_branch=event.previous_branch,
            new_branch=event.new_branch,
            ticket=ticket,
        ))

        self._settle_running_timer(ticket, event.new_branch)
        if ticket is not None:
            self._publish(TicketPopulated(ticket))
            self._start_timer(ticket)

        # Without a lookup only the branch name tells us whether there is a ticket
        remembered_id = ticket.ticket_id if ticket else (
            None if self.state.auto_start else extract_ticket_id(event.new_branch)
        )
        with self._lock:
            self.state.last_branch_info = LastBranchInfo(
                branch_name=event.new_branch,
                repo_path=event.repo_path,
                ticket_id=remembered_id,
            )
        self._persist()
        return ticket

    def _handle_initialize(self, snapshot: BranchSnapshot) -> Optional[TicketInfo]:
        last = self.state.last_branch_info
        same_repo = last is not None and last.repo_path == snapshot.repo_path
        if same_repo and last.branch_name == snapshot.branch and last.ticket_id is None:
            self.logger.debug(f"Branch '{snapshot.branch}' is known to have no ticket, skipping lookup")
            ticket = None
        else:
            ticket = self.correlator.correlate(snapshot.branch)

        with self._lock:
            self._current_branch = (snapshot.repo_path, snapshot.branch)
            self._current_ticket = ticket

        self._publish(BranchInitialized(repo_path=snapshot.repo_path, branch=snapshot.branch, ticket=ticket))
        if ticket is not None:
            self._publish(TicketPopulated(ticket))

        if last is None or same_repo:
            with self._lock:
                self.state.last_branch_info = LastBranchInfo(
                    branch_name=snapshot.branch,
                    repo_path=snapshot.repo_path,
                    ticket_id=ticket.ticket_id if ticket else None,
                )
            self._persist()
        return ticket

    def _handle_commit(self, event: CommitEvent) -> Optional[TimeLogResult]:
        if not self.state.auto_log:
            self.logger.debug("Auto-log disabled, skipping commit")
            return None
        if not self.timer.is_running:
            self.logger.debug("Timer not running, skipping commit log")
            return None

        ticket = self._current_ticket
        if ticket is None or self._current_branch != (event.repo_path, event.branch):
            ticket = self.correlator.correlate(event.branch)
        if ticket is None:
            self.logger.info(f"No ticket for branch '{event.branch}', commit not logged")
            return None
        if ticket.ticket_id != self.timer.current_issue:
            self.logger.info(
                f"Commit on '{event.branch}' is for {ticket.ticket_id} but the timer runs for "
                f"{self.timer.current_issue}, commit not logged"
            )
            return None

        return self._log_for(ticket.ticket_id, ticket.project_key, event.message, None, event.message)

    def _log_time(self, message: str, minutes: Optional[int]) -> Optional[TimeLogResult]:
        ticket = self._current_ticket
        ticket_id = ticket.ticket_id if ticket else self.timer.current_issue
        # Timer time always belongs to the ticket it was measured for
        if minutes is None and self.timer.current_issue is not None:
            ticket_id = self.timer.current_issue
        if ticket_id is None:
            self._publish(Notification("No ticket is being tracked; switch to a ticket branch first",
                                       NOTIFY_WARNING))
            return None
        return self._log_for(ticket_id, self._project_key(ticket_id), message, minutes, None)

    def _settle_running_timer(self, ticket: Optional[TicketInfo], branch: str) -> None:
        """Close out a timer that runs for a ticket other than the new branch's."""
        running_issue = self.timer.current_issue
        if not self.timer.is_running or (ticket is not None and ticket.ticket_id == running_issue):
            return

        if not self.state.auto_log:
            minutes = self.timer.elapsed_minutes()
            self.timer.reset()
            self.logger.info(f"Switched to '{branch}', discarded {minutes}m tracked for {running_issue}")
            self._publish(Notification(f"Timer for {running_issue} stopped without logging {minutes}m",
                                       NOTIFY_WARNING))
            return

        self.logger.info(f"Switched to '{branch}', logging time tracked for {running_issue}")
        self._log_for(running_issue, self._project_key(running_issue), BRANCH_SWITCH_WORKLOG, None, None)

    def _log_for(self, ticket_id: str, project_key: Optional[str], description: str,
                 minutes: Optional[int], commit_message: Optional[str]) -> TimeLogResult:
        if minutes is None:
            self.timer.stop()
            minutes = self.timer.elapsed_minutes()

        result = self.time_logger.log_time(ticket_id, minutes, description, project_key)
        self._publish(TimeLogged(result=result, commit_message=commit_message))

        if result.primary_ok:
            self.timer.reset()
            level = NOTIFY_WARNING if result.partial else NOTIFY_INFO
            if self.state.auto_start and self._current_ticket and self._current_ticket.ticket_id == ticket_id:
                self._start_timer(self._current_ticket)
        else:
            # Elapsed time is kept so the log can be retried
            level = NOTIFY_ERROR
        self._publish(Notification(result.summary(), level))
        return result

    # Helpers

    def _project_key(self, ticket_id: str) -> str:
        ticket = self._current_ticket
        if ticket is not None and ticket.ticket_id == ticket_id:
            return ticket.project_key
        return ticket_id.rsplit("-", 1)[0]

    def _start_timer(self, ticket: TicketInfo) -> None:
        if self.timer.is_running:
            self.logger.info(f"Timer already running for {self.timer.current_issue}, not restarting")
            return
        try:
            self.timer.start(ticket.ticket_id)
        except Exception as e:
            self.timer.reset()
            self.logger.error(f"Could not start timer for {ticket.ticket_id}: {e}")
            self._publish(Notification(f"Could not start timer: {e}", NOTIFY_ERROR))
            return
        self._publish(TimerStarted(ticket.ticket_id))

    def _submit(self, fn, *args) -> Optional[Future]:
        with self._lock:
            if self._disposed:
                self.logger.debug(f"Ignoring {fn.__name__} after dispose")
                return None

        def run():
            try:
                return fn(*args)
            except Exception as e:
                self.logger.error(f"Automation step {fn.__name__} failed: {e}", exc_info=True)
                self._publish(Notification(f"Automation failed: {e}", NOTIFY_ERROR))
                return None

        try:
            return self._executor.submit(run)
        except RuntimeError:
            # Executor shut down between the check and the submit
            return None

    def _persist(self) -> None:
        with self._lock:
            data = self.state.to_dict()
        try:
            self.store.set(AUTO_TIMER_STATE_KEY, data)
        except StateStoreError as e:
            self.logger.warning(f"Could not persist automation state: {e}")
            self._publish(Notification(f"Could not save automation state: {e}", NOTIFY_WARNING))

    def _publish_settings(self) -> None:
        state = self.get_state()
        self._publish(AutomationSettingsChanged(auto_start=state.auto_start, auto_log=state.auto_log))

    def _publish(self, message: UiMessage) -> None:
        if self.ui_sink is None:
            return
        try:
            self.ui_sink(message)
        except Exception as e:
            self.logger.error(f"UI sink failed on {type(message).__name__}: {e}", exc_info=True)
