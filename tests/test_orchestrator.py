"""Tests for AutomationOrchestrator"""
import threading
from datetime import datetime
from unittest.mock import Mock, call

import pytest

from git_ticket_tracker.constants import (
    AUTO_TIMER_STATE_KEY,
    BRANCH_SWITCH_WORKLOG,
    NOTIFY_ERROR,
    NOTIFY_INFO,
    NOTIFY_WARNING,
)
from git_ticket_tracker.exceptions import StateStoreError
from git_ticket_tracker.models.messages import (
    AutomationSettingsChanged,
    BranchChanged,
    BranchInitialized,
    Notification,
    TicketPopulated,
    TimeLogged,
    TimerStarted,
)
from git_ticket_tracker.models.repository import BranchChangeEvent, BranchSnapshot, CommitEvent
from git_ticket_tracker.models.ticket import AutoTimerState, LastBranchInfo, TicketInfo, TimeLogResult
from git_ticket_tracker.services.correlator import extract_ticket_id
from git_ticket_tracker.services.orchestrator import AutomationOrchestrator
from git_ticket_tracker.services.state_store import WorkspaceStateStore
from git_ticket_tracker.services.timer import WorkTimer

REPO = "/ws/alpha"
OTHER_REPO = "/ws/beta"
NOW = datetime(2024, 5, 1, 9, 0, 0)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def correlate(branch):
    """Correlate every branch holding a ticket id, like a Jira where all tickets exist."""
    ticket_id = extract_ticket_id(branch)
    return TicketInfo.from_ticket_id(ticket_id) if ticket_id else None


def change(previous, new, repo=REPO):
    return BranchChangeEvent(repo_path=repo, previous_branch=previous, new_branch=new, timestamp=NOW)


def snapshot(branch, repo=REPO):
    return BranchSnapshot(repo_path=repo, branch=branch, timestamp=NOW)


def commit(branch, message="Fix login", repo=REPO):
    return CommitEvent(repo_path=repo, branch=branch, commit_hash="c" * 40, message=message, timestamp=NOW)


def ok_result(ticket_id, minutes, *args, **kwargs):
    return TimeLogResult(ticket_id=ticket_id, minutes=minutes, primary_ok=True, secondary_skipped=True)


@pytest.fixture
def store(workspace, state_dir):
    return WorkspaceStateStore([workspace], state_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def parts(store, clock, immediate_executor):
    """Collaborators of an orchestrator, exposed for assertions."""
    correlator = Mock()
    correlator.correlate.side_effect = correlate
    time_logger = Mock()
    time_logger.log_time.side_effect = ok_result
    return {
        "correlator": correlator,
        "time_logger": time_logger,
        "timer": WorkTimer(clock),
        "store": store,
        "executor": immediate_executor,
    }


@pytest.fixture
def messages():
    return []


@pytest.fixture
def orchestrator(parts, messages):
    orchestrator = AutomationOrchestrator(
        parts["correlator"],
        parts["time_logger"],
        parts["timer"],
        parts["store"],
        ui_sink=messages.append,
        executor=parts["executor"],
    )
    yield orchestrator
    orchestrator.dispose()


def of_type(messages, cls):
    return [m for m in messages if isinstance(m, cls)]


def saved_state(store):
    return AutoTimerState.from_dict(store.get(AUTO_TIMER_STATE_KEY))


class TestBranchChange:
    """Test reacting to a branch switch."""

    def test_ticket_branch_starts_timer(self, orchestrator, parts, messages):
        """Test switching to a ticket branch populates the ticket and starts the timer."""
        ticket = orchestrator.on_branch_change(change("main", "feature/ABC-1-login")).result()

        assert ticket.ticket_id == "ABC-1"
        assert orchestrator.current_ticket == ticket
        assert parts["timer"].is_running
        assert parts["timer"].current_issue == "ABC-1"

        (changed,) = of_type(messages, BranchChanged)
        assert (changed.previous_branch, changed.new_branch, changed.ticket) == ("main", "feature/ABC-1-login", ticket)
        assert of_type(messages, TicketPopulated) == [TicketPopulated(ticket)]
        assert of_type(messages, TimerStarted) == [TimerStarted("ABC-1")]

    def test_ticketless_branch(self, orchestrator, parts, messages):
        """Test a branch without a ticket clears the current ticket."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        orchestrator.on_branch_change(change("feature/ABC-1", "main"))

        assert orchestrator.current_ticket is None
        assert of_type(messages, BranchChanged)[-1].ticket is None
        assert saved_state(parts["store"]).last_branch_info == LastBranchInfo("main", REPO, None)

    def test_switch_logs_time_to_previous_ticket(self, orchestrator, parts, clock, messages):
        """Test time tracked before a switch is logged to the ticket it was tracked for."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 3600
        orchestrator.on_branch_change(change("feature/ABC-1", "feature/XYZ-2"))
        clock.now += 60
        orchestrator.on_commit(commit("feature/XYZ-2", "msg"))

        assert parts["time_logger"].log_time.call_args_list == [
            call("ABC-1", 60, BRANCH_SWITCH_WORKLOG, "ABC"),
            call("XYZ-2", 1, "msg", "XYZ"),
        ]
        assert [m.ticket_id for m in of_type(messages, TimerStarted)] == ["ABC-1", "XYZ-2", "XYZ-2"]

    def test_switch_to_ticketless_branch_logs_and_stops(self, orchestrator, parts, clock):
        """Test leaving a ticket branch for a branch without ticket logs and stops the timer."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 20 * 60
        orchestrator.on_branch_change(change("feature/ABC-1", "main"))

        parts["time_logger"].log_time.assert_called_once_with("ABC-1", 20, BRANCH_SWITCH_WORKLOG, "ABC")
        assert not parts["timer"].is_running

    def test_switch_with_auto_log_off_discards(self, orchestrator, parts, clock, messages):
        """Test with auto-log off the previous ticket's time is dropped, never moved."""
        orchestrator.toggle_auto_log()
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 600
        orchestrator.on_branch_change(change("feature/ABC-1", "feature/XYZ-2"))

        parts["time_logger"].log_time.assert_not_called()
        assert parts["timer"].current_issue == "XYZ-2"
        assert parts["timer"].elapsed_seconds() == 0
        assert of_type(messages, Notification)[-1].level == NOTIFY_WARNING

    def test_failed_switch_log_not_moved(self, orchestrator, parts, clock):
        """Test time that failed to log on a switch does not carry over to the new ticket."""
        parts["time_logger"].log_time.side_effect = lambda ticket_id, minutes, *a: TimeLogResult(
            ticket_id=ticket_id, minutes=minutes, primary_error="Jira down")
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 600
        orchestrator.on_branch_change(change("feature/ABC-1", "feature/XYZ-2"))

        assert parts["timer"].current_issue == "XYZ-2"
        assert parts["timer"].elapsed_seconds() == 0

    def test_same_ticket_keeps_timer(self, orchestrator, parts, clock, messages):
        """Test a switch between branches of one ticket keeps the timer running."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 300
        orchestrator.on_branch_change(change("feature/ABC-1", "fix/ABC-1-followup"))

        parts["time_logger"].log_time.assert_not_called()
        assert parts["timer"].current_issue == "ABC-1"
        assert parts["timer"].elapsed_seconds() == 300
        assert len(of_type(messages, TimerStarted)) == 1

    def test_auto_start_off(self, orchestrator, parts, messages):
        """Test auto-start off skips the lookup and the timer."""
        orchestrator.toggle_auto_start()
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))

        parts["correlator"].correlate.assert_not_called()
        assert not parts["timer"].is_running
        assert orchestrator.current_ticket is None
        assert saved_state(parts["store"]).last_branch_info == LastBranchInfo("feature/ABC-1", REPO, "ABC-1")

    def test_persists_last_branch(self, orchestrator, parts):
        """Test the new branch and ticket are written through."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        assert saved_state(parts["store"]).last_branch_info == LastBranchInfo("feature/ABC-1", REPO, "ABC-1")

    def test_timer_start_failure_notifies(self, orchestrator, parts, messages):
        """Test a timer that fails to start is reported and left stopped."""
        parts["timer"].start = Mock(side_effect=RuntimeError("clock broken"))
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))

        assert not parts["timer"].is_running
        assert of_type(messages, TimerStarted) == []
        assert any(n.level == NOTIFY_ERROR for n in of_type(messages, Notification))


class TestInitialize:
    """Test the startup branch notification."""

    def test_ticket_populated_without_timer(self, orchestrator, parts, messages):
        """Test the startup ticket is shown but no timer starts."""
        ticket = orchestrator.on_initialize(snapshot("feature/ABC-1")).result()

        assert ticket.ticket_id == "ABC-1"
        assert not parts["timer"].is_running
        assert of_type(messages, BranchInitialized) == [BranchInitialized(REPO, "feature/ABC-1", ticket)]
        assert of_type(messages, TicketPopulated) == [TicketPopulated(ticket)]
        assert orchestrator.current_branch_info() == {
            "repo_path": REPO, "branch": "feature/ABC-1", "ticket_info": ticket,
        }

    def test_known_ticketless_branch_skips_lookup(self, parts, messages):
        """Test a branch remembered as ticketless is not looked up again."""
        parts["store"].set(AUTO_TIMER_STATE_KEY, AutoTimerState(
            last_branch_info=LastBranchInfo("feature/login-page", REPO, None)).to_dict())
        orchestrator = AutomationOrchestrator(parts["correlator"], parts["time_logger"], parts["timer"],
                                              parts["store"], ui_sink=messages.append, executor=parts["executor"])

        assert orchestrator.on_initialize(snapshot("feature/login-page")).result() is None
        parts["correlator"].correlate.assert_not_called()

    def test_other_repository_not_persisted(self, parts, messages):
        """Test initializing a second repository keeps the remembered one."""
        remembered = LastBranchInfo("feature/ABC-1", REPO, "ABC-1")
        parts["store"].set(AUTO_TIMER_STATE_KEY, AutoTimerState(last_branch_info=remembered).to_dict())
        orchestrator = AutomationOrchestrator(parts["correlator"], parts["time_logger"], parts["timer"],
                                              parts["store"], ui_sink=messages.append, executor=parts["executor"])

        orchestrator.on_initialize(snapshot("develop", repo=OTHER_REPO))
        assert saved_state(parts["store"]).last_branch_info == remembered


class TestCommit:
    """Test logging time when a commit lands."""

    def test_commit_logs_elapsed_time(self, orchestrator, parts, clock, messages):
        """Test a commit logs the elapsed minutes with the commit message."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 25 * 60

        result = orchestrator.on_commit(commit("feature/ABC-1", "Fix login")).result()

        assert result.primary_ok
        parts["time_logger"].log_time.assert_called_once_with("ABC-1", 25, "Fix login", "ABC")
        (logged,) = of_type(messages, TimeLogged)
        assert logged.commit_message == "Fix login"
        assert of_type(messages, Notification)[-1].level == NOTIFY_INFO

    def test_timer_restarts_after_log(self, orchestrator, parts, clock, messages):
        """Test a successful log resets the timer and starts it again for the ticket."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 600
        orchestrator.on_commit(commit("feature/ABC-1"))

        assert parts["timer"].is_running
        assert parts["timer"].elapsed_seconds() == 0
        assert len(of_type(messages, TimerStarted)) == 2

    def test_failed_log_keeps_time(self, orchestrator, parts, clock, messages):
        """Test a failed primary log keeps the elapsed time for a retry."""
        parts["time_logger"].log_time.side_effect = lambda ticket_id, minutes, *a: TimeLogResult(
            ticket_id=ticket_id, minutes=minutes, primary_error="Jira down")
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 600
        orchestrator.on_commit(commit("feature/ABC-1"))

        assert parts["timer"].elapsed_seconds() == 600
        assert parts["timer"].current_issue == "ABC-1"
        assert of_type(messages, Notification)[-1].level == NOTIFY_ERROR

    def test_partial_success_warns(self, orchestrator, parts, messages):
        """Test a Productive failure is reported as a warning."""
        parts["time_logger"].log_time.side_effect = lambda ticket_id, minutes, *a: TimeLogResult(
            ticket_id=ticket_id, minutes=minutes, primary_ok=True, secondary_error="no services")
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        orchestrator.on_commit(commit("feature/ABC-1"))
        assert of_type(messages, Notification)[-1].level == NOTIFY_WARNING

    def test_auto_log_off(self, orchestrator, parts):
        """Test commits are ignored with auto-log off."""
        orchestrator.toggle_auto_log()
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        assert orchestrator.on_commit(commit("feature/ABC-1")).result() is None
        parts["time_logger"].log_time.assert_not_called()

    def test_timer_not_running(self, orchestrator, parts):
        """Test commits are ignored when nothing is being timed."""
        orchestrator.on_initialize(snapshot("feature/ABC-1"))
        assert orchestrator.on_commit(commit("feature/ABC-1")).result() is None
        parts["time_logger"].log_time.assert_not_called()

    def test_commit_on_other_branch_correlated(self, orchestrator, parts):
        """Test a commit in another repository on the timed ticket is logged."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        orchestrator.on_commit(commit("ABC-1-api", repo=OTHER_REPO))
        assert parts["time_logger"].log_time.call_args.args[0] == "ABC-1"

    def test_commit_for_other_ticket_not_logged(self, orchestrator, parts, clock):
        """Test the timer's time is never logged to a commit's different ticket."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 600
        assert orchestrator.on_commit(commit("feature/XYZ-9", repo=OTHER_REPO)).result() is None
        parts["time_logger"].log_time.assert_not_called()
        assert parts["timer"].elapsed_seconds() == 600

    def test_commit_on_ticketless_branch(self, orchestrator, parts):
        """Test a commit on a branch without ticket logs nothing."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        assert orchestrator.on_commit(commit("develop", repo=OTHER_REPO)).result() is None
        parts["time_logger"].log_time.assert_not_called()


class TestCommitLog:
    """Test the manual log command."""

    def test_explicit_minutes(self, orchestrator, parts):
        """Test given minutes are logged as is."""
        orchestrator.on_initialize(snapshot("feature/ABC-1"))
        result = orchestrator.commit_log("Pairing session", 90).result()
        assert result.primary_ok
        parts["time_logger"].log_time.assert_called_once_with("ABC-1", 90, "Pairing session", "ABC")

    def test_timer_minutes(self, orchestrator, parts, clock):
        """Test without minutes the timer's elapsed time is used."""
        orchestrator.on_branch_change(change("main", "feature/ABC-1"))
        clock.now += 15 * 60
        orchestrator.commit_log("Review")
        assert parts["time_logger"].log_time.call_args.args[1] == 15

    def test_no_ticket(self, orchestrator, parts, messages):
        """Test logging without a tracked ticket only warns."""
        assert orchestrator.commit_log("Nothing", 10).result() is None
        parts["time_logger"].log_time.assert_not_called()
        assert of_type(messages, Notification)[-1].level == NOTIFY_WARNING


class TestSettings:
    """Test the persisted automation toggles."""

    def test_defaults(self, orchestrator):
        """Test both toggles start enabled."""
        state = orchestrator.get_state()
        assert state.auto_start and state.auto_log

    def test_toggle_persists(self, orchestrator, parts, messages):
        """Test toggles are written through and announced."""
        assert orchestrator.toggle_auto_start() is False
        assert orchestrator.toggle_auto_log() is False

        state = saved_state(parts["store"])
        assert (state.auto_start, state.auto_log) == (False, False)
        assert of_type(messages, AutomationSettingsChanged)[-1] == AutomationSettingsChanged(False, False)

    def test_state_loaded_on_start(self, parts, messages):
        """Test saved toggles are restored by a new orchestrator."""
        parts["store"].set(AUTO_TIMER_STATE_KEY, AutoTimerState(auto_start=False).to_dict())
        orchestrator = AutomationOrchestrator(parts["correlator"], parts["time_logger"], parts["timer"],
                                              parts["store"], executor=parts["executor"])
        assert orchestrator.get_state().auto_start is False
        assert orchestrator.get_state().auto_log is True

    def test_persist_failure_notifies(self, orchestrator, parts, messages):
        """Test a failing state write is reported, not raised."""
        parts["store"].set = Mock(side_effect=StateStoreError("read-only"))
        orchestrator.toggle_auto_start()
        assert of_type(messages, Notification)[-1].level == NOTIFY_WARNING

    def test_get_state_is_copy(self, orchestrator):
        """Test callers cannot change the live state."""
        orchestrator.get_state().auto_start = False
        assert orchestrator.get_state().auto_start is True


class TestErrorContainment:
    """Test failures never escape the automation layer."""

    def test_correlator_crash_notifies(self, orchestrator, parts, messages):
        """Test an unexpected error becomes an error notification."""
        parts["correlator"].correlate.side_effect = RuntimeError("unexpected")
        assert orchestrator.on_branch_change(change("main", "feature/ABC-1")).result() is None
        assert of_type(messages, Notification)[-1] == Notification("Automation failed: unexpected", NOTIFY_ERROR)

    def test_sink_failure_contained(self, parts):
        """Test a failing UI sink does not break automation."""
        orchestrator = AutomationOrchestrator(parts["correlator"], parts["time_logger"], parts["timer"],
                                              parts["store"], ui_sink=Mock(side_effect=RuntimeError("ui gone")),
                                              executor=parts["executor"])
        ticket = orchestrator.on_branch_change(change("main", "feature/ABC-1")).result()
        assert ticket.ticket_id == "ABC-1"

    def test_disposed_ignores_work(self, orchestrator):
        """Test nothing is queued after dispose."""
        orchestrator.dispose()
        orchestrator.dispose()
        assert orchestrator.on_branch_change(change("main", "feature/ABC-1")) is None
        orchestrator.flush()


class TestWorkerThread:
    """Test the default single worker."""

    def test_work_runs_in_order_off_thread(self, parts, messages):
        """Test work is queued in order and flush waits for it."""
        threads = []
        gate = threading.Event()

        def slow_correlate(branch):
            threads.append(threading.current_thread())
            gate.wait(5)
            return correlate(branch)

        parts["correlator"].correlate.side_effect = slow_correlate
        orchestrator = AutomationOrchestrator(parts["correlator"], parts["time_logger"], parts["timer"],
                                              parts["store"], ui_sink=messages.append)
        try:
            orchestrator.on_branch_change(change("main", "feature/ABC-1"))
            orchestrator.on_branch_change(change("feature/ABC-1", "feature/ABC-2"))
            gate.set()
            orchestrator.flush(timeout=5)

            assert threading.current_thread() not in threads
            assert [m.new_branch for m in of_type(messages, BranchChanged)] == ["feature/ABC-1", "feature/ABC-2"]
            assert orchestrator.current_ticket.ticket_id == "ABC-2"
        finally:
            orchestrator.dispose()
