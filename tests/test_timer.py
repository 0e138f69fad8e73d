"""Tests for WorkTimer"""
from git_ticket_tracker.services.timer import WorkTimer


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestWorkTimer:
    """Test timing work on a ticket."""

    def test_start_and_stop(self):
        """Test elapsed time accumulates while running."""
        clock = FakeClock()
        timer = WorkTimer(clock)

        timer.start("ABC-1")
        clock.now += 125
        assert timer.is_running
        assert timer.current_issue == "ABC-1"
        assert timer.stop() == 125
        assert not timer.is_running

        clock.now += 500
        assert timer.elapsed_seconds() == 125

    def test_resume_same_ticket(self):
        """Test restarting the same ticket keeps the elapsed time."""
        clock = FakeClock()
        timer = WorkTimer(clock)
        timer.start("ABC-1")
        clock.now += 60
        timer.stop()
        timer.start("ABC-1")
        clock.now += 60
        assert timer.elapsed_seconds() == 120

    def test_other_ticket_starts_from_zero(self):
        """Test switching tickets discards the previous time."""
        clock = FakeClock()
        timer = WorkTimer(clock)
        timer.start("ABC-1")
        clock.now += 60
        timer.stop()
        timer.start("ABC-2")
        clock.now += 30
        assert timer.elapsed_seconds() == 30
        assert timer.current_issue == "ABC-2"

    def test_start_while_running(self):
        """Test starting a running timer does not reset its start."""
        clock = FakeClock()
        timer = WorkTimer(clock)
        timer.start("ABC-1")
        clock.now += 60
        timer.start("ABC-1")
        clock.now += 60
        assert timer.elapsed_seconds() == 120

    def test_reset(self):
        """Test reset forgets ticket and time."""
        clock = FakeClock()
        timer = WorkTimer(clock)
        timer.start("ABC-1")
        clock.now += 60
        timer.reset()
        assert timer.current_issue is None
        assert not timer.is_running
        assert timer.elapsed_seconds() == 0

    def test_elapsed_minutes_rounding(self):
        """Test minutes round half up with a minimum of one."""
        clock = FakeClock()
        timer = WorkTimer(clock)
        assert timer.elapsed_minutes() == 1

        timer.start("ABC-1")
        clock.now += 89
        assert timer.elapsed_minutes() == 1
        clock.now += 1
        assert timer.elapsed_minutes() == 2
        clock.now += 3600
        assert timer.elapsed_minutes() == 62
