"""Work timer scoped to one ticket"""
import math
import threading
import time
from typing import Callable, Optional


class WorkTimer:
    """Measure time spent on the current ticket.

    Stopping keeps the elapsed time so a failed log can be retried; reset()
    clears it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._issue: Optional[str] = None
        self._started_at: Optional[float] = None
        self._accumulated = 0.0

    @property
    def current_issue(self) -> Optional[str]:
        return self._issue

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def start(self, ticket_id: str) -> None:
        """Start timing a ticket. A different ticket starts from zero."""
        with self._lock:
            if self._issue != ticket_id:
                self._accumulated = 0.0
            self._issue = ticket_id
            if self._started_at is None:
                self._started_at = self.clock()

    def stop(self) -> float:
        """Stop the timer and return the elapsed seconds."""
        with self._lock:
            if self._started_at is not None:
                self._accumulated += self.clock() - self._started_at
                self._started_at = None
            return self._accumulated

    def reset(self) -> None:
        """Forget the ticket and the elapsed time."""
        with self._lock:
            self._issue = None
            self._started_at = None
            self._accumulated = 0.0

    def elapsed_seconds(self) -> float:
        with self._lock:
            running = self.clock() - self._started_at if self._started_at is not None else 0.0
            return self._accumulated + running

    def elapsed_minutes(self) -> int:
        """Elapsed time rounded to whole minutes, at least one."""
        return max(1, int(math.floor(self.elapsed_seconds() / 60 + 0.5)))
