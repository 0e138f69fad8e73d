"""Data models for git-ticket-tracker."""

from .repository import (
    RepositoryHandle,
    BranchState,
    BranchChangeEvent,
    BranchSnapshot,
    CommitInfo,
    CommitEvent,
)
from .ticket import TicketInfo, LastBranchInfo, AutoTimerState, TimeLogResult
from .messages import (
    UiMessage,
    BranchInitialized,
    BranchChanged,
    TicketPopulated,
    TimerStarted,
    TimeLogged,
    AutomationSettingsChanged,
    Notification,
)

__all__ = [
    "RepositoryHandle",
    "BranchState",
    "BranchChangeEvent",
    "BranchSnapshot",
    "CommitInfo",
    "CommitEvent",
    "TicketInfo",
    "LastBranchInfo",
    "AutoTimerState",
    "TimeLogResult",
    "UiMessage",
    "BranchInitialized",
    "BranchChanged",
    "TicketPopulated",
    "TimerStarted",
    "TimeLogged",
    "AutomationSettingsChanged",
    "Notification",
]
