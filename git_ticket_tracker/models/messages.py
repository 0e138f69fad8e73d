"""Messages sent from the automation layer to the UI.

Each event kind is its own frozen dataclass and `UiMessage` is the closed
union of them. Presenters dispatch on the concrete type and raise on anything
they do not know, so adding a variant without handling it fails loudly.
"""
from dataclasses import dataclass
from typing import Optional, Union

from git_ticket_tracker.constants import NOTIFY_INFO
from git_ticket_tracker.models.ticket import TicketInfo, TimeLogResult


@dataclass(frozen=True)
class BranchInitialized:
    repo_path: str
    branch: str
    ticket: Optional[TicketInfo] = None


@dataclass(frozen=True)
class BranchChanged:
    repo_path: str
    previous_branch: str
    new_branch: str
    ticket: Optional[TicketInfo] = None


@dataclass(frozen=True)
class TicketPopulated:
    ticket: TicketInfo


@dataclass(frozen=True)
class TimerStarted:
    ticket_id: str


@dataclass(frozen=True)
class TimeLogged:
    result: TimeLogResult
    commit_message: Optional[str] = None


@dataclass(frozen=True)
class AutomationSettingsChanged:
    auto_start: bool
    auto_log: bool


@dataclass(frozen=True)
class Notification:
    text: str
    level: str = NOTIFY_INFO


UiMessage = Union[
    BranchInitialized,
    BranchChanged,
    TicketPopulated,
    TimerStarted,
    TimeLogged,
    AutomationSettingsChanged,
    Notification,
]
