"""Ticket, automation-state and time-log models"""
import re
from dataclasses import dataclass, field
from typing import Optional

from git_ticket_tracker.constants import STATE_SCHEMA_VERSION, TICKET_KEY_PATTERN
from git_ticket_tracker.logging_config import get_logger

logger = get_logger(__name__)

_TICKET_KEY_RE = re.compile(rf"^{TICKET_KEY_PATTERN}$")


@dataclass
class TicketInfo:
    """A verified Jira ticket correlated with a branch."""
    ticket_id: str
    project_key: str
    summary: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_ticket_id(cls, ticket_id: str) -> "TicketInfo":
        """Build a bare ticket, deriving the project key from the id."""
        if not _TICKET_KEY_RE.match(ticket_id):
            raise ValueError(f"Not a ticket id: {ticket_id!r}")
        return cls(ticket_id=ticket_id, project_key=ticket_id.split("-", 1)[0])


@dataclass
class LastBranchInfo:
    """Branch remembered across restarts. ticket_id None = known ticketless."""
    branch_name: str
    repo_path: str
    ticket_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "branch_name": self.branch_name,
            "repo_path": self.repo_path,
            "ticket_id": self.ticket_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LastBranchInfo":
        return cls(
            branch_name=str(data["branch_name"]),
            repo_path=str(data["repo_path"]),
            ticket_id=data.get("ticket_id") or None,
        )


@dataclass
class AutoTimerState:
    """Persisted automation settings and last-seen branch."""
    auto_start: bool = True
    auto_log: bool = True
    last_branch_info: Optional[LastBranchInfo] = None

    def to_dict(self) -> dict:
        """Serialize for the workspace state store."""
        return {
            "schema_version": STATE_SCHEMA_VERSION,
            "auto_start": self.auto_start,
            "auto_log": self.auto_log,
            "last_branch_info": self.last_branch_info.to_dict() if self.last_branch_info else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AutoTimerState":
        """Load persisted state, falling back to defaults for anything unusable."""
        if not isinstance(data, dict):
            return cls()

        version = data.get("schema_version")
        if version != STATE_SCHEMA_VERSION:
            if isinstance(version, int) and version > STATE_SCHEMA_VERSION:
                logger.warning(f"Ignoring state written by a newer version (schema {version})")
            else:
                logger.debug(f"Discarding state with schema version {version!r}")
            return cls()

        last_branch = None
        raw_last = data.get("last_branch_info")
        if isinstance(raw_last, dict):
            try:
                last_branch = LastBranchInfo.from_dict(raw_last)
            except KeyError as e:
                logger.warning(f"Persisted last branch info is missing {e}, ignoring it")

        return cls(
            auto_start=bool(data.get("auto_start", True)),
            auto_log=bool(data.get("auto_log", True)),
            last_branch_info=last_branch,
        )


@dataclass
class TimeLogResult:
    """Outcome of logging time to Jira and, secondarily, Productive."""
    ticket_id: str
    minutes: int
    primary_ok: bool = False
    primary_error: Optional[str] = None
    secondary_ok: bool = False
    secondary_error: Optional[str] = None
    secondary_skipped: bool = False
    details: dict = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        """Primary succeeded but the secondary failed."""
        return self.primary_ok and not self.secondary_ok and not self.secondary_skipped

    def summary(self) -> str:
        if not self.primary_ok:
            return f"Time logging failed for {self.ticket_id}: {self.primary_error}"
        if self.secondary_skipped:
            return f"Logged {self.minutes}m to {self.ticket_id} in Jira (Productive not configured)"
        if self.secondary_ok:
            return f"Logged {self.minutes}m to {self.ticket_id} in Jira and Productive"
        return (
            f"Logged {self.minutes}m to {self.ticket_id} in Jira; "
            f"Productive failed: {self.secondary_error}"
        )
