"""Custom exceptions for git-ticket-tracker"""

from pathlib import Path
from typing import Optional, Union


class TicketTrackerError(Exception):
    """Base exception for all git-ticket-tracker errors."""
    pass


class BranchReadFailure(TicketTrackerError):
    """Base for failures reading the current branch of a repository.

    Callers treat any of these as "no signal this round" and retry on the
    next recheck instead of tearing the watch down.
    """

    def __init__(self, repo_path: Union[str, Path], message: Optional[str] = None):
        self.repo_path = str(repo_path)
        self.message = message

        error_msg = f"Could not read branch for '{self.repo_path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class NotARepositoryError(BranchReadFailure):
    """Exception raised when a path is not (or is no longer) a Git working tree."""

    def __init__(self, repo_path: Union[str, Path]):
        super().__init__(repo_path, "Not a git repository")


class BranchReadError(BranchReadFailure):
    """Exception raised when HEAD or the branch query is transiently unreadable."""
    pass


class IssueTrackerError(TicketTrackerError):
    """Exception raised for errors in issue tracker API operations."""

    def __init__(self, operation: str, status_code: Optional[int] = None, message: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        self.message = message

        error_msg = f"Jira API operation '{operation}' failed"
        if status_code:
            error_msg += f" (HTTP {status_code})"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class IssueTrackerAuthError(IssueTrackerError):
    """Exception raised when Jira rejects the credentials (401/403)."""
    pass


class TicketNotFoundError(IssueTrackerError):
    """Exception raised when a ticket does not exist or is not visible."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__("get_issue", 404, f"Ticket {ticket_id} not found")


class AccountingError(TicketTrackerError):
    """Exception raised for errors in Productive API operations."""

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        self.message = message

        error_msg = f"Productive operation '{operation}' failed"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class StateStoreError(TicketTrackerError):
    """Exception raised when workspace state cannot be written."""
    pass
