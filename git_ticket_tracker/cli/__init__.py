"""Command-line interface for git-ticket-tracker.

Subcommands drive a TicketTracker: watch, status, the automation toggles,
manual time logging and the watcher diagnostics.
"""

from .main import main
from .args import parse_args

__all__ = ["main", "parse_args"]
