"""Formatting utilities for git-ticket-tracker.

This package provides the console rendering used by the CLI:
- duration: Timestamp and duration formatting
- messages: One-line rendering of automation messages
- diagnostics: Tables for watcher state and HEAD pointer contents
"""

# Time formatters
from .duration import format_timestamp, format_minutes

# Message formatters
from .messages import format_message, format_ticket

# Diagnostic tables
from .diagnostics import (
    build_watchers_table,
    build_branch_states_table,
    build_head_files_table,
    build_status_table,
)

__all__ = [
    # Time
    "format_timestamp",
    "format_minutes",
    # Messages
    "format_message",
    "format_ticket",
    # Diagnostics
    "build_watchers_table",
    "build_branch_states_table",
    "build_head_files_table",
    "build_status_table",
]
