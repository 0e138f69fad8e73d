"""
git-ticket-tracker - Follow Git branch changes and drive Jira time tracking
"""

from .__version__ import __version__
from .core import TicketTracker

__all__ = ["TicketTracker", "__version__"]
