"""Version information for git-ticket-tracker."""

__version__ = "0.1.0"
