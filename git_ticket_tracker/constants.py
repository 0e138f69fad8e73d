"""Shared constants for git-ticket-tracker."""

from typing import List

# Branch value reported when HEAD points at a commit instead of a branch
DETACHED_HEAD = "HEAD"

# Branch naming prefixes recognised in front of a ticket key
BRANCH_PREFIXES: List[str] = ["feature", "feat", "bugfix", "fix", "hotfix", "release", "chore"]

# Ticket key shape: uppercase project key, optional digits after the first letter
TICKET_KEY_PATTERN = r"[A-Z][A-Z0-9]*-\d+"

# Workspace state
STATE_DIR_NAME = ".git-ticket-tracker"
AUTO_TIMER_STATE_KEY = "autoTimerState"
STATE_SCHEMA_VERSION = 1

# Remote defaults
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_PRODUCTIVE_BASE_URL = "https://api.productive.io/api/v2"
JIRA_ISSUE_FIELDS = "summary,status,description,project"
SEARCH_MAX_RESULTS = 5

# Worklog description for time tracked until a branch switch
BRANCH_SWITCH_WORKLOG = "Branch switch - time logged automatically"


class Confidence:
    """Labels attached to a Productive service choice."""

    CONFIGURED = "HIGH (configured)"
    HISTORY_SINGLE = "HIGH (historical consistency)"
    HISTORY_MOST_USED = "MEDIUM (most used from history)"
    PROJECT_SINGLE = "HIGH (project uses single service)"
    PROJECT_MOST_USED = "MEDIUM (most used in project)"
    FALLBACK = "LOW (fallback service)"


class BranchReaderKind:
    """Ways of reading the current branch."""

    HEAD_FILE = "head-file"
    GIT_COMMAND = "git-command"


# Notification levels carried by UI messages
NOTIFY_INFO = "info"
NOTIFY_WARNING = "warning"
NOTIFY_ERROR = "error"

# CLI colors (Rich color names) per notification level
CLI_COLORS = {
    NOTIFY_INFO: "green",
    NOTIFY_WARNING: "yellow",
    NOTIFY_ERROR: "red",
}
