"""Command-line argument parsing for git-ticket-tracker."""

import argparse
from git_ticket_tracker.__version__ import __version__
from git_ticket_tracker.constants import BranchReaderKind


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="git-ticket-tracker",
        description="Detect Git branch changes, link them to Jira tickets and log time",
        epilog="Setup: set JIRA_BASE_URL, JIRA_EMAIL and JIRA_API_TOKEN. "
        "For Productive also set PRODUCTIVE_API_TOKEN and PRODUCTIVE_ORGANIZATION_ID.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument("--version", action="version", version=f"git-ticket-tracker {__version__}")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information and write a debug log file"
    )
    parser.add_argument(
        "--workspace",
        action="append",
        metavar="PATH",
        help="Workspace root to scan for repositories (repeatable, default: current directory)",
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=1,
        help="Directory levels below each workspace root to scan (default: 1)",
    )
    parser.add_argument(
        "--reader",
        choices=[BranchReaderKind.HEAD_FILE, BranchReaderKind.GIT_COMMAND],
        default=BranchReaderKind.HEAD_FILE,
        help="How to read the current branch (default: head-file)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    watch = subparsers.add_parser("watch", help="Watch for branch changes until interrupted")
    watch.add_argument(
        "--refresh-interval",
        type=float,
        metavar="SECONDS",
        help="Re-run repository discovery every SECONDS (default: only at startup)",
    )

    subparsers.add_parser("status", help="Show the current branch and its ticket")
    subparsers.add_parser("toggle-auto-start", help="Toggle starting the timer on branch change")
    subparsers.add_parser("toggle-auto-log", help="Toggle logging time on commit")

    commit_log = subparsers.add_parser("commit-log", help="Log time for the current ticket")
    commit_log.add_argument("message", help="Worklog description")
    commit_log.add_argument(
        "--time",
        dest="time_spent",
        metavar="DURATION",
        help='Time spent, e.g. "1h 30m", "1.5h" or "90m" (default: timer elapsed time)',
    )

    subparsers.add_parser("debug-watchers", help="Dump watcher and detector state")
    head_files = subparsers.add_parser("debug-head-files", help="Dump raw HEAD pointer contents")
    head_files.add_argument(
        "--recheck", action="store_true", help="Re-check every repository before dumping"
    )

    return parser


def parse_args(argv=None):
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)
