"""Command-line interface for git-ticket-tracker"""

import os
import sys
import time
from datetime import datetime
from typing import List

from rich.console import Console

from git_ticket_tracker.cli.args import parse_args
from git_ticket_tracker.config import Config
from git_ticket_tracker.core import TicketTracker
from git_ticket_tracker.formatters import (
    build_branch_states_table,
    build_head_files_table,
    build_status_table,
    build_watchers_table,
    format_message,
)
from git_ticket_tracker.formatters.duration import format_timestamp
from git_ticket_tracker.logging_config import setup_logging
from git_ticket_tracker.models.messages import BranchChanged, BranchInitialized, UiMessage

console = Console()


def build_config(parsed_args) -> Config:
    """Build config from parsed arguments."""
    return Config(
        workspace_roots=parsed_args.workspace or [os.getcwd()],
        discovery_depth=parsed_args.depth,
        branch_reader=parsed_args.reader,
        verbose=parsed_args.verbose,
        debug=parsed_args.debug,
    )


def print_message(message: UiMessage) -> None:
    """Print an automation message with a timestamp."""
    console.print(f"[dim]{format_timestamp(datetime.now())}[/dim] {format_message(message)}")


def run_watch(tracker: TicketTracker, refresh_interval=None) -> int:
    tracker.add_ui_listener(print_message)
    handles = tracker.initialize()
    console.print(f"[green]Watching {len(handles)} repositories. Press Ctrl+C to stop.[/green]")

    last_refresh = time.monotonic()
    while True:
        time.sleep(1)
        if refresh_interval and time.monotonic() - last_refresh >= refresh_interval:
            handles = tracker.refresh()
            last_refresh = time.monotonic()
            console.print(f"[dim]Rediscovered {len(handles)} repositories[/dim]")


def run_status(tracker: TicketTracker) -> int:
    rows: List[dict] = []

    def collect(message: UiMessage) -> None:
        if isinstance(message, BranchInitialized):
            rows.append({"repo_path": message.repo_path, "branch": message.branch, "ticket": message.ticket})
        elif isinstance(message, BranchChanged):
            # Branch was switched while nothing was running
            rows.append({"repo_path": message.repo_path, "branch": message.new_branch, "ticket": message.ticket})

    tracker.add_ui_listener(collect)
    tracker.initialize(watch=False)
    tracker.flush()

    state = tracker.orchestrator.get_state()
    rows.sort(key=lambda row: row["repo_path"])
    console.print(build_status_table(rows, state.auto_start, state.auto_log))
    return 0


def run_commit_log(tracker: TicketTracker, message: str, time_spent) -> int:
    if time_spent is None:
        console.print("[red]Error: --time is required outside 'watch'; the timer only runs while watching[/red]")
        return 2

    tracker.add_ui_listener(print_message)
    tracker.initialize(watch=False)
    tracker.flush()

    future = tracker.commit_log(message, time_spent)
    result = future.result() if future is not None else None
    if result is None or not result.primary_ok:
        return 1
    return 0


def run_debug_watchers(tracker: TicketTracker) -> int:
    tracker.initialize()
    tracker.flush()
    info = tracker.debug_watchers()

    console.print(build_watchers_table(info["strategies"]))
    console.print(build_branch_states_table(info["branch_states"]))
    console.print("[bold]Automation state:[/bold]")
    for key, value in info["automation"].items():
        console.print(f"  {key}: {value}")
    console.print("[bold]Timer:[/bold]")
    for key, value in info["timer"].items():
        console.print(f"  {key}: {value}")
    return 0


def run_debug_head_files(tracker: TicketTracker, recheck: bool) -> int:
    tracker.initialize(watch=False)
    if recheck:
        for event in tracker.trigger_recheck():
            console.print(f"[yellow]Change detected in {event.repo_path}: "
                          f"{event.previous_branch} -> {event.new_branch}[/yellow]")
    tracker.flush()
    console.print(build_head_files_table(tracker.debug_head_files()))
    return 0


def main(argv=None):
    """Main entry point for the application."""
    parsed_args = None
    tracker = None
    try:
        # Parse command line arguments
        parsed_args = parse_args(argv)

        # Setup logging before creating the tracker
        setup_logging(verbose=parsed_args.verbose, debug=parsed_args.debug)

        config = build_config(parsed_args)

        if parsed_args.debug:
            console.print("[yellow]Debug mode enabled[/yellow]")
            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                console.print(f"  {key}: {value}")

        tracker = TicketTracker(config)
        command = parsed_args.command

        if command == "watch":
            return run_watch(tracker, parsed_args.refresh_interval)
        if command == "status":
            return run_status(tracker)
        if command == "toggle-auto-start":
            tracker.add_ui_listener(print_message)
            tracker.toggle_auto_start()
            return 0
        if command == "toggle-auto-log":
            tracker.add_ui_listener(print_message)
            tracker.toggle_auto_log()
            return 0
        if command == "commit-log":
            return run_commit_log(tracker, parsed_args.message, parsed_args.time_spent)
        if command == "debug-watchers":
            return run_debug_watchers(tracker)
        if command == "debug-head-files":
            return run_debug_head_files(tracker, parsed_args.recheck)

        console.print(f"[red]Unknown command: {command}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped watching[/yellow]")
        return 0
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 2
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if parsed_args is not None and parsed_args.debug:
            console.print_exception()
        return 1
    finally:
        if tracker is not None:
            tracker.dispose()


if __name__ == "__main__":
    sys.exit(main())
