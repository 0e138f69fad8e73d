"""Rich tables for diagnostics and status output."""

from typing import Dict, List

from rich.table import Table

from git_ticket_tracker.formatters.messages import format_ticket


def build_watchers_table(strategies: List[Dict]) -> Table:
    """
    Build a table of detection strategies and what they watch.

    Args:
        strategies: Output of DetectionStrategy.describe() per strategy

    Returns:
        Rich table
    """
    table = Table(title="Detection strategies")
    table.add_column("Strategy")
    table.add_column("Running")
    table.add_column("Details")

    for info in strategies:
        details = []
        if "status" in info:
            details.append(f"integration {info['status']}")
            details.append(f"{info.get('activation_attempts', 0)} activation retries")
            details.extend(f"attached {path}" for path in info.get("attached", []))
        if "watched_files" in info:
            details.extend(info["watched_files"])
            details.extend(f"[red]failed[/red] {d}" for d in info.get("failed_directories", []))
        running = "[green]yes[/green]" if info.get("running") else "[red]no[/red]"
        table.add_row(info.get("strategy", "?"), running, "\n".join(details) or "[dim]-[/dim]")
    return table


def build_branch_states_table(branch_states: Dict[str, Dict]) -> Table:
    """
    Build a table of the detector's last known branch per repository.

    Args:
        branch_states: repo path -> {"branch", "commit", "last_observed_at"}

    Returns:
        Rich table
    """
    table = Table(title="Known branches")
    table.add_column("Repository")
    table.add_column("Branch")
    table.add_column("Commit")
    table.add_column("Observed")

    for repo_path, state in branch_states.items():
        commit = (state.get("commit") or "")[:8] or "[dim]none[/dim]"
        table.add_row(repo_path, state["branch"], commit, state["last_observed_at"])
    return table


def build_head_files_table(rows: List[Dict]) -> Table:
    """
    Build a table of raw HEAD pointer contents.

    Args:
        rows: Output of TicketTracker.debug_head_files()

    Returns:
        Rich table
    """
    table = Table(title="HEAD pointer files")
    table.add_column("Repository")
    table.add_column("HEAD content")
    table.add_column("Read branch")
    table.add_column("Known branch")

    for row in rows:
        content = row.get("content")
        content_text = content if content is not None else f"[red]{row.get('error', 'unreadable')}[/red]"
        branch = row.get("branch")
        branch_text = branch if branch is not None else f"[red]{row.get('error', 'unreadable')}[/red]"
        table.add_row(row["repo_path"], content_text, branch_text, row.get("known_branch") or "[dim]-[/dim]")
    return table


def build_status_table(rows: List[Dict], auto_start: bool, auto_log: bool) -> Table:
    """
    Build the per-repository status table.

    Args:
        rows: {"repo_path", "branch", "ticket"} per repository
        auto_start: Current auto-start setting
        auto_log: Current auto-log setting

    Returns:
        Rich table
    """
    table = Table(
        title="Branch status",
        caption=f"auto-start {'on' if auto_start else 'off'}, auto-log {'on' if auto_log else 'off'}",
    )
    table.add_column("Repository")
    table.add_column("Branch")
    table.add_column("Ticket")

    for row in rows:
        ticket = row.get("ticket")
        table.add_row(row["repo_path"], row["branch"], format_ticket(ticket) if ticket else "[dim]none[/dim]")
    if not rows:
        table.add_row("[dim]no repositories found[/dim]", "", "")
    return table
