"""Console rendering of automation messages."""

from git_ticket_tracker.constants import CLI_COLORS, NOTIFY_ERROR, NOTIFY_INFO, NOTIFY_WARNING
from git_ticket_tracker.formatters.duration import format_minutes
from git_ticket_tracker.models.messages import (
    AutomationSettingsChanged,
    BranchChanged,
    BranchInitialized,
    Notification,
    TicketPopulated,
    TimeLogged,
    TimerStarted,
    UiMessage,
)
from git_ticket_tracker.models.ticket import TicketInfo


def format_ticket(ticket: TicketInfo) -> str:
    """
    Format a ticket as "KEY: summary [status]".

    Args:
        ticket: Ticket to format

    Returns:
        Rich markup string
    """
    text = f"[bold cyan]{ticket.ticket_id}[/bold cyan]"
    if ticket.summary:
        text += f": {ticket.summary}"
    if ticket.status:
        text += f" [dim]\\[{ticket.status}][/dim]"
    return text


def _on_off(flag: bool) -> str:
    return "[green]on[/green]" if flag else "[red]off[/red]"


def format_message(message: UiMessage) -> str:
    """
    Render a UiMessage as one line of Rich markup.

    Raises:
        TypeError: for a message type this function does not know
    """
    if isinstance(message, BranchInitialized):
        ticket = format_ticket(message.ticket) if message.ticket else "[dim]no ticket[/dim]"
        return f"{message.repo_path}: on [bold]{message.branch}[/bold] ({ticket})"
    if isinstance(message, BranchChanged):
        ticket = format_ticket(message.ticket) if message.ticket else "[dim]no ticket[/dim]"
        return (
            f"{message.repo_path}: [yellow]{message.previous_branch}[/yellow] -> "
            f"[bold]{message.new_branch}[/bold] ({ticket})"
        )
    if isinstance(message, TicketPopulated):
        return f"Ticket: {format_ticket(message.ticket)}"
    if isinstance(message, TimerStarted):
        return f"Timer started for [bold cyan]{message.ticket_id}[/bold cyan]"
    if isinstance(message, TimeLogged):
        result = message.result
        color = CLI_COLORS[NOTIFY_ERROR if not result.primary_ok else NOTIFY_WARNING if result.partial else NOTIFY_INFO]
        text = f"[{color}]{format_minutes(result.minutes)} for {result.ticket_id}[/{color}]"
        if message.commit_message:
            text += f" [dim]({message.commit_message.splitlines()[0]})[/dim]"
        return text
    if isinstance(message, AutomationSettingsChanged):
        return f"Auto-start {_on_off(message.auto_start)}, auto-log {_on_off(message.auto_log)}"
    if isinstance(message, Notification):
        color = CLI_COLORS.get(message.level, "white")
        return f"[{color}]{message.text}[/{color}]"
    raise TypeError(f"Unknown UI message: {type(message).__name__}")
