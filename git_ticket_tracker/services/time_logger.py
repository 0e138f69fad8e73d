"""Dual-system time logging: Jira first, Productive second"""
import logging
import re
from typing import Optional, Union

from git_ticket_tracker.exceptions import AccountingError, IssueTrackerError
from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.ticket import TimeLogResult
from git_ticket_tracker.services.jira_service import JiraService
from git_ticket_tracker.services.productive_service import ProductiveService

_DECIMAL_HOURS_RE = re.compile(r"^(\d+(?:\.\d+)?)h$|^(\d+\.\d+)$")
_HOURS_RE = re.compile(r"(\d+)\s*h")
_MINUTES_RE = re.compile(r"(\d+)\s*m")


def parse_duration(value: Union[str, int]) -> int:
    """Convert a duration to whole minutes.

    Accepts an int of minutes, "90", "90m", "1h 30m", "1h30m", "1.5h" or "1.5".

    Raises:
        ValueError: for anything else, or a non-positive duration
    """
    if isinstance(value, int):
        minutes = value
    else:
        text = value.strip().lower()
        if text.isdigit():
            minutes = int(text)
        else:
            decimal = _DECIMAL_HOURS_RE.match(text)
            if decimal:
                minutes = round(float(decimal.group(1) or decimal.group(2)) * 60)
            else:
                hours = _HOURS_RE.search(text)
                mins = _MINUTES_RE.search(text)
                if not hours and not mins:
                    raise ValueError(f'Invalid time format "{value}". Use e.g. "1h 30m", "1.5h" or "90m"')
                minutes = (int(hours.group(1)) * 60 if hours else 0) + (int(mins.group(1)) if mins else 0)

    if minutes <= 0:
        raise ValueError("Duration must be a positive number of minutes")
    return minutes


class TimeLogger:
    """Log time to Jira and mirror it to Productive.

    Jira is the primary system. Productive is only attempted after Jira
    accepted the worklog, and a Productive failure never undoes that.
    """

    def __init__(self, jira: Optional[JiraService], productive: Optional[ProductiveService] = None,
                 logger: Optional[logging.Logger] = None):
        self.jira = jira
        self.productive = productive
        self.logger = logger or get_logger(__name__)

    def log_time(self, ticket_id: str, minutes: int, description: str = "",
                 project_key: Optional[str] = None) -> TimeLogResult:
        """Log minutes against a ticket in both systems.

        Never raises for remote failures; they are reported in the result.
        """
        result = TimeLogResult(ticket_id=ticket_id, minutes=minutes)

        if self.jira is None:
            result.primary_error = "Jira is not configured"
            return result

        try:
            if not self.jira.verify_ticket(ticket_id):
                result.primary_error = f"Jira ticket {ticket_id} not found or inaccessible"
                self.logger.warning(result.primary_error)
                return result
            worklog = self.jira.add_worklog(ticket_id, minutes, description)
        except IssueTrackerError as e:
            result.primary_error = str(e)
            self.logger.error(f"Jira time logging failed for {ticket_id}: {e}")
            return result

        result.primary_ok = True
        result.details["jira_worklog_id"] = worklog.get("id")

        if self.productive is None:
            result.secondary_skipped = True
            self.logger.debug("Productive not configured, skipping secondary log")
            return result

        project_key = project_key or ticket_id.split("-", 1)[0]
        try:
            person = self.productive.get_authenticated_person()
            project = self.productive.find_project(project_key)
            service = self.productive.discover_service(person.id, project.id)
            self.logger.info(f"Productive service {service.name} chosen with confidence {service.confidence}")
            entry = self.productive.create_time_entry(
                person.id, project.id, service.id, minutes,
                note=description or f"Work on {ticket_id}",
                jira_ticket_id=ticket_id,
            )
        except AccountingError as e:
            result.secondary_error = str(e)
            self.logger.warning(f"Partial success for {ticket_id}: Jira logged, Productive failed: {e}")
            return result

        result.secondary_ok = True
        result.details.update({
            "productive_entry_id": entry.get("id"),
            "productive_project": project.name,
            "productive_service": service.name,
            "service_confidence": service.confidence,
        })
        return result
