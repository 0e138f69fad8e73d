"""Branch name to ticket correlation"""
import logging
import re
from typing import Callable, List, Optional

from git_ticket_tracker.constants import BRANCH_PREFIXES, DETACHED_HEAD, NOTIFY_WARNING, TICKET_KEY_PATTERN
from git_ticket_tracker.exceptions import IssueTrackerAuthError, IssueTrackerError
from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.messages import Notification
from git_ticket_tracker.models.ticket import TicketInfo
from git_ticket_tracker.services.jira_service import JiraService

_PREFIX_GROUP = "|".join(BRANCH_PREFIXES)

# First match wins
TICKET_PATTERNS = [
    re.compile(rf"^(?i:{_PREFIX_GROUP})/({TICKET_KEY_PATTERN})(?![0-9])"),
    re.compile(rf"^({TICKET_KEY_PATTERN})(?![0-9])"),
    re.compile(rf"(?<![A-Za-z0-9])({TICKET_KEY_PATTERN})(?![0-9])"),
]

_PREFIX_RE = re.compile(rf"^(?i:{_PREFIX_GROUP})/")
_WORD_RE = re.compile(r"[A-Za-z0-9]+")
MIN_WORD_LENGTH = 3


def extract_ticket_id(branch_name: str) -> Optional[str]:
    """Extract a ticket id such as PROJ-123 from a branch name.

    >>> extract_ticket_id("feature/PROJ-123-login")
    'PROJ-123'
    >>> extract_ticket_id("release/done") is None
    True
    """
    if not branch_name or branch_name == DETACHED_HEAD:
        return None
    for pattern in TICKET_PATTERNS:
        match = pattern.search(branch_name)
        if match:
            return match.group(1)
    return None


def significant_words(branch_name: str) -> List[str]:
    """Lowercased words of a branch name worth searching for."""
    stripped = _PREFIX_RE.sub("", branch_name)
    return [w.lower() for w in _WORD_RE.findall(stripped) if len(w) >= MIN_WORD_LENGTH]


class TicketCorrelator:
    """Resolve a branch name to a verified ticket.

    A ticket id is taken from the branch name, or failing that from a text
    search. It is only returned once Jira confirms the ticket exists; any
    lookup failure means "no ticket".
    """

    def __init__(
        self,
        jira: Optional[JiraService],
        search_fallback: bool = True,
        min_overlap: float = 0.5,
        notify: Optional[Callable[[Notification], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the correlator.

        Args:
            jira: Jira client, None when Jira is not configured
            search_fallback: Search Jira when the branch name holds no ticket id
            min_overlap: Share of the branch's significant words a search hit must contain
            notify: Receives user-facing warnings (re-authentication hints)
            logger: Logger to report through
        """
        self.jira = jira
        self.search_fallback = search_fallback
        self.min_overlap = min_overlap
        self.notify = notify
        self.logger = logger or get_logger(__name__)

    def correlate(self, branch_name: str) -> Optional[TicketInfo]:
        """Return the verified ticket for a branch, or None."""
        if not branch_name or branch_name == DETACHED_HEAD:
            return None

        ticket_id = extract_ticket_id(branch_name)
        if ticket_id is None:
            if self.jira is None or not self.search_fallback:
                self.logger.debug(f"No ticket id in branch '{branch_name}'")
                return None
            ticket_id = self._search(branch_name)
            if ticket_id is None:
                return None

        if self.jira is None:
            self.logger.debug(f"Jira not configured, cannot verify {ticket_id}")
            return None

        if not self._verify(ticket_id):
            return None

        ticket = TicketInfo.from_ticket_id(ticket_id)
        self._enrich(ticket)
        self.logger.info(f"Branch '{branch_name}' correlated with {ticket.ticket_id}")
        return ticket

    def _search(self, branch_name: str) -> Optional[str]:
        words = significant_words(branch_name)
        if not words:
            return None
        try:
            results = self.jira.search_tickets(" ".join(words))
        except IssueTrackerAuthError as e:
            self._auth_failed(e)
            return None
        except IssueTrackerError as e:
            self.logger.warning(f"Ticket search for '{branch_name}' failed: {e}")
            return None

        if not results:
            self.logger.debug(f"No search results for '{branch_name}'")
            return None

        top = results[0]
        haystack = f"{top['key']} {top.get('summary') or ''}".lower()
        matched = sum(1 for word in words if word in haystack)
        overlap = matched / len(words)
        if overlap < self.min_overlap:
            self.logger.debug(
                f"Top search hit {top['key']} shares {matched}/{len(words)} words with '{branch_name}', rejecting"
            )
            return None
        self.logger.debug(f"Search matched {top['key']} for '{branch_name}' ({overlap:.0%} overlap)")
        return top["key"]

    def _verify(self, ticket_id: str) -> bool:
        try:
            exists = self.jira.verify_ticket(ticket_id)
        except IssueTrackerAuthError as e:
            self._auth_failed(e)
            return False
        except IssueTrackerError as e:
            self.logger.warning(f"Could not verify {ticket_id}: {e}")
            return False
        if not exists:
            self.logger.info(f"Ticket {ticket_id} not found in Jira")
        return exists

    def _enrich(self, ticket: TicketInfo) -> None:
        try:
            fields = self.jira.get_ticket_fields(ticket.ticket_id)
        except IssueTrackerError as e:
            self.logger.debug(f"Enrichment of {ticket.ticket_id} failed, keeping bare ticket: {e}")
            return
        ticket.summary = fields.get("summary")
        ticket.status = fields.get("status")
        ticket.description = fields.get("description")

    def _auth_failed(self, error: IssueTrackerAuthError) -> None:
        self.logger.warning(f"{error}. Re-authenticate with Jira to enable ticket lookups.")
        if self.notify is not None:
            self.notify(Notification(
                text="Jira rejected the credentials; re-authenticate to enable ticket lookups",
                level=NOTIFY_WARNING,
            ))
