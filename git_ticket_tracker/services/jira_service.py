"""Jira REST client"""
import logging
from typing import Dict, List, Optional

import httpx

from git_ticket_tracker.config import Config
from git_ticket_tracker.constants import DEFAULT_REQUEST_TIMEOUT, JIRA_ISSUE_FIELDS, SEARCH_MAX_RESULTS
from git_ticket_tracker.exceptions import IssueTrackerAuthError, IssueTrackerError, TicketNotFoundError
from git_ticket_tracker.logging_config import get_logger


def text_to_adf(text: str) -> dict:
    """Convert plain text to an Atlassian Document Format document."""
    paragraphs = [
        {"type": "paragraph", "content": [{"type": "text", "text": line}]}
        for line in text.split("\n")
        if line.strip()
    ]
    if not paragraphs:
        paragraphs.append({"type": "paragraph", "content": [{"type": "text", "text": text or "-"}]})
    return {"version": 1, "type": "doc", "content": paragraphs}


def adf_to_text(node) -> str:
    """Flatten an ADF document (or plain string) into text.

    Block nodes become separate lines; inline text is concatenated.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node

    lines: List[str] = []

    def walk(current, buffer: List[str]) -> None:
        node_type = current.get("type")
        if node_type == "text":
            buffer.append(current.get("text", ""))
            return
        if node_type == "hardBreak":
            buffer.append("\n")
            return
        children = current.get("content") or []
        if node_type in ("doc", "bulletList", "orderedList", "listItem", "blockquote", "table", "tableRow"):
            for child in children:
                walk(child, buffer)
            return
        # paragraph, heading, codeBlock, tableCell, ...
        inline: List[str] = []
        for child in children:
            walk(child, inline)
        if inline:
            lines.append("".join(inline))

    walk(node, [])
    return "\n".join(line for line in lines if line.strip())


class JiraService:
    """Thin wrapper around the Jira Cloud REST API v3.

    Every method raises IssueTrackerError (or a subclass) on failure; deciding
    what a failure means is left to the caller.
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logger or get_logger(__name__)
        self.client = httpx.Client(
            base_url=self.base_url,
            auth=(email, api_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.BaseTransport] = None,
                    logger: Optional[logging.Logger] = None) -> Optional["JiraService"]:
        """Build a client from configuration, or None when Jira is not configured."""
        if not config.jira_configured:
            return None
        return cls(
            config.jira_base_url,
            config.jira_email,
            config.jira_api_token,
            timeout=config.request_timeout,
            transport=transport,
            logger=logger,
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, operation: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise IssueTrackerError(operation, message=f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise IssueTrackerError(operation, message=str(e))

        if response.status_code in (401, 403):
            raise IssueTrackerAuthError(
                operation, response.status_code, "check your Jira email and API token"
            )
        if response.is_error:
            raise IssueTrackerError(operation, response.status_code, response.text[:200] or None)
        return response

    def verify_ticket(self, ticket_id: str) -> bool:
        """Check that a ticket exists and is visible.

        Returns:
            True if found, False on 404

        Raises:
            IssueTrackerAuthError: Credentials rejected
            IssueTrackerError: Any other failure, including timeouts
        """
        try:
            self._request("GET", f"/rest/api/3/issue/{ticket_id}", "verify_ticket",
                          params={"fields": "summary"})
        except IssueTrackerError as e:
            if e.status_code == 404:
                self.logger.debug(f"Ticket {ticket_id} not found")
                return False
            raise
        return True

    def get_ticket_fields(self, ticket_id: str) -> Dict[str, Optional[str]]:
        """Fetch display fields of a ticket.

        Returns:
            Dict with summary, status, description (plain text) and project_key
        """
        try:
            response = self._request("GET", f"/rest/api/3/issue/{ticket_id}", "get_ticket_fields",
                                     params={"fields": JIRA_ISSUE_FIELDS})
        except IssueTrackerError as e:
            if e.status_code == 404:
                raise TicketNotFoundError(ticket_id)
            raise

        fields = response.json().get("fields") or {}
        status = fields.get("status") or {}
        project = fields.get("project") or {}
        description = adf_to_text(fields.get("description"))
        return {
            "summary": fields.get("summary"),
            "status": status.get("name"),
            "description": description or None,
            "project_key": project.get("key"),
        }

    def search_tickets(self, text: str, max_results: int = SEARCH_MAX_RESULTS) -> List[Dict[str, str]]:
        """Free-text search, most relevant first.

        Returns:
            List of {"key", "summary"} dicts
        """
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        jql = f'text ~ "{escaped}" ORDER BY updated DESC'
        response = self._request(
            "GET",
            "/rest/api/3/search/jql",
            "search_tickets",
            params={"jql": jql, "fields": "summary", "maxResults": max_results},
        )
        results = []
        for issue in response.json().get("issues") or []:
            key = issue.get("key")
            if key:
                results.append({"key": key, "summary": (issue.get("fields") or {}).get("summary") or ""})
        self.logger.debug(f"Search for '{text}' returned {len(results)} issues")
        return results

    def add_worklog(self, ticket_id: str, minutes: int, comment: str) -> dict:
        """Add a worklog entry.

        Args:
            ticket_id: Ticket to log against
            minutes: Time spent, whole minutes
            comment: Worklog description

        Returns:
            The created worklog as returned by Jira
        """
        comment = comment.strip() or f"Work on {ticket_id} ({minutes}m)"
        payload = {"timeSpentSeconds": minutes * 60, "comment": text_to_adf(comment)}
        response = self._request("POST", f"/rest/api/3/issue/{ticket_id}/worklog", "add_worklog",
                                 json=payload)
        self.logger.info(f"Logged {minutes}m to {ticket_id} in Jira")
        return response.json() if response.content else {}
