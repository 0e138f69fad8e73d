"""Productive.io REST client used as the secondary time accounting system"""
import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

import httpx

from git_ticket_tracker.config import Config
from git_ticket_tracker.constants import Confidence, DEFAULT_PRODUCTIVE_BASE_URL, DEFAULT_REQUEST_TIMEOUT
from git_ticket_tracker.exceptions import AccountingError
from git_ticket_tracker.logging_config import get_logger

JSON_API = "application/vnd.api+json"
HISTORY_PAGE_SIZE = 50


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Project:
    id: str
    name: str


@dataclass(frozen=True)
class ServiceChoice:
    """A service picked for a time entry, with how sure we are about it."""
    id: str
    name: str
    confidence: str


def _resource_name(resource: dict) -> str:
    attributes = resource.get("attributes") or {}
    name = attributes.get("name")
    if name:
        return name
    full = f"{attributes.get('first_name') or ''} {attributes.get('last_name') or ''}".strip()
    return full or "Unknown"


def _service_id(entry: dict) -> Optional[str]:
    service = ((entry.get("relationships") or {}).get("service") or {}).get("data") or {}
    return service.get("id")


class ProductiveService:
    """Client for the Productive JSON:API.

    Calls raise AccountingError on any failure. The time logger treats those
    as a failed secondary log, never as a failed primary one.
    """

    def __init__(
        self,
        api_token: str,
        organization_id: str,
        base_url: str = DEFAULT_PRODUCTIVE_BASE_URL,
        default_service_id: Optional[str] = None,
        project_mapping: Optional[Dict[str, str]] = None,
        jira_base_url: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.organization_id = organization_id
        self.default_service_id = default_service_id
        self.project_mapping = {k.upper(): v for k, v in (project_mapping or {}).items()}
        self.jira_base_url = jira_base_url
        self.timeout = timeout
        self.logger = logger or get_logger(__name__)
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Content-Type": JSON_API,
                "Accept": JSON_API,
                "X-Auth-Token": api_token,
                "X-Organization-Id": str(organization_id),
            },
            transport=transport,
        )
        self._person: Optional[Person] = None

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.BaseTransport] = None,
                    logger: Optional[logging.Logger] = None) -> Optional["ProductiveService"]:
        """Build a client from configuration, or None when Productive is not configured."""
        if not config.productive_configured:
            return None
        return cls(
            config.productive_api_token,
            config.productive_organization_id,
            base_url=config.productive_base_url,
            default_service_id=config.productive_default_service_id,
            project_mapping=config.productive_project_mapping,
            jira_base_url=config.jira_base_url,
            timeout=config.request_timeout,
            transport=transport,
            logger=logger,
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, operation: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise AccountingError(operation, f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise AccountingError(operation, str(e))

        if response.is_error:
            raise AccountingError(operation, f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            return response.json()
        except ValueError:
            raise AccountingError(operation, "response is not JSON")

    def get_authenticated_person(self) -> Person:
        """Find the person the API token belongs to.

        The first organization membership id is the person id.
        """
        if self._person is not None:
            return self._person

        memberships = self._request("GET", "/organization_memberships", "get_authenticated_person").get("data") or []
        if not memberships:
            raise AccountingError("get_authenticated_person", "no organization membership found")

        person_id = memberships[0]["id"]
        person = self._request("GET", f"/people/{person_id}", "get_authenticated_person").get("data") or {}
        self._person = Person(
            id=str(person.get("id", person_id)),
            name=_resource_name(person),
            email=(person.get("attributes") or {}).get("email"),
        )
        self.logger.debug(f"Productive person: {self._person.name} ({self._person.id})")
        return self._person

    def list_projects(self) -> List[Project]:
        data = self._request("GET", "/projects", "list_projects",
                             params={"page[size]": 100, "page[number]": 1}).get("data") or []
        return [Project(id=str(p["id"]), name=_resource_name(p)) for p in data]

    def find_project(self, project_key: Optional[str]) -> Project:
        """Pick the Productive project for a Jira project key.

        Tried in order: configured mapping, names mapped dynamically from
        project names (full name, first word uppercased), exact name,
        substring match, word overlap, and finally the first project.
        """
        projects = self.list_projects()
        if not projects:
            raise AccountingError("find_project", "no projects found")
        by_id = {p.id: p for p in projects}

        if project_key:
            key = project_key.upper()
            mapped = self.project_mapping.get(key)
            if mapped and mapped in by_id:
                self.logger.debug(f"Configured mapping {key} -> {by_id[mapped].name}")
                return by_id[mapped]

            dynamic: Dict[str, Project] = {}
            for project in projects:
                dynamic.setdefault(project.name.upper(), project)
                first_word = project.name.split(" ")[0].upper()
                if len(first_word) > 1:
                    dynamic.setdefault(first_word, project)
            if key in dynamic:
                self.logger.debug(f"Dynamic mapping {key} -> {dynamic[key].name}")
                return dynamic[key]

            wanted = key.lower()
            for project in projects:
                if project.name.lower() == wanted:
                    return project

            for project in projects:
                name = project.name.lower()
                if wanted in name or name.split(" ")[0] in wanted:
                    self.logger.debug(f"Partial match {key} -> {project.name}")
                    return project

            key_words = [w for w in re.split(r"[-_\s]+", wanted) if len(w) > 1]
            for project in projects:
                name_words = [w for w in re.split(r"[-_\s]+", project.name.lower()) if w]
                if any(kw in pw or pw in kw for kw in key_words for pw in name_words):
                    self.logger.debug(f"Word match {key} -> {project.name}")
                    return project

        self.logger.warning(
            f"No Productive project matches '{project_key}', using {projects[0].name}; "
            f"set productive_project_mapping to choose one"
        )
        return projects[0]

    def _service_from_history(self, params: dict, single: str, most_used: str) -> Optional[ServiceChoice]:
        body = self._request("GET", "/time_entries", "discover_service",
                             params={**params, "page[size]": HISTORY_PAGE_SIZE, "include": "service"})
        counts = Counter(sid for sid in (_service_id(e) for e in body.get("data") or []) if sid)
        if not counts:
            return None

        names = {
            str(inc["id"]): _resource_name(inc)
            for inc in body.get("included") or []
            if inc.get("type") == "services"
        }
        service_id, _ = counts.most_common(1)[0]
        confidence = single if len(counts) == 1 else most_used
        return ServiceChoice(id=str(service_id), name=names.get(str(service_id), "Unknown Service"),
                             confidence=confidence)

    def discover_service(self, person_id: str, project_id: str) -> ServiceChoice:
        """Pick the service for a time entry.

        Order: configured default, this person's history on the project, the
        project's history, then the first service in the organization.
        """
        if self.default_service_id:
            try:
                service = self._request("GET", f"/services/{self.default_service_id}", "discover_service")
                return ServiceChoice(
                    id=str(self.default_service_id),
                    name=_resource_name(service.get("data") or {}),
                    confidence=Confidence.CONFIGURED,
                )
            except AccountingError as e:
                self.logger.warning(f"Configured service {self.default_service_id} not accessible: {e}")

        choice = self._service_from_history(
            {"filter[person_id]": person_id, "filter[project_id]": project_id},
            Confidence.HISTORY_SINGLE, Confidence.HISTORY_MOST_USED,
        )
        if choice is None:
            choice = self._service_from_history(
                {"filter[project_id]": project_id},
                Confidence.PROJECT_SINGLE, Confidence.PROJECT_MOST_USED,
            )
        if choice is not None:
            return choice

        services = self._request("GET", "/services", "discover_service").get("data") or []
        if not services:
            raise AccountingError("discover_service", "no services available in organization")
        return ServiceChoice(id=str(services[0]["id"]), name=_resource_name(services[0]),
                             confidence=Confidence.FALLBACK)

    def create_time_entry(
        self,
        person_id: str,
        project_id: str,
        service_id: str,
        minutes: int,
        note: str,
        jira_ticket_id: Optional[str] = None,
        entry_date: Optional[date] = None,
    ) -> dict:
        """Create a time entry and return the created resource."""
        attributes = {
            "date": (entry_date or date.today()).isoformat(),
            "time": minutes,
            "note": note,
            "track_method_id": 1,
            "overhead": False,
        }
        if jira_ticket_id:
            attributes["jira_issue_id"] = jira_ticket_id
            if self.jira_base_url:
                attributes["jira_organization"] = self.jira_base_url

        payload = {
            "data": {
                "type": "time_entries",
                "attributes": attributes,
                "relationships": {
                    "person": {"data": {"type": "people", "id": person_id}},
                    "project": {"data": {"type": "projects", "id": project_id}},
                    "service": {"data": {"type": "services", "id": service_id}},
                    "organization": {"data": {"type": "organizations", "id": str(self.organization_id)}},
                },
            }
        }
        created = self._request("POST", "/time_entries", "create_time_entry", json=payload).get("data") or {}
        self.logger.info(f"Productive time entry {created.get('id')} created: {minutes}m")
        return created
