"""Configuration handling for git-ticket-tracker"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

from git_ticket_tracker.constants import (
    BranchReaderKind,
    DEFAULT_PRODUCTIVE_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
)

# Credential fields that fall back to environment variables when unset
ENV_FALLBACKS = {
    "jira_base_url": "JIRA_BASE_URL",
    "jira_email": "JIRA_EMAIL",
    "jira_api_token": "JIRA_API_TOKEN",
    "productive_api_token": "PRODUCTIVE_API_TOKEN",
    "productive_organization_id": "PRODUCTIVE_ORGANIZATION_ID",
    "productive_base_url": "PRODUCTIVE_BASE_URL",
    "productive_default_service_id": "PRODUCTIVE_DEFAULT_SERVICE_ID",
}


@dataclass
class Config:
    """Configuration for git-ticket-tracker with validation."""

    # Repository discovery
    workspace_roots: List[str] = field(default_factory=lambda: [os.getcwd()])
    discovery_depth: int = 1  # 0 = roots only, 1 = roots and immediate children
    branch_reader: str = BranchReaderKind.HEAD_FILE

    # Detection strategies
    use_native_api: bool = True
    use_filesystem_watch: bool = True
    native_activation_retries: int = 5
    native_activation_delay: float = 2.0  # seconds, doubled on each retry

    # Jira
    jira_base_url: Optional[str] = None
    jira_email: Optional[str] = None
    jira_api_token: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    search_fallback: bool = True
    search_min_overlap: float = 0.5

    # Productive (secondary time accounting)
    productive_base_url: Optional[str] = None
    productive_api_token: Optional[str] = None
    productive_organization_id: Optional[str] = None
    productive_default_service_id: Optional[str] = None
    productive_project_mapping: Dict[str, str] = field(default_factory=dict)

    # Persistence and output
    state_dir: Optional[str] = None  # None = ~/.git-ticket-tracker/state
    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._apply_env_fallbacks()
        self._validate_workspace_roots()
        self._validate_discovery_depth()
        self._validate_branch_reader()
        self._validate_strategies()
        self._validate_native_activation()
        self._validate_request_timeout()
        self._validate_search_min_overlap()
        self._validate_project_mapping()

    def _apply_env_fallbacks(self):
        """Fill unset credentials from the environment."""
        for attr, env_var in ENV_FALLBACKS.items():
            if not getattr(self, attr):
                setattr(self, attr, os.environ.get(env_var) or None)
        if not self.productive_base_url:
            self.productive_base_url = DEFAULT_PRODUCTIVE_BASE_URL
        if self.jira_base_url:
            self.jira_base_url = self.jira_base_url.rstrip("/")
        self.productive_base_url = self.productive_base_url.rstrip("/")

    def _validate_workspace_roots(self):
        """Validate workspace_roots is a non-empty list of paths."""
        if isinstance(self.workspace_roots, (str, Path)):
            self.workspace_roots = [str(self.workspace_roots)]
        if not isinstance(self.workspace_roots, list) or not self.workspace_roots:
            raise ValueError("workspace_roots must be a non-empty list")
        self.workspace_roots = [str(Path(root).expanduser()) for root in self.workspace_roots]

    def _validate_discovery_depth(self):
        """Validate discovery_depth is not negative."""
        if self.discovery_depth < 0:
            raise ValueError(f"discovery_depth must be >= 0, got {self.discovery_depth}")

    def _validate_branch_reader(self):
        """Validate branch_reader is one of allowed values."""
        allowed = [BranchReaderKind.HEAD_FILE, BranchReaderKind.GIT_COMMAND]
        if self.branch_reader not in allowed:
            raise ValueError(f"branch_reader must be one of {allowed}, got '{self.branch_reader}'")

    def _validate_strategies(self):
        """Validate that at least one detection strategy is enabled."""
        if not (self.use_native_api or self.use_filesystem_watch):
            raise ValueError("At least one of use_native_api or use_filesystem_watch must be enabled")

    def _validate_native_activation(self):
        """Validate the native activation retry bounds."""
        if self.native_activation_retries < 0:
            raise ValueError(
                f"native_activation_retries must be >= 0, got {self.native_activation_retries}"
            )
        if self.native_activation_delay <= 0:
            raise ValueError(
                f"native_activation_delay must be positive, got {self.native_activation_delay}"
            )

    def _validate_request_timeout(self):
        """Validate request_timeout is positive."""
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

    def _validate_search_min_overlap(self):
        """Validate search_min_overlap is a ratio."""
        if not 0 <= self.search_min_overlap <= 1:
            raise ValueError(f"search_min_overlap must be between 0 and 1, got {self.search_min_overlap}")

    def _validate_project_mapping(self):
        """Validate productive_project_mapping maps strings to strings."""
        if not isinstance(self.productive_project_mapping, dict):
            raise ValueError("productive_project_mapping must be a dictionary")
        self.productive_project_mapping = {
            str(key).upper(): str(value) for key, value in self.productive_project_mapping.items()
        }

    @property
    def jira_configured(self) -> bool:
        """True when all Jira credentials are present."""
        return bool(self.jira_base_url and self.jira_email and self.jira_api_token)

    @property
    def productive_configured(self) -> bool:
        """True when the Productive token and organization are present."""
        return bool(self.productive_api_token and self.productive_organization_id)

    def to_dict(self) -> dict:
        """Convert config to dictionary, masking secrets."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        for secret in ("jira_api_token", "productive_api_token"):
            if result[secret]:
                result[secret] = "***"
        return result

    def get(self, key: str, default=None):
        """Get config value by key."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)
