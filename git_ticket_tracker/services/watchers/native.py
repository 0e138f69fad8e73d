"""Detection through a host-provided Git integration.

Hosts that embed the tracker (an editor, an IDE bridge) can hand over their
own Git integration. It tells us when a repository's state changed, which is
cheaper and faster than watching files. The integration may be missing or
still activating when we start, so availability is modelled explicitly and
attachment is retried a bounded number of times.
"""
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Union

from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.repository import RepositoryHandle
from git_ticket_tracker.services.watchers.base import DetectionStrategy, Disposable, SignalCallback


class NativeRepository(Protocol):
    """One repository as exposed by the host integration."""

    root_path: str

    def on_state_change(self, callback: Callable[[], None]) -> Disposable:
        ...


class GitIntegration(Protocol):
    """The host's Git integration surface."""

    is_active: bool

    def repositories(self) -> List[NativeRepository]:
        ...

    def on_repositories_changed(self, callback: Callable[[], None]) -> Disposable:
        ...


# Zero-argument callable returning the host integration, or None when absent
IntegrationProvider = Callable[[], Optional[GitIntegration]]


@dataclass(frozen=True)
class Unavailable:
    reason: str


@dataclass(frozen=True)
class Inactive:
    integration: Any


@dataclass(frozen=True)
class Active:
    api: Any


IntegrationStatus = Union[Unavailable, Inactive, Active]


def detect_integration(provider: Optional[IntegrationProvider]) -> IntegrationStatus:
    """Classify the host Git integration."""
    if provider is None:
        return Unavailable("no Git integration provider")
    try:
        integration = provider()
    except Exception as e:
        return Unavailable(f"Git integration provider failed: {e}")
    if integration is None:
        return Unavailable("Git integration not installed")
    if not integration.is_active:
        return Inactive(integration)
    return Active(integration)


def _describe_status(status: IntegrationStatus) -> str:
    if isinstance(status, Active):
        return "active"
    if isinstance(status, Inactive):
        return "inactive"
    if isinstance(status, Unavailable):
        return f"unavailable ({status.reason})"
    raise TypeError(f"Unknown integration status: {status!r}")


class NativeApiStrategy(DetectionStrategy):
    """Signal re-checks from the host Git integration's change notifications."""

    name = "native-api"

    def __init__(
        self,
        provider: Optional[IntegrationProvider],
        retries: int = 5,
        delay: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the strategy.

        Args:
            provider: Returns the host integration, or None when there is none
            retries: Maximum activation retries while the integration is inactive
            delay: Seconds before the first retry, doubled on each further retry
            logger: Logger to report through
        """
        self.provider = provider
        self.retries = retries
        self.delay = delay
        self.logger = logger or get_logger(__name__)

        self._lock = threading.RLock()
        self._handles: Dict[str, RepositoryHandle] = {}
        self._on_signal: Optional[SignalCallback] = None
        self._subscriptions: List[Disposable] = []
        self._list_subscription: Optional[Disposable] = None
        self._retry_timer: Optional[threading.Timer] = None
        self._attempts = 0
        self._running = False
        self._status: IntegrationStatus = Unavailable("not started")
        self._attached: List[str] = []

    @property
    def status(self) -> IntegrationStatus:
        return self._status

    @property
    def attached_paths(self) -> List[str]:
        """Repository paths currently subscribed through the integration."""
        with self._lock:
            return list(self._attached)

    def start(self, handles: Iterable[RepositoryHandle], on_signal: SignalCallback) -> Disposable:
        with self._lock:
            self._teardown()
            self._handles = {handle.key: handle for handle in handles}
            self._on_signal = on_signal
            self._attempts = 0
            self._running = True
            self._try_attach()
        return Disposable(self.stop)

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._teardown()
            self.logger.debug("Native Git integration strategy stopped")

    def describe(self) -> dict:
        with self._lock:
            return {
                "strategy": self.name,
                "running": self._running,
                "status": _describe_status(self._status),
                "activation_attempts": self._attempts,
                "attached": list(self._attached),
            }

    def _try_attach(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._retry_timer = None
            self._status = detect_integration(self.provider)

            if isinstance(self._status, Active):
                self._attach(self._status.api)
            elif isinstance(self._status, Inactive):
                self._schedule_retry()
            elif isinstance(self._status, Unavailable):
                self.logger.debug(f"Native Git integration {self._status.reason}; relying on filesystem watch")
            else:
                raise TypeError(f"Unknown integration status: {self._status!r}")

    def _schedule_retry(self) -> None:
        if self._attempts >= self.retries:
            self.logger.info(
                f"Git integration still inactive after {self._attempts} retries; relying on filesystem watch"
            )
            return
        wait = self.delay * (2 ** self._attempts)
        self._attempts += 1
        self.logger.debug(f"Git integration inactive, retry {self._attempts}/{self.retries} in {wait:.1f}s")
        timer = threading.Timer(wait, self._try_attach)
        timer.daemon = True
        self._retry_timer = timer
        timer.start()

    def _attach(self, api: GitIntegration) -> None:
        self._dispose_repository_subscriptions()
        if self._list_subscription is None:
            self._list_subscription = api.on_repositories_changed(self._on_repositories_changed)

        for native_repo in api.repositories():
            key = self._match_handle(native_repo.root_path)
            if key is None:
                self.logger.debug(f"Integration repository {native_repo.root_path} is not in the workspace")
                continue
            self._subscriptions.append(native_repo.on_state_change(self._make_forwarder(key)))
            self._attached.append(key)

        self.logger.info(f"Native Git integration attached to {len(self._attached)} repositories")

    def _on_repositories_changed(self) -> None:
        with self._lock:
            if not self._running or not isinstance(self._status, Active):
                return
            self.logger.debug("Integration repository list changed, reattaching")
            self._attach(self._status.api)

    def _make_forwarder(self, repo_key: str) -> Callable[[], None]:
        def forward() -> None:
            callback = self._on_signal
            if self._running and callback is not None:
                callback(repo_key)
        return forward

    def _match_handle(self, root_path: str) -> Optional[str]:
        try:
            key = str(Path(root_path).resolve())
        except OSError:
            return None
        return key if key in self._handles else None

    def _dispose_repository_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        self._attached = []

    def _teardown(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self._dispose_repository_subscriptions()
        if self._list_subscription is not None:
            self._list_subscription.dispose()
            self._list_subscription = None
