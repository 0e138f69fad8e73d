"""Pytest fixtures for git-ticket-tracker tests"""
import tempfile
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Dict, List
from unittest.mock import Mock

import git
import pytest

from git_ticket_tracker.config import ENV_FALLBACKS
from git_ticket_tracker.models.repository import CommitInfo, RepositoryHandle
from git_ticket_tracker.services.git.branch_reader import BranchReader
from git_ticket_tracker.services.watchers.base import Disposable


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials in the environment out of every test."""
    for env_var in ENV_FALLBACKS.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def state_dir(temp_dir):
    """Directory for workspace state files, outside any workspace."""
    path = temp_dir / "state"
    path.mkdir()
    return path


@pytest.fixture
def workspace(temp_dir):
    """Empty workspace root."""
    path = temp_dir / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def mock_config(workspace, state_dir):
    """Create a configuration dictionary with no remote systems configured."""
    return {
        "workspace_roots": [str(workspace)],
        "discovery_depth": 1,
        "branch_reader": "head-file",
        "use_native_api": False,
        "use_filesystem_watch": True,
        "state_dir": str(state_dir),
        "verbose": False,
        "debug": False,
    }


def init_repo(path: Path, branch: str = "main") -> git.Repo:
    """Create a real repository with one commit on the given branch."""
    path.mkdir(parents=True, exist_ok=True)
    repo = git.Repo.init(path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    readme = path / "README.md"
    readme.write_text("# Test Repository\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    repo.git.branch("-M", branch)
    return repo


def commit_file(repo: git.Repo, name: str, message: str) -> str:
    """Commit a new file and return the commit hash."""
    path = Path(repo.working_dir) / name
    path.write_text(f"{name}\n")
    repo.index.add([name])
    return repo.index.commit(message).hexsha


@pytest.fixture
def git_repo(workspace):
    """Create a real Git repository inside the workspace."""
    repo = init_repo(workspace / "test_repo")
    yield repo
    repo.close()


@pytest.fixture
def two_repos(workspace):
    """Two real repositories side by side in the workspace."""
    alpha = init_repo(workspace / "alpha")
    beta = init_repo(workspace / "beta")
    alpha.git.checkout("-b", "feature/ABC-1-login")
    yield alpha, beta
    alpha.close()
    beta.close()


def make_fake_repo(root: Path, head: str = "ref: refs/heads/main\n") -> RepositoryHandle:
    """Create a bare-minimum working tree layout without running git."""
    git_dir = root / ".git"
    git_dir.mkdir(parents=True)
    (git_dir / "HEAD").write_text(head)
    return RepositoryHandle(root_path=root, git_dir=git_dir)


class FakeReader(BranchReader):
    """Branch reader answering from a dict, optionally failing."""

    kind = "fake"

    def __init__(self, branches: Dict[str, str] = None):
        self.branches = dict(branches or {})
        self.errors: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def read_branch(self, handle: RepositoryHandle) -> str:
        with self._lock:
            self.calls.append(handle.key)
        if handle.key in self.errors:
            raise self.errors[handle.key]
        return self.branches[handle.key]


class FakeCommits:
    """HEAD commit lookup answering from a dict."""

    def __init__(self):
        self.commits: Dict[str, CommitInfo] = {}

    def __call__(self, handle: RepositoryHandle):
        return self.commits.get(handle.key)


class FakeNativeRepository:
    """Repository object of a fake host Git integration."""

    def __init__(self, root_path: str):
        self.root_path = root_path
        self.callbacks = []

    def on_state_change(self, callback):
        self.callbacks.append(callback)
        return Disposable(lambda: self.callbacks.remove(callback))

    def fire(self):
        for callback in list(self.callbacks):
            callback()


class FakeIntegration:
    """Host Git integration that can be switched active and given repositories."""

    def __init__(self, roots=(), is_active: bool = True):
        self.is_active = is_active
        self.repos = [FakeNativeRepository(str(root)) for root in roots]
        self.list_callbacks = []

    def repositories(self):
        return list(self.repos)

    def on_repositories_changed(self, callback):
        self.list_callbacks.append(callback)
        return Disposable(lambda: self.list_callbacks.remove(callback))

    def add_repository(self, root) -> FakeNativeRepository:
        native = FakeNativeRepository(str(root))
        self.repos.append(native)
        for callback in list(self.list_callbacks):
            callback()
        return native


@pytest.fixture
def fake_reader():
    return FakeReader()


@pytest.fixture
def fake_commits():
    return FakeCommits()


@pytest.fixture
def mock_jira():
    """Create a mock JiraService where every ticket exists."""
    jira = Mock()
    jira.verify_ticket = Mock(return_value=True)
    jira.get_ticket_fields = Mock(return_value={
        "summary": "Login page",
        "status": "In Progress",
        "description": None,
        "project_key": "ABC",
    })
    jira.search_tickets = Mock(return_value=[])
    jira.add_worklog = Mock(return_value={"id": "10001"})
    return jira


class ImmediateExecutor:
    """Executor running work inline, so automation results are visible at once."""

    def __init__(self):
        self.shut_down = False

    def submit(self, fn, *args, **kwargs):
        if self.shut_down:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        self.shut_down = True


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()
