"""Repository and branch-state models"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class RepositoryHandle:
    """One Git working tree found during discovery.

    Identity is the root path alone; git_dir differs from root/.git for
    worktrees and submodules whose .git entry is a `gitdir:` pointer file.
    """
    root_path: Path
    git_dir: Path = field(compare=False)

    @property
    def head_path(self) -> Path:
        """The HEAD pointer file."""
        return self.git_dir / "HEAD"

    @property
    def reflog_path(self) -> Path:
        """The HEAD reflog, appended on every commit and checkout."""
        return self.git_dir / "logs" / "HEAD"

    @property
    def key(self) -> str:
        """String key used for per-repository state."""
        return str(self.root_path)

    def __str__(self) -> str:
        return str(self.root_path)


@dataclass
class BranchState:
    """Last known branch of one repository, owned by the detector."""
    repo_path: str
    branch_name: str
    last_observed_at: datetime
    commit_hash: Optional[str] = None  # None = unborn branch or not read yet


@dataclass(frozen=True)
class BranchChangeEvent:
    """A confirmed branch transition in one repository."""
    repo_path: str
    previous_branch: str
    new_branch: str
    timestamp: datetime


@dataclass(frozen=True)
class BranchSnapshot:
    """Initial branch pushed to listeners when detection starts."""
    repo_path: str
    branch: str
    timestamp: datetime


@dataclass(frozen=True)
class CommitInfo:
    """The commit HEAD currently resolves to."""
    hexsha: str
    message: str

    @property
    def short_sha(self) -> str:
        return self.hexsha[:8]


@dataclass(frozen=True)
class CommitEvent:
    """A new commit observed on an unchanged branch."""
    repo_path: str
    branch: str
    commit_hash: str
    message: str
    timestamp: datetime
