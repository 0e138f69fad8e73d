"""Repository discovery across workspace roots"""
import logging
import os
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Union

from git_ticket_tracker.models.repository import RepositoryHandle
from git_ticket_tracker.logging_config import get_logger

GITDIR_PREFIX = "gitdir:"


class RepositoryDiscovery:
    """Find Git working trees under the workspace roots.

    Discovery is rare (startup and explicit refresh), so it always returns the
    full set and callers replace their watchers wholesale instead of diffing.
    """

    def __init__(self, depth: int = 1, logger: Optional[logging.Logger] = None):
        """Initialize discovery.

        Args:
            depth: How many directory levels below each root to inspect
                   (0 = the roots only, 1 = roots and immediate children)
            logger: Logger to report through
        """
        self.depth = depth
        self.logger = logger or get_logger(__name__)

    def discover(self, workspace_roots: Iterable[Union[str, Path]]) -> FrozenSet[RepositoryHandle]:
        """Return every repository found under the given roots."""
        found = set()
        for root in workspace_roots:
            root_path = Path(root).expanduser()
            try:
                root_path = root_path.resolve()
            except OSError as e:
                self.logger.warning(f"Skipping workspace root {root}: {e}")
                continue
            self._scan(root_path, self.depth, found)

        self.logger.info(f"Discovered {len(found)} repositories")
        return frozenset(found)

    def _scan(self, folder: Path, remaining_depth: int, found: set) -> None:
        handle = self.inspect(folder)
        if handle is not None:
            self.logger.debug(f"Found Git repository: {folder}")
            found.add(handle)

        if remaining_depth <= 0:
            return

        try:
            with os.scandir(folder) as entries:
                children = sorted(
                    Path(entry.path) for entry in entries
                    if entry.is_dir(follow_symlinks=False) and not entry.name.startswith(".")
                )
        except OSError as e:
            self.logger.warning(f"Cannot read folder {folder}: {e}")
            return

        for child in children:
            self._scan(child, remaining_depth - 1, found)

    def inspect(self, folder: Path) -> Optional[RepositoryHandle]:
        """Return a handle if folder is a working tree, else None.

        A `.git` directory qualifies directly. A `.git` file qualifies when it
        holds a `gitdir:` pointer (worktrees and submodules).
        """
        dot_git = folder / ".git"
        try:
            if dot_git.is_dir():
                return RepositoryHandle(root_path=folder, git_dir=dot_git)
            if dot_git.is_file():
                git_dir = self._read_gitdir_pointer(dot_git)
                if git_dir is None:
                    self.logger.debug(f"Ignoring .git file without gitdir pointer in {folder}")
                    return None
                if not git_dir.is_dir():
                    self.logger.warning(f"Ignoring {folder}: gitdir {git_dir} does not exist (stale worktree?)")
                    return None
                return RepositoryHandle(root_path=folder, git_dir=git_dir)
        except OSError as e:
            self.logger.warning(f"Cannot stat {dot_git}: {e}")
        return None

    @staticmethod
    def _read_gitdir_pointer(dot_git: Path) -> Optional[Path]:
        content = dot_git.read_text(encoding="utf-8", errors="replace").strip()
        if not content.startswith(GITDIR_PREFIX):
            return None
        target = Path(content[len(GITDIR_PREFIX):].strip())
        if not target.is_absolute():
            target = (dot_git.parent / target).resolve()
        return target
