"""Current-branch readers.

Two interchangeable ways to learn which branch a working tree has checked out:
parsing the HEAD pointer file directly, or asking git itself. Both are
side-effect free and raise BranchReadFailure subclasses instead of returning
error values, so the detector can skip a round and retry on the next signal.
"""
import re
from typing import Union

import git

from git_ticket_tracker.constants import DETACHED_HEAD, BranchReaderKind
from git_ticket_tracker.exceptions import BranchReadError, NotARepositoryError
from git_ticket_tracker.models.repository import RepositoryHandle

REF_PREFIX = "ref:"
BRANCH_REF_PREFIX = "refs/heads/"
# SHA-1 and SHA-256 object names
_COMMIT_HASH_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


class BranchReader:
    """Interface shared by the branch readers."""

    kind = ""

    def read_branch(self, handle: RepositoryHandle) -> str:
        """Return the checked-out branch, or DETACHED_HEAD."""
        raise NotImplementedError


def parse_head(content: str) -> str:
    """Parse HEAD pointer file content into a branch name.

    Raises:
        ValueError: if the content is neither a ref nor a commit hash
    """
    text = content.strip()
    if text.startswith(REF_PREFIX):
        ref = text[len(REF_PREFIX):].strip()
        if ref.startswith(BRANCH_REF_PREFIX):
            name = ref[len(BRANCH_REF_PREFIX):]
            if name:
                return name
        elif ref:
            # Symbolic ref outside refs/heads (rare, e.g. refs/remotes/...)
            return ref
        raise ValueError(f"Malformed ref in HEAD: {text!r}")
    if _COMMIT_HASH_RE.match(text):
        return DETACHED_HEAD
    raise ValueError(f"Unrecognised HEAD content: {text[:60]!r}")


class HeadFileBranchReader(BranchReader):
    """Read the branch by parsing the HEAD pointer file."""

    kind = BranchReaderKind.HEAD_FILE

    def read_branch(self, handle: RepositoryHandle) -> str:
        if not (handle.root_path / ".git").exists():
            raise NotARepositoryError(handle.root_path)
        try:
            content = handle.head_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # HEAD is briefly absent while git renames HEAD.lock into place
            raise BranchReadError(handle.root_path, "HEAD file missing")
        except (OSError, UnicodeDecodeError) as e:
            raise BranchReadError(handle.root_path, str(e))

        if not content.strip():
            raise BranchReadError(handle.root_path, "HEAD file is empty")
        try:
            return parse_head(content)
        except ValueError as e:
            raise BranchReadError(handle.root_path, str(e))


class GitCommandBranchReader(BranchReader):
    """Read the branch by running `git branch --show-current`."""

    kind = BranchReaderKind.GIT_COMMAND

    def read_branch(self, handle: RepositoryHandle) -> str:
        try:
            repo = git.Repo(handle.root_path)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            raise NotARepositoryError(handle.root_path)

        try:
            output = repo.git.branch("--show-current")
        except git.exc.GitCommandError as e:
            raise BranchReadError(handle.root_path, (e.stderr or str(e)).strip())
        finally:
            repo.close()

        # Empty output means detached HEAD
        return output.strip() or DETACHED_HEAD


def create_branch_reader(kind: str) -> Union[HeadFileBranchReader, GitCommandBranchReader]:
    """Build the reader selected in configuration."""
    if kind == BranchReaderKind.HEAD_FILE:
        return HeadFileBranchReader()
    if kind == BranchReaderKind.GIT_COMMAND:
        return GitCommandBranchReader()
    raise ValueError(f"Unknown branch reader: {kind}")
