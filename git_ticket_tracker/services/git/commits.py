"""HEAD commit lookup"""
from typing import Optional

import git

from git_ticket_tracker.logging_config import get_logger
from git_ticket_tracker.models.repository import CommitInfo, RepositoryHandle

logger = get_logger(__name__)


def read_head_commit(handle: RepositoryHandle) -> Optional[CommitInfo]:
    """Get the commit HEAD currently resolves to.

    Args:
        handle: Repository to inspect

    Returns:
        CommitInfo, or None for an unborn branch or an unreadable repository
    """
    try:
        repo = git.Repo(handle.root_path)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
        logger.debug(f"Cannot open {handle.root_path} for commit lookup: {e}")
        return None

    try:
        commit = repo.head.commit
        return CommitInfo(hexsha=commit.hexsha, message=commit.message.strip())
    except ValueError:
        # Unborn branch: HEAD names a ref that has no commits yet
        return None
    except (git.exc.GitCommandError, OSError) as e:
        logger.debug(f"Error reading HEAD commit of {handle.root_path}: {e}")
        return None
    finally:
        repo.close()
