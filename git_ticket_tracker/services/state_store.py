"""Workspace-scoped persistent key/value state"""
import hashlib
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from git_ticket_tracker.constants import STATE_DIR_NAME
from git_ticket_tracker.exceptions import StateStoreError
from git_ticket_tracker.logging_config import get_logger

# Import fcntl for POSIX file locking (Unix/Linux/macOS)
try:
    import fcntl
    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False


class WorkspaceStateStore:
    """JSON document of values scoped to one workspace.

    The workspace is identified by its sorted, resolved root paths, so the
    same set of folders maps to the same file across restarts.
    """

    def __init__(self, workspace_roots: Iterable[Union[str, Path]], state_dir: Optional[Union[str, Path]] = None,
                 logger: Optional[logging.Logger] = None):
        """Initialize the store.

        Args:
            workspace_roots: Roots identifying the workspace
            state_dir: Directory holding state files (default ~/.git-ticket-tracker/state)
            logger: Logger to report through
        """
        self.logger = logger or get_logger(__name__)
        self.workspace_roots = sorted(str(Path(root).expanduser().resolve()) for root in workspace_roots)
        self.state_dir = Path(state_dir).expanduser() if state_dir else Path.home() / STATE_DIR_NAME / "state"
        self.state_file = self.state_dir / f"{self._get_workspace_hash()}.json"

    def _get_workspace_hash(self) -> str:
        """Generate a unique hash for the workspace roots."""
        return hashlib.md5("\n".join(self.workspace_roots).encode()).hexdigest()

    @contextmanager
    def _acquire_lock(self, file_handle, operation: str = "read"):
        """Hold a shared (read) or exclusive (write) lock on an open file."""
        if not HAS_FCNTL:
            yield
            return

        lock_type = fcntl.LOCK_EX if operation == "write" else fcntl.LOCK_SH
        fcntl.flock(file_handle.fileno(), lock_type)
        try:
            yield
        finally:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)

    def _load(self) -> Dict[str, Any]:
        if not self.state_file.exists():
            return {}
        try:
            with open(self.state_file, "r") as f:
                with self._acquire_lock(f, operation="read"):
                    data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Invalid JSON in state file {self.state_file}: {e}")
            return {}
        except OSError as e:
            self.logger.warning(f"Failed to read state file {self.state_file}: {e}")
            return {}

        values = data.get("values") if isinstance(data, dict) else None
        if not isinstance(values, dict):
            self.logger.warning(f"State file {self.state_file} has no values, ignoring it")
            return {}
        return values

    def get(self, key: str, default: Any = None) -> Any:
        """Get the stored value for key."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, written through to disk atomically.

        Raises:
            StateStoreError: The value cannot be serialized or written
        """
        values = self._load()
        values[key] = value
        document = {
            "workspace_roots": self.workspace_roots,
            "last_updated": datetime.now().isoformat(),
            "values": values,
        }

        temp_file = self.state_file.with_suffix(".tmp")
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                with self._acquire_lock(f, operation="write"):
                    json.dump(document, f, indent=2)
                    f.flush()
            # Atomic rename (POSIX systems guarantee atomicity)
            temp_file.replace(self.state_file)
        except (OSError, TypeError, ValueError) as e:
            raise StateStoreError(f"Failed to save state key '{key}': {e}")
        finally:
            if temp_file.exists():
                temp_file.unlink()
        self.logger.debug(f"Saved state key '{key}' to {self.state_file}")
