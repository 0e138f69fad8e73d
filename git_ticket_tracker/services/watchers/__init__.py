"""Detection strategies that signal "re-check the branch of repo X"."""

from .base import Disposable, DetectionStrategy, SignalCallback
from .native import (
    Active,
    Inactive,
    Unavailable,
    IntegrationStatus,
    NativeApiStrategy,
    detect_integration,
)
from .filesystem import FileSystemStrategy

__all__ = [
    "Disposable",
    "DetectionStrategy",
    "SignalCallback",
    "Active",
    "Inactive",
    "Unavailable",
    "IntegrationStatus",
    "NativeApiStrategy",
    "detect_integration",
    "FileSystemStrategy",
]
