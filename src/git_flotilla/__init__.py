"""git-flotilla: bulk-manage a fleet of Git repositories."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

import logging

from ._version import __version__
from .cancel import CancelToken
from .config import Settings, load_settings
from .core import FleetManager, app
from .dispatch import dispatch
from .errors import (
    AuthenticationRequired,
    ConfigurationError,
    FlotillaError,
    GitCommandError,
    OperationCancelled,
    RefspecError,
    RepositoryError,
)
from .formatters import OutputFormatter
from .gitcmd import GitCommandResult, GitExecutor
from .models import (
    BatchResult,
    BranchInfo,
    ChangedFile,
    CleanupWarning,
    OperationOutcome,
    OperationStatus,
    RepositoryHandle,
    RepositoryInfo,
    RepositoryState,
    StatusCategory,
    summarize,
)
from .operations import (
    CleanupOperation,
    CleanupOptions,
    BranchListOperation,
    BranchListOptions,
    CloneOptions,
    DiffOperation,
    DiffOptions,
    FetchOperation,
    FetchOptions,
    PullOperation,
    PullOptions,
    PullStrategy,
    PushOperation,
    PushOptions,
    StashAction,
    StashOperation,
    StashOptions,
    StatusOperation,
    SwitchOperation,
    SwitchOptions,
    TagAction,
    TagOperation,
    TagOptions,
    clone_repository,
)
from .pipeline import Operation, Stage, SyncPipeline
from .refspec import ParsedRefspec, validate_ref_name, validate_refspec
from .repository import RepositoryClient, parse_porcelain_status
from .scanner import PatternFilter, scan_repositories
from .schema import get_tool_schema

# Silent unless the application configures logging (the CLI does).
logging.getLogger("git_flotilla").addHandler(logging.NullHandler())

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Engine
    "FleetManager",
    "SyncPipeline",
    "Stage",
    "Operation",
    "dispatch",
    "scan_repositories",
    "PatternFilter",
    "RepositoryClient",
    "parse_porcelain_status",
    "GitExecutor",
    "GitCommandResult",
    "CancelToken",
    # Operations
    "BranchListOperation",
    "BranchListOptions",
    "CleanupOperation",
    "CleanupOptions",
    "CloneOptions",
    "DiffOperation",
    "DiffOptions",
    "FetchOperation",
    "FetchOptions",
    "PullOperation",
    "PullOptions",
    "PullStrategy",
    "PushOperation",
    "PushOptions",
    "StashAction",
    "StashOperation",
    "StashOptions",
    "StatusOperation",
    "SwitchOperation",
    "SwitchOptions",
    "TagAction",
    "TagOperation",
    "TagOptions",
    "clone_repository",
    # Models
    "BatchResult",
    "BranchInfo",
    "ChangedFile",
    "CleanupWarning",
    "OperationOutcome",
    "OperationStatus",
    "RepositoryHandle",
    "RepositoryInfo",
    "RepositoryState",
    "StatusCategory",
    "summarize",
    # Refspecs
    "ParsedRefspec",
    "validate_ref_name",
    "validate_refspec",
    # Config
    "Settings",
    "load_settings",
    # Errors
    "AuthenticationRequired",
    "ConfigurationError",
    "FlotillaError",
    "GitCommandError",
    "OperationCancelled",
    "RefspecError",
    "RepositoryError",
    # Functions
    "get_tool_schema",
    # Formatters
    "OutputFormatter",
]
