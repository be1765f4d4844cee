"""git-tools: keep a fleet of Git repositories tidy."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .adapters import CommandOutput, FileSystem, LocalFileSystem, ProcessRunner, SubprocessRunner
from .branches import BranchStateEngine, get_hierarchical_name
from .cli import app
from .config import (
    DEFAULT_PROTECTED_BRANCHES,
    GitToolsOptions,
    configure_logging,
    load_roots_file,
    resolve_roots_file,
)
from .core import FleetManager, MultiRootFleetManager
from .exceptions import ConfigurationError, GitCommandError, GitToolsError
from .formatters import OutputFormatter
from .gateway import GitCommandGateway, resolve_working_directory
from .models import (
    UNKNOWN_COMMIT_DATE,
    BranchStatus,
    DeleteSafety,
    FleetSummary,
    GitRepositoryStatus,
    OperationResult,
    OutdatedStatus,
    Repository,
    RepositorySyncState,
    TagSearchResult,
)
from .prune import select_prunable
from .scanner import GitRepositoryScanner
from .schema import get_tool_schema
from .sync import SynchronizationOrchestrator
from .tags import TagSearchService, match_items, parse_tags, wildcard_to_regex

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "UNKNOWN_COMMIT_DATE",
    "BranchStatus",
    "DeleteSafety",
    "FleetSummary",
    "GitRepositoryStatus",
    "OperationResult",
    "OutdatedStatus",
    "Repository",
    "RepositorySyncState",
    "TagSearchResult",
    # Configuration
    "DEFAULT_PROTECTED_BRANCHES",
    "GitToolsOptions",
    "configure_logging",
    "load_roots_file",
    "resolve_roots_file",
    # Errors
    "ConfigurationError",
    "GitCommandError",
    "GitToolsError",
    # Capabilities
    "CommandOutput",
    "FileSystem",
    "LocalFileSystem",
    "ProcessRunner",
    "SubprocessRunner",
    # Engine
    "BranchStateEngine",
    "GitCommandGateway",
    "GitRepositoryScanner",
    "SynchronizationOrchestrator",
    "TagSearchService",
    "get_hierarchical_name",
    "match_items",
    "parse_tags",
    "resolve_working_directory",
    "select_prunable",
    "wildcard_to_regex",
    # Fleet
    "FleetManager",
    "MultiRootFleetManager",
    # Output
    "OutputFormatter",
    "get_tool_schema",
]
