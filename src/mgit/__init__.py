"""mgit: small program for managing multiple git repositories."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .backend import GitBackend, Relation, RepositoryBackend, TrackingBranch, WorktreeStatus
from .config import RawRecord, read_config, resolve_config_paths
from .control import WarningPolicy, WarningSink
from .core import (
    CancellationToken,
    FetchOrchestrator,
    app,
    run_pull,
    run_status,
)
from .decision import Action, decide
from .errors import (
    BackendError,
    ConfigAccessError,
    ConfigParseError,
    EmptyRegistryError,
    FastForwardError,
    FetchError,
    MgitError,
    ValidationError,
)
from .formatters import OutputFormatter
from .registry import (
    Group,
    Registry,
    RepositoryEntry,
    build_registry,
    group_sections,
    select,
    tag_sections,
)
from .report import (
    BranchOutcome,
    Color,
    RemoteReport,
    Report,
    ReportSection,
    ReportSummary,
    RepositoryReport,
)
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "Action",
    "BranchOutcome",
    "Color",
    "Group",
    "RawRecord",
    "Registry",
    "Relation",
    "RemoteReport",
    "Report",
    "ReportSection",
    "ReportSummary",
    "RepositoryEntry",
    "RepositoryReport",
    "TrackingBranch",
    "WorktreeStatus",
    # Errors
    "BackendError",
    "ConfigAccessError",
    "ConfigParseError",
    "EmptyRegistryError",
    "FastForwardError",
    "FetchError",
    "MgitError",
    "ValidationError",
    # Operations
    "CancellationToken",
    "FetchOrchestrator",
    "GitBackend",
    "RepositoryBackend",
    "WarningPolicy",
    "WarningSink",
    "build_registry",
    "decide",
    "group_sections",
    "read_config",
    "resolve_config_paths",
    "run_pull",
    "run_status",
    "select",
    "tag_sections",
    # Formatters
    "OutputFormatter",
    "get_tool_schema",
]
