"""
devsetup - Developer machine bootstrap and maintenance.

Core Modules:
- Reconciliation: desired items, operations, reports
- Backends: packages (brew, apt, cargo), directories, git repositories, stow
- Foundation: platform detection, config, package managers, command runner
- Workflows: packages, plugins, dotfiles, periodic maintenance
"""

__version__ = "1.0.0"

# Reconciliation
from .items import (
    DesiredItem,
    Operation,
    PACKAGE,
    DIRECTORY,
    REPOSITORY,
    DOTFILE_PACKAGE,
    PRESENT,
    ABSENT,
    REFRESH,
)
from .reconcile import (
    ItemOutcome,
    Report,
    ReconcileError,
    PreconditionError,
    OperationError,
    reconcile,
    plan_operations,
)

# Backends
from .backends import (
    Backend,
    PackageBackend,
    DirectoryBackend,
    RepositoryBackend,
    StowBackend,
    discover_packages,
    is_stowed,
    has_links,
)

# Foundation
from .environment import Platform, detect_platform
from .config import Config, PluginGroup, DotfilesConfig, Preferences, load_config, load_config_file, validate_config
from .package_managers import PackageManager, get_package_manager, select_package_manager
from .runner import CommandStep, StepResult, execute_step

# Maintenance
from .maintenance import TaskResult, run_maintenance

# Logging configuration
from .logging_config import setup_logging, get_logger

__all__ = [
    "__version__",
    # Reconciliation
    "DesiredItem",
    "Operation",
    "PACKAGE",
    "DIRECTORY",
    "REPOSITORY",
    "DOTFILE_PACKAGE",
    "PRESENT",
    "ABSENT",
    "REFRESH",
    "ItemOutcome",
    "Report",
    "ReconcileError",
    "PreconditionError",
    "OperationError",
    "reconcile",
    "plan_operations",
    # Backends
    "Backend",
    "PackageBackend",
    "DirectoryBackend",
    "RepositoryBackend",
    "StowBackend",
    "discover_packages",
    "is_stowed",
    "has_links",
    # Foundation
    "Platform",
    "detect_platform",
    "Config",
    "PluginGroup",
    "DotfilesConfig",
    "Preferences",
    "load_config",
    "load_config_file",
    "validate_config",
    "PackageManager",
    "get_package_manager",
    "select_package_manager",
    "CommandStep",
    "StepResult",
    "execute_step",
    # Maintenance
    "TaskResult",
    "run_maintenance",
    # Logging
    "setup_logging",
    "get_logger",
]
