"""
Common utilities shared across devsetup modules.
"""

from __future__ import annotations

import os
import shutil
import sys


def command_exists(name: str) -> bool:
    """
    Check if a command resolves on PATH.

    Args:
        name: Executable name

    Returns:
        True if the command can be found on PATH
    """
    return shutil.which(name) is not None


def is_root() -> bool:
    """Return True when running with an effective uid of 0."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def expand_path(path: str) -> str:
    """Expand ~ and environment variables in a path."""
    return os.path.expandvars(os.path.expanduser(path))


def repo_basename(url: str) -> str:
    """
    Get the checkout directory name for a repository URL.

    Args:
        url: Repository URL (https, ssh or local path)

    Returns:
        Last path component without a trailing .git
    """
    name = url.rstrip("/").rsplit("/", 1)[-1]
    name = name.rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("DEVSETUP_DEBUG", "0") == "1":
        try:
            from .logging_config import get_logger
            logger = get_logger()
            logger.info(msg)
        except Exception:
            try:
                print(f"[devsetup] {msg}", file=sys.stderr)
            except Exception:
                pass
