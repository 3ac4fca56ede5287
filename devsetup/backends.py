"""
Backends that query and mutate the machine on behalf of the reconciler.

A backend handles one or more item kinds and exposes:
- exists(item): actual state of the item, queried fresh every call
- is_present(item, mode): the state a mode acts on (exists() unless overridden)
- operation_for(item, mode): the operation that moves the item toward the mode
- apply(operation): perform it, raising on failure
- check_preconditions(items, mode): raise PreconditionError before any change
"""

from __future__ import annotations

import os
import re
import shutil
from typing import Mapping, Sequence

from .common import command_exists, expand_path, repo_basename, vlog
from .items import (
    ABSENT,
    CLONE,
    CREATE,
    DELETE,
    DIRECTORY,
    DOTFILE_PACKAGE,
    INSTALL,
    PACKAGE,
    PRESENT,
    PULL,
    REFRESH,
    REMOVE,
    REPOSITORY,
    RESTOW,
    STOW,
    UNSTOW,
    DesiredItem,
    Operation,
)
from .package_managers import PackageManager
from .reconcile import OperationError, PreconditionError
from .runner import CommandStep, StepResult, execute_step


class Backend:
    """
    Base class for backends.

    Subclasses set `name`, `kinds` and `operations` (mode -> operation kind)
    and implement `exists` and `apply`.
    """
    name = "backend"
    kinds: tuple[str, ...] = ()
    operations: Mapping[str, str] = {}

    def __init__(self, timeout: int | None = None, verbose: bool = False):
        self.timeout = timeout
        self.verbose = verbose

    def exists(self, item: DesiredItem) -> bool:
        raise NotImplementedError

    def apply(self, operation: Operation) -> None:
        raise NotImplementedError

    def is_present(self, item: DesiredItem, mode: str) -> bool:
        """Actual state of the item as judged for a reconciliation mode."""
        return self.exists(item)

    def operation_for(self, item: DesiredItem, mode: str) -> Operation | None:
        kind = self.operations.get(mode)
        if kind is None:
            return None
        return Operation(kind, item)

    def check_preconditions(self, items: Sequence[DesiredItem], mode: str) -> None:
        """Raise PreconditionError if the mode cannot run at all."""

    def _run(self, step: CommandStep) -> StepResult:
        result = execute_step(step, timeout=self.timeout, verbose=self.verbose)
        if not result.success:
            raise OperationError(
                f"{step.description}: {result.error_message}",
                result=result,
            )
        return result

    def _unsupported(self, operation: Operation) -> OperationError:
        return OperationError(f"{self.name} cannot apply {operation.kind} operations")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PackageBackend(Backend):
    """
    Packages managed by a single package manager.

    With presence_check='manager' a package exists when the package manager
    reports it as installed. With 'binary' it exists when a command of the
    same name is on PATH.
    """
    kinds = (PACKAGE,)
    operations = {PRESENT: INSTALL, ABSENT: REMOVE}

    def __init__(
        self,
        manager: PackageManager,
        presence_check: str = "manager",
        timeout: int | None = None,
        verbose: bool = False,
    ):
        super().__init__(timeout=timeout, verbose=verbose)
        if presence_check not in ("manager", "binary"):
            raise ValueError(f"Invalid presence_check: {presence_check}")
        self.manager = manager
        self.presence_check = presence_check
        self.name = manager.name

    def exists(self, item: DesiredItem) -> bool:
        package = item.identifier
        if self.presence_check == "binary":
            return command_exists(package)

        step = CommandStep(
            description=f"Query {package}",
            command=self.manager.get_query_command(package),
        )
        result = execute_step(step, timeout=self.timeout, verbose=self.verbose)
        if result.exit_code == -1:
            raise OperationError(
                f"Could not query {self.manager.display_name}: {result.error_message}",
                result=result,
                remediation=f"Install {self.manager.display_name} first",
            )
        return self.manager.is_installed_output(package, result.exit_code, result.stdout)

    def apply(self, operation: Operation) -> None:
        package = operation.item.identifier
        if operation.kind == INSTALL:
            self._run(self.manager.install_step(package))
        elif operation.kind == REMOVE:
            self._run(self.manager.remove_step(package))
        else:
            raise self._unsupported(operation)


class DirectoryBackend(Backend):
    """Plain directories on the local filesystem."""
    name = "directory"
    kinds = (DIRECTORY,)
    operations = {PRESENT: CREATE, ABSENT: DELETE}

    def exists(self, item: DesiredItem) -> bool:
        return os.path.isdir(expand_path(item.identifier))

    def apply(self, operation: Operation) -> None:
        path = expand_path(operation.item.identifier)
        if operation.kind == CREATE:
            os.makedirs(path, exist_ok=True)
        elif operation.kind == DELETE:
            shutil.rmtree(path)
        else:
            raise self._unsupported(operation)

    def check_preconditions(self, items: Sequence[DesiredItem], mode: str) -> None:
        if mode != ABSENT:
            return
        missing = [item.identifier for item in items if not self.exists(item)]
        if missing:
            raise PreconditionError(
                f"Directory not found: {', '.join(missing)}",
                remediation="Nothing to remove; create it with `devsetup install` first",
            )


class RepositoryBackend(Backend):
    """
    Git checkouts inside a parent directory.

    Each repository is checked out at parent_dir/<name>, where name is the
    last URL component without .git, unless `targets` maps the URL to an
    explicit path. A repository exists when its path holds a .git entry.
    """
    name = "repository"
    kinds = (REPOSITORY,)
    operations = {PRESENT: CLONE, ABSENT: DELETE, REFRESH: PULL}

    def __init__(
        self,
        parent_dir: str,
        targets: Mapping[str, str] | None = None,
        timeout: int | None = None,
        verbose: bool = False,
    ):
        super().__init__(timeout=timeout, verbose=verbose)
        self.parent_dir = expand_path(parent_dir)
        self.targets = {url: expand_path(path) for url, path in (targets or {}).items()}

    def checkout_path(self, url: str) -> str:
        if url in self.targets:
            return self.targets[url]
        return os.path.join(self.parent_dir, repo_basename(url))

    def exists(self, item: DesiredItem) -> bool:
        # An empty or unrelated directory at the path is not a checkout.
        return os.path.exists(os.path.join(self.checkout_path(item.identifier), ".git"))

    def apply(self, operation: Operation) -> None:
        url = operation.item.identifier
        path = self.checkout_path(url)
        if operation.kind == CLONE:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            self._run(CommandStep(
                description=f"Clone {url} into {path}",
                command=("git", "clone", url, path),
            ))
        elif operation.kind == PULL:
            self._run(CommandStep(
                description=f"Update {path}",
                command=(
                    "git",
                    f"--git-dir={os.path.join(path, '.git')}",
                    f"--work-tree={path}",
                    "pull",
                    "--autostash",
                ),
            ))
        elif operation.kind == DELETE:
            shutil.rmtree(path)
        else:
            raise self._unsupported(operation)

    def check_preconditions(self, items: Sequence[DesiredItem], mode: str) -> None:
        if mode != REFRESH or not items:
            return
        if self.targets and all(item.identifier in self.targets for item in items):
            return
        if not os.path.isdir(self.parent_dir):
            raise PreconditionError(
                f"Can't update repos because {self.parent_dir} isn't made.",
                remediation="Run `devsetup install plugins` first",
            )


# Entries GNU stow ignores by default
STOW_DEFAULT_IGNORE = re.compile(
    r"^(RCS|.+,v|CVS|\.\#.+|\.cvsignore|\.svn|_darcs|\.hg|\.git|\.gitignore|\.gitmodules"
    r"|.+~|\#.*\#|README.*|LICENSE.*|COPYING)$"
)


def is_stowed(package_dir: str, target_dir: str) -> bool:
    """
    Check whether a stow package is linked into a target directory.

    Every entry of the package must resolve into the package through a
    symlink in the target. Directories that stow unfolded into real
    directories are checked recursively.

    Args:
        package_dir: Directory of the stow package
        target_dir: Directory the package is stowed into

    Returns:
        True if the whole package is linked
    """
    if not os.path.isdir(package_dir):
        return False

    for entry in os.listdir(package_dir):
        if STOW_DEFAULT_IGNORE.match(entry):
            continue

        source = os.path.join(package_dir, entry)
        dest = os.path.join(target_dir, entry)

        if os.path.islink(dest):
            if os.path.realpath(dest) != os.path.realpath(source):
                return False
        elif os.path.isdir(dest) and os.path.isdir(source) and not os.path.islink(source):
            if not is_stowed(source, dest):
                return False
        else:
            return False

    return True


def has_links(package_dir: str, target_dir: str) -> bool:
    """
    Check whether any entry of a stow package is linked into a target directory.

    A package with some files linked and others not (for example after a
    pull added a file) still has links that unstow and restow must handle.

    Args:
        package_dir: Directory of the stow package
        target_dir: Directory the package is stowed into

    Returns:
        True if at least one entry resolves into the package through a symlink
    """
    if not os.path.isdir(package_dir):
        return False

    for entry in os.listdir(package_dir):
        if STOW_DEFAULT_IGNORE.match(entry):
            continue

        source = os.path.join(package_dir, entry)
        dest = os.path.join(target_dir, entry)

        if os.path.islink(dest):
            if os.path.realpath(dest) == os.path.realpath(source):
                return True
        elif os.path.isdir(dest) and os.path.isdir(source) and not os.path.islink(source):
            if has_links(source, dest):
                return True

    return False


def discover_packages(root: str) -> list[str]:
    """
    List the stow packages of a dotfiles root.

    Args:
        root: Dotfiles checkout

    Returns:
        Sorted names of non-hidden subdirectories (empty if root is missing)
    """
    root = expand_path(root)
    if not os.path.isdir(root):
        return []
    return sorted(
        entry for entry in os.listdir(root)
        if not entry.startswith(".") and os.path.isdir(os.path.join(root, entry))
    )


class StowBackend(Backend):
    """Symlink farm of a dotfiles root into a target directory via GNU stow."""
    name = "stow"
    kinds = (DOTFILE_PACKAGE,)
    operations = {PRESENT: STOW, ABSENT: UNSTOW, REFRESH: RESTOW}

    _FLAGS = {STOW: (), UNSTOW: ("--delete",), RESTOW: ("--restow",)}

    def __init__(
        self,
        root: str,
        target: str = "~",
        timeout: int | None = None,
        verbose: bool = False,
    ):
        super().__init__(timeout=timeout, verbose=verbose)
        self.root = expand_path(root)
        self.target = expand_path(target)

    def exists(self, item: DesiredItem) -> bool:
        return is_stowed(os.path.join(self.root, item.identifier), self.target)

    def is_present(self, item: DesiredItem, mode: str) -> bool:
        # Fully linked counts for stow; any link counts for unstow and restow.
        if mode == PRESENT:
            return self.exists(item)
        return has_links(os.path.join(self.root, item.identifier), self.target)

    def apply(self, operation: Operation) -> None:
        if operation.kind not in self._FLAGS:
            raise self._unsupported(operation)
        name = operation.item.identifier
        self._run(CommandStep(
            description=f"{operation.kind.capitalize()} {name}",
            command=("stow", "-d", self.root, "-t", self.target) + self._FLAGS[operation.kind] + (name,),
        ))

    def check_preconditions(self, items: Sequence[DesiredItem], mode: str) -> None:
        if mode == PRESENT:
            return
        if not os.path.isdir(self.root):
            vlog(f"Dotfiles directory {self.root} isn't set up", self.verbose)
            raise PreconditionError(
                "Dotfiles folder required.",
                remediation="Run `devsetup install dotfiles` first",
            )
