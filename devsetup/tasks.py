"""
Resource-class workflows built on the reconciler.

Each workflow reads its desired state from the Config and returns the
Reports of the reconciliations it ran. PreconditionError propagates to the
caller unchanged.
"""

from __future__ import annotations

import os
from typing import Sequence

from .backends import (
    DirectoryBackend,
    PackageBackend,
    RepositoryBackend,
    StowBackend,
    discover_packages,
)
from .common import expand_path, vlog
from .config import Config
from .environment import Platform
from .items import (
    ABSENT,
    PRESENT,
    REFRESH,
    directories,
    dotfile_packages,
    packages,
    repositories,
)
from .logging_config import get_logger
from .package_managers import get_package_manager, select_package_manager
from .reconcile import PreconditionError, Report, reconcile


PLUGIN_GROUPS = ("zsh", "tmux")


def _system_backend(config: Config, platform: Platform, verbose: bool) -> PackageBackend:
    return PackageBackend(
        select_package_manager(platform),
        presence_check=config.preferences.presence_check,
        verbose=verbose,
    )


def ensure_requirements(
    names: Sequence[str],
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> Report:
    """
    Make sure helper commands (git, stow) are available.

    Requirements count as present when the command is on PATH, however it
    was installed.
    """
    backend = PackageBackend(select_package_manager(platform), presence_check="binary", verbose=verbose)
    return reconcile(packages(names), PRESENT, backend, dry_run, verbose)


def _cargo_reports(config: Config, mode: str, dry_run: bool, verbose: bool) -> list[Report]:
    if not config.cargo_packages:
        return []
    cargo = get_package_manager("cargo")
    if cargo is None or not cargo.is_available():
        get_logger().warning("Cargo is not installed, skipping cargo packages")
        return []
    backend = PackageBackend(cargo, verbose=verbose)
    return [reconcile(packages(config.cargo_packages), mode, backend, dry_run, verbose)]


def install_packages(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Create configured directories and install system and cargo packages."""
    reports = []
    if config.directories:
        reports.append(reconcile(directories(config.directories), PRESENT, DirectoryBackend(verbose=verbose), dry_run, verbose))
    if config.packages:
        reports.append(reconcile(packages(config.packages), PRESENT, _system_backend(config, platform, verbose), dry_run, verbose))
    reports.extend(_cargo_reports(config, PRESENT, dry_run, verbose))
    return reports


def remove_packages(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Remove configured cargo and system packages."""
    reports = _cargo_reports(config, ABSENT, dry_run, verbose)
    if config.packages:
        reports.append(reconcile(packages(config.packages), ABSENT, _system_backend(config, platform, verbose), dry_run, verbose))
    return reports


def _plugin_groups(config: Config):
    for name in PLUGIN_GROUPS:
        group = config.plugin_group(name)
        if group is not None and group.repositories:
            yield name, group


def install_plugins(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Clone shell and tmux plugin repositories into their directories."""
    groups = list(_plugin_groups(config))
    if not groups:
        vlog("No plugin repositories configured", verbose)
        return []

    reports = [ensure_requirements(["git"], platform, dry_run, verbose)]
    for name, group in groups:
        vlog(f"Installing {name} plugins into {group.directory}", verbose)
        reports.append(reconcile(directories([group.directory]), PRESENT, DirectoryBackend(verbose=verbose), dry_run, verbose))
        reports.append(reconcile(repositories(group.repositories), PRESENT, RepositoryBackend(group.directory, verbose=verbose), dry_run, verbose))
    return reports


def update_plugins(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Pull every cloned plugin repository."""
    reports = []
    for name, group in _plugin_groups(config):
        vlog(f"Updating {name} plugins in {group.directory}", verbose)
        reports.append(reconcile(repositories(group.repositories), REFRESH, RepositoryBackend(group.directory, verbose=verbose), dry_run, verbose))
    return reports


def remove_plugins(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Delete cloned plugin repositories."""
    reports = []
    for name, group in _plugin_groups(config):
        vlog(f"Removing {name} plugins from {group.directory}", verbose)
        reports.append(reconcile(repositories(group.repositories), ABSENT, RepositoryBackend(group.directory, verbose=verbose), dry_run, verbose))
    return reports


def _dotfiles_backends(
    config: Config,
    verbose: bool,
    source: str | None = None,
) -> tuple[RepositoryBackend, StowBackend]:
    root = expand_path(config.dotfiles.root)
    source = source or config.dotfiles.repository
    targets = {source: root} if source else {}
    return (
        RepositoryBackend(os.path.dirname(root), targets=targets, verbose=verbose),
        StowBackend(root, config.dotfiles.target, verbose=verbose),
    )


def _require_dotfiles_root(config: Config) -> str:
    root = expand_path(config.dotfiles.root)
    if not os.path.isdir(root):
        raise PreconditionError(
            "Dotfiles folder required.",
            remediation=f"{root} does not exist; run `devsetup install dotfiles` first",
        )
    return root


def install_dotfiles(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Clone the dotfiles repository and stow each of its packages."""
    url = config.dotfiles.repository
    if not url:
        raise PreconditionError(
            "No dotfiles repository configured.",
            remediation="Set dotfiles.repository in the devsetup config",
        )

    vlog("Setup dotfiles.", verbose)
    repo_backend, stow_backend = _dotfiles_backends(config, verbose)
    reports = [
        ensure_requirements(["stow", "git"], platform, dry_run, verbose),
        reconcile(repositories([url]), PRESENT, repo_backend, dry_run, verbose),
    ]

    names = discover_packages(config.dotfiles.root)
    vlog(f"Setting up dotfiles for: {', '.join(names) or 'nothing'}", verbose)
    reports.append(reconcile(dotfile_packages(names), PRESENT, stow_backend, dry_run, verbose))
    return reports


def update_dotfiles(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Pull the dotfiles repository and restow each package."""
    root = _require_dotfiles_root(config)

    vlog("Updating dotfiles", verbose)
    source = config.dotfiles.repository
    if not source and os.path.exists(os.path.join(root, ".git")):
        # Pull the existing checkout from its own remote.
        source = root
    repo_backend, stow_backend = _dotfiles_backends(config, verbose, source)
    reports = [ensure_requirements(["stow", "git"], platform, dry_run, verbose)]
    if source:
        reports.append(reconcile(repositories([source]), REFRESH, repo_backend, dry_run, verbose))
    else:
        vlog(f"{root} is not a git checkout, skipping pull", verbose)

    names = discover_packages(root)
    reports.append(reconcile(dotfile_packages(names), REFRESH, stow_backend, dry_run, verbose))
    return reports


def remove_dotfiles(
    config: Config,
    platform: Platform,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[Report]:
    """Unstow every package, delete the dotfiles checkout and remove stow."""
    root = _require_dotfiles_root(config)

    vlog("Remove dotfiles", verbose)
    _, stow_backend = _dotfiles_backends(config, verbose)
    names = discover_packages(root)
    reports = [reconcile(dotfile_packages(names), ABSENT, stow_backend, dry_run, verbose)]
    if not reports[0].ok:
        get_logger().warning(f"Keeping {root}: some packages could not be unstowed")
        return reports

    reports.append(reconcile(directories([root]), ABSENT, DirectoryBackend(verbose=verbose), dry_run, verbose))
    reports.append(reconcile(packages(["stow"]), ABSENT, _system_backend(config, platform, verbose), dry_run, verbose))
    return reports
