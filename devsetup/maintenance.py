"""
Periodic maintenance.

Each task is a short list of external commands. A task whose tool is not
installed is skipped. Commands are attempted once; a failing command is
logged as a warning and the remaining commands still run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Sequence

from .common import command_exists, expand_path, vlog
from .config import Config
from .environment import Platform
from .logging_config import get_logger
from .package_managers import select_package_manager
from .runner import CommandStep, StepResult, execute_step


HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"


@dataclass(frozen=True)
class TaskResult:
    """
    Outcome of one maintenance task.

    Attributes:
        task: Task name
        results: Results of the commands that ran
        planned: Commands that would run (dry-run only)
        skipped: Reason the task did not run, if it was skipped
    """
    task: str
    results: tuple[StepResult, ...] = ()
    planned: tuple[CommandStep, ...] = ()
    skipped: str | None = None

    @property
    def ok(self) -> bool:
        return all(r.success for r in self.results)

    def to_dict(self) -> dict:
        return {
            "task": self.task,
            "results": [r.to_dict() for r in self.results],
            "planned": [s.to_dict() for s in self.planned],
            "skipped": self.skipped,
            "ok": self.ok,
        }


def run_task(
    task: str,
    steps: Sequence[CommandStep],
    dry_run: bool = False,
    verbose: bool = False,
) -> TaskResult:
    """
    Run the commands of a task, continuing past failures.

    Args:
        task: Task name used in logs and results
        steps: Commands to run in order
        dry_run: Only record the commands
        verbose: Enable verbose logging

    Returns:
        TaskResult for the task
    """
    if dry_run:
        for step in steps:
            vlog(f"Would run: {' '.join(step.command)}", verbose)
        return TaskResult(task=task, planned=tuple(steps))

    logger = get_logger()
    results = []
    for step in steps:
        vlog(step.description, verbose)
        result = execute_step(step, verbose=verbose)
        if not result.success:
            logger.warning(f"{task}: {result.error_message}")
        results.append(result)
    return TaskResult(task=task, results=tuple(results))


def _skip(task: str, reason: str, verbose: bool) -> TaskResult:
    vlog(f"Skipping {task}: {reason}", verbose)
    return TaskResult(task=task, skipped=reason)


def ensure_homebrew(platform: Platform, dry_run: bool = False, verbose: bool = False) -> TaskResult | None:
    """
    Install Homebrew on macOS when it is missing.

    Returns:
        TaskResult if an installation was attempted, else None
    """
    if not platform.is_macos:
        vlog("Brew not required", verbose)
        return None
    if command_exists("brew"):
        return None

    vlog("Brew is not installed, installing now", verbose)
    steps = [
        CommandStep("Install Xcode command line tools", ("xcode-select", "--install")),
        CommandStep(
            "Install Homebrew",
            ("/bin/bash", "-c", f'NONINTERACTIVE=1 /bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_URL})"'),
        ),
        CommandStep("Disable Homebrew analytics", ("brew", "analytics", "off")),
    ]
    return run_task("homebrew", steps, dry_run, verbose)


def update_system_packages(platform: Platform, dry_run: bool = False, verbose: bool = False) -> list[TaskResult]:
    """Refresh package indexes and upgrade everything installed."""
    results = []
    brew_result = ensure_homebrew(platform, dry_run, verbose)
    if brew_result is not None:
        results.append(brew_result)

    manager = select_package_manager(platform)
    results.append(run_task(f"{manager.name}-update", manager.update_steps(), dry_run, verbose))
    return results


def clean_system_packages(platform: Platform, dry_run: bool = False, verbose: bool = False) -> TaskResult:
    """Remove unneeded dependencies and package caches."""
    manager = select_package_manager(platform)
    if not command_exists(manager.check_command[0]):
        return _skip(f"{manager.name}-cleanup", f"{manager.display_name} is not installed", verbose)
    vlog("Cleaning up unrequired deps", verbose)
    return run_task(f"{manager.name}-cleanup", manager.cleanup_steps(), dry_run, verbose)


def _rust_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("rustup"):
        return [], "Rustup is not installed"
    if not command_exists("cargo"):
        return [], "Cargo is not installed"
    return [
        CommandStep("Updating Rust via rustup", ("rustup", "update")),
        CommandStep("Updating all packages installed via cargo", ("cargo", "install-update", "-a")),
    ], None


def _nvim_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("nvim"):
        return [], "Nvim required to do updates"
    return [
        CommandStep("Sync lazy.nvim plugins", ("nvim", "--headless", "+Lazy! sync", "+qa")),
        CommandStep("Update treesitter grammars", ("nvim", "--headless", "+TSUpdateSync", "+qa")),
        CommandStep("Update mason tools", ("nvim", "--headless", "+MasonToolsUpdateSync", "+qa")),
    ], None


def _tmux_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("tmux"):
        return [], "Tmux required to do updates"
    group = config.plugin_group("tmux")
    plugin_dir = expand_path(group.directory if group else "~/.tmux/plugins")
    script = os.path.join(plugin_dir, "tpm", "scripts", "install_plugins.sh")
    if not os.path.isfile(script):
        return [], f"tpm not found at {script}"
    return [CommandStep("Install tmux plugins", ("bash", script))], None


def _pnpm_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("pnpm"):
        return [], "pnpm not installed, couldn't update"
    return [
        CommandStep("Update pnpm", ("pnpm", "add", "--global", "pnpm")),
        CommandStep("Update global pnpm packages", ("pnpm", "update", "--global")),
    ], None


def _docker_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("docker"):
        return [], "Docker is not installed"
    return [
        CommandStep("Prune docker system", ("docker", "system", "prune", "-a", "-f")),
        CommandStep("Prune docker images", ("docker", "image", "prune", "-f")),
        CommandStep("Prune docker volumes", ("docker", "volume", "prune", "-f")),
    ], None


def _tldr_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not command_exists("tldr"):
        return [], "tldr is not installed"
    return [CommandStep("Updating tldr database", ("tldr", "--update"))], None


def _macos_steps(config: Config, platform: Platform) -> tuple[list[CommandStep], str | None]:
    if not platform.is_macos:
        return [], "not running on macOS"
    return [
        CommandStep("Updating macos", ("softwareupdate", "-i", "-a", "-R"), requires_sudo=True),
    ], None


TASK_BUILDERS: dict[str, Callable[[Config, Platform], tuple[list[CommandStep], str | None]]] = {
    "rust": _rust_steps,
    "nvim": _nvim_steps,
    "tmux": _tmux_steps,
    "pnpm": _pnpm_steps,
    "docker": _docker_steps,
    "tldr": _tldr_steps,
    "macos": _macos_steps,
}


def run_maintenance(
    config: Config,
    platform: Platform,
    tasks: Sequence[str] | None = None,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[TaskResult]:
    """
    Run maintenance tasks in order.

    Args:
        config: Configuration object
        platform: Effective platform
        tasks: Task names (defaults to config.preferences.maintenance)
        dry_run: Only record the commands
        verbose: Enable verbose logging

    Returns:
        One TaskResult per task

    Raises:
        ValueError: If a task name is unknown
    """
    if tasks is None:
        tasks = config.preferences.maintenance

    unknown = [t for t in tasks if t not in TASK_BUILDERS]
    if unknown:
        raise ValueError(
            f"Unknown maintenance task(s): {', '.join(unknown)}. "
            f"Must be among: {', '.join(TASK_BUILDERS)}"
        )

    results = []
    for task in tasks:
        steps, skip_reason = TASK_BUILDERS[task](config, platform)
        if skip_reason:
            results.append(_skip(task, skip_reason, verbose))
            continue
        results.append(run_task(task, steps, dry_run, verbose))
    return results
