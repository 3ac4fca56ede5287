"""
Package manager registry and selection logic.

Each manager is described by command templates; `{package}` is replaced by
the package name. System managers are selected by platform:
- macos: Homebrew
- linux: apt
cargo is used alongside either for Rust crates.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass

from .environment import Platform
from .runner import CommandStep


@dataclass(frozen=True)
class PackageManager:
    """
    Package manager definition.

    Attributes:
        name: Package manager identifier (e.g., "brew", "apt", "cargo")
        display_name: Human-readable name
        check_command: Command to check if manager is available
        install_command_template: Template for install command
        remove_command_template: Template for remove command
        query_command_template: Template for the "is this package installed" query
        installed_marker: Line prefix in the query output that confirms installation
            (None means a zero exit code is enough)
        requires_sudo: Whether install/remove/update need root
        update_commands: Commands that refresh indexes and upgrade everything
        cleanup_commands: Commands that drop unneeded dependencies and caches
    """
    name: str
    display_name: str
    check_command: tuple[str, ...]
    install_command_template: tuple[str, ...]
    remove_command_template: tuple[str, ...]
    query_command_template: tuple[str, ...]
    installed_marker: str | None = None
    requires_sudo: bool = False
    update_commands: tuple[tuple[str, ...], ...] = ()
    cleanup_commands: tuple[tuple[str, ...], ...] = ()

    def is_available(self, timeout: int = 5) -> bool:
        """
        Check if this package manager is available on the system.

        Args:
            timeout: Timeout in seconds for check command

        Returns:
            True if package manager is installed and accessible
        """
        try:
            result = subprocess.run(
                self.check_command,
                capture_output=True,
                timeout=timeout,
                text=True,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    @staticmethod
    def _fill(template: tuple[str, ...], package: str) -> tuple[str, ...]:
        return tuple(part.replace("{package}", package) for part in template)

    def get_install_command(self, package: str) -> tuple[str, ...]:
        return self._fill(self.install_command_template, package)

    def get_remove_command(self, package: str) -> tuple[str, ...]:
        return self._fill(self.remove_command_template, package)

    def get_query_command(self, package: str) -> tuple[str, ...]:
        return self._fill(self.query_command_template, package)

    def is_installed_output(self, package: str, returncode: int, stdout: str) -> bool:
        """
        Interpret the output of the query command.

        Args:
            package: Package name that was queried
            returncode: Exit code of the query command
            stdout: Standard output of the query command

        Returns:
            True if the output says the package is installed
        """
        if returncode != 0:
            return False
        if self.installed_marker is None:
            return True
        marker = self.installed_marker.replace("{package}", package)
        return any(line.startswith(marker) for line in stdout.splitlines())

    def install_step(self, package: str) -> CommandStep:
        return CommandStep(
            description=f"Install {package} via {self.display_name}",
            command=self.get_install_command(package),
            requires_sudo=self.requires_sudo,
        )

    def remove_step(self, package: str) -> CommandStep:
        return CommandStep(
            description=f"Remove {package} via {self.display_name}",
            command=self.get_remove_command(package),
            requires_sudo=self.requires_sudo,
        )

    def update_steps(self) -> list[CommandStep]:
        return [
            CommandStep(
                description=f"{self.display_name}: {' '.join(command)}",
                command=command,
                requires_sudo=self.requires_sudo,
            )
            for command in self.update_commands
        ]

    def cleanup_steps(self) -> list[CommandStep]:
        return [
            CommandStep(
                description=f"{self.display_name}: {' '.join(command)}",
                command=command,
                requires_sudo=self.requires_sudo,
            )
            for command in self.cleanup_commands
        ]


# Package Manager Registry

PACKAGE_MANAGERS = (
    PackageManager(
        name="brew",
        display_name="Homebrew",
        check_command=("brew", "--version"),
        install_command_template=("brew", "install", "{package}"),
        remove_command_template=("brew", "uninstall", "{package}"),
        query_command_template=("brew", "list", "--versions", "{package}"),
        update_commands=(
            ("brew", "update"),
            ("brew", "upgrade", "--force"),
            ("brew", "analytics", "off"),
        ),
        cleanup_commands=(
            ("brew", "autoremove"),
            ("brew", "cleanup"),
        ),
    ),
    PackageManager(
        name="apt",
        display_name="apt",
        check_command=("apt-get", "--version"),
        install_command_template=("apt-get", "install", "-y", "{package}"),
        remove_command_template=("apt-get", "remove", "-y", "{package}"),
        query_command_template=("dpkg-query", "-W", "-f=${Status}", "{package}"),
        installed_marker="install ok installed",
        requires_sudo=True,
        update_commands=(
            ("apt-get", "update"),
            ("apt-get", "upgrade", "-y"),
        ),
        cleanup_commands=(
            ("apt-get", "-y", "autoremove"),
            ("apt-get", "-y", "clean"),
            ("apt-get", "-y", "autoclean"),
        ),
    ),
    PackageManager(
        name="cargo",
        display_name="cargo",
        check_command=("cargo", "--version"),
        install_command_template=("cargo", "install", "{package}"),
        remove_command_template=("cargo", "uninstall", "{package}"),
        query_command_template=("cargo", "install", "--list"),
        installed_marker="{package} v",
        update_commands=(
            ("cargo", "install-update", "-a"),
        ),
    ),
)


_PM_BY_NAME = {pm.name: pm for pm in PACKAGE_MANAGERS}


def get_package_manager(name: str) -> PackageManager | None:
    """
    Get package manager by name.

    Returns:
        PackageManager object, or None if not found
    """
    return _PM_BY_NAME.get(name)


def select_package_manager(platform: Platform) -> PackageManager:
    """
    Select the system package manager for a platform.

    Args:
        platform: Effective platform

    Returns:
        PackageManager for the platform

    Raises:
        ValueError: If the platform names an unknown package manager
    """
    pm = get_package_manager(platform.package_manager)
    if pm is None:
        raise ValueError(f"No package manager registered for platform {platform.name}")
    return pm
