"""
Platform detection for choosing the package backend.

Only two platforms are supported:
- macos (Homebrew)
- linux (apt)
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass

from .common import vlog


VALID_PLATFORMS = {"macos", "linux"}


@dataclass(frozen=True)
class Platform:
    """
    Effective platform information.

    Attributes:
        name: Platform identifier ('macos' or 'linux')
        package_manager: Name of the system package manager for this platform
        indicators: Evidence for the detection decision
        override: Whether the platform was explicitly set by the user
    """
    name: str
    package_manager: str
    indicators: tuple[str, ...] = ()
    override: bool = False

    @property
    def is_macos(self) -> bool:
        return self.name == "macos"

    def __str__(self) -> str:
        override_str = " (override)" if self.override else ""
        return f"{self.name}{override_str} via {self.package_manager}"


_PACKAGE_MANAGER_FOR = {
    "macos": "brew",
    "linux": "apt",
}


def detect_platform(override: str | None = None, verbose: bool = False) -> Platform:
    """
    Detect the effective platform.

    Args:
        override: Explicit platform ('macos', 'linux', 'auto' or None)
        verbose: Enable verbose logging

    Returns:
        Platform object with detected or overridden name

    Raises:
        ValueError: If the override or the detected system is not supported
    """
    if override and override != "auto":
        if override not in VALID_PLATFORMS:
            raise ValueError(
                f"Invalid platform override: {override}. "
                f"Must be one of: {', '.join(sorted(VALID_PLATFORMS))}"
            )
        vlog(f"Platform explicitly set to: {override}", verbose)
        return Platform(
            name=override,
            package_manager=_PACKAGE_MANAGER_FOR[override],
            indicators=(f"explicit_override={override}",),
            override=True,
        )

    system = _platform.system()
    if system == "Darwin":
        name = "macos"
    elif system == "Linux":
        name = "linux"
    else:
        raise ValueError(f"Unsupported operating system: {system}")

    vlog(f"Detected platform: {name} (uname={system})", verbose)
    return Platform(
        name=name,
        package_manager=_PACKAGE_MANAGER_FOR[name],
        indicators=(f"uname={system}",),
    )
