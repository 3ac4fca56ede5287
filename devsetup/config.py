"""
Desired-state configuration parsing and management.

Supports YAML configuration files with JSON fallback.
Merges configurations from multiple sources (custom -> project -> user -> defaults).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from .common import vlog
from .logging_config import get_logger


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".devsetup.yml",
    ".devsetup.yaml",
    os.path.expanduser("~/.config/devsetup/config.yml"),
    os.path.expanduser("~/.config/devsetup/config.yaml"),
]

MAINTENANCE_TASKS = ("rust", "nvim", "tmux", "pnpm", "docker", "tldr", "macos")
DEFAULT_MAINTENANCE = ("nvim", "tmux", "pnpm", "docker", "tldr")


@dataclass(frozen=True)
class PluginGroup:
    """
    Plugin repositories cloned into one directory.

    Attributes:
        directory: Parent directory holding one checkout per repository
        repositories: Repository URLs
    """
    directory: str
    repositories: tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: dict[str, Any], default_directory: str = "") -> PluginGroup:
        return PluginGroup(
            directory=data.get("directory") or default_directory,
            repositories=tuple(data.get("repositories") or ()),
        )


@dataclass(frozen=True)
class DotfilesConfig:
    """
    Dotfiles checkout and stow target.

    Attributes:
        root: Directory the dotfiles repository is cloned into
        repository: Repository URL (None disables dotfiles management)
        target: Directory the symlink farm is created in
    """
    root: str = "~/dotfiles"
    repository: str | None = None
    target: str = "~"

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DotfilesConfig:
        return DotfilesConfig(
            root=data.get("root", "~/dotfiles"),
            repository=data.get("repository"),
            target=data.get("target", "~"),
        )


@dataclass(frozen=True)
class Preferences:
    """
    Behavioral preferences.

    Attributes:
        presence_check: How package presence is decided ('manager' or 'binary')
        maintenance: Maintenance tasks run by `update maintenance`
    """
    presence_check: str = "manager"
    maintenance: tuple[str, ...] = DEFAULT_MAINTENANCE

    def __post_init__(self):
        if self.presence_check not in {"manager", "binary"}:
            raise ValueError(
                f"Invalid presence_check: {self.presence_check}. "
                "Must be 'manager' or 'binary'"
            )
        unknown = [task for task in self.maintenance if task not in MAINTENANCE_TASKS]
        if unknown:
            raise ValueError(
                f"Unknown maintenance task(s): {', '.join(unknown)}. "
                f"Must be among: {', '.join(MAINTENANCE_TASKS)}"
            )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        maintenance = data.get("maintenance")
        return Preferences(
            presence_check=data.get("presence_check", "manager"),
            maintenance=DEFAULT_MAINTENANCE if maintenance is None else tuple(maintenance),
        )


def _default_plugins() -> dict[str, PluginGroup]:
    return {
        "zsh": PluginGroup(directory="~/.zsh"),
        "tmux": PluginGroup(directory="~/.tmux/plugins"),
    }


@dataclass(frozen=True)
class Config:
    """
    Complete desired-state declaration.

    Attributes:
        version: Config schema version
        platform: Platform selection ('auto', 'macos', 'linux')
        packages: System packages (brew or apt)
        cargo_packages: Crates installed with cargo
        directories: Directories that must exist
        plugins: Plugin repository groups keyed by tool ('zsh', 'tmux')
        dotfiles: Dotfiles repository settings
        preferences: Behavioral preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    platform: str = "auto"
    packages: tuple[str, ...] = ()
    cargo_packages: tuple[str, ...] = ()
    directories: tuple[str, ...] = ()
    plugins: dict[str, PluginGroup] = field(default_factory=_default_plugins)
    dotfiles: DotfilesConfig = field(default_factory=DotfilesConfig)
    preferences: Preferences = field(default_factory=Preferences)
    source: str = ""

    def __post_init__(self):
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        valid_platforms = {"auto", "macos", "linux"}
        if self.platform not in valid_platforms:
            raise ValueError(
                f"Invalid platform: {self.platform}. "
                f"Must be one of: {', '.join(sorted(valid_platforms))}"
            )

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        defaults = _default_plugins()
        plugins = dict(defaults)
        for name, group in (data.get("plugins") or {}).items():
            default_dir = defaults[name].directory if name in defaults else ""
            plugins[name] = PluginGroup.from_dict(group or {}, default_dir)

        return Config(
            version=data.get("version", 1),
            platform=data.get("platform", "auto"),
            packages=tuple(data.get("packages") or ()),
            cargo_packages=tuple(data.get("cargo_packages") or ()),
            directories=tuple(data.get("directories") or ()),
            plugins=plugins,
            dotfiles=DotfilesConfig.from_dict(data.get("dotfiles") or {}),
            preferences=Preferences.from_dict(data.get("preferences") or {}),
            source=source,
        )

    def plugin_group(self, name: str) -> PluginGroup | None:
        return self.plugins.get(name)

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        Lists set in this config replace the other config's lists; empty
        lists fall through to the other config.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        merged_plugins = dict(other.plugins)
        for name, group in self.plugins.items():
            if group.repositories or name not in merged_plugins:
                merged_plugins[name] = group

        dotfiles = self.dotfiles if self.dotfiles != DotfilesConfig() else other.dotfiles
        preferences = self.preferences if self.preferences != Preferences() else other.preferences

        return Config(
            version=self.version,
            platform=self.platform if self.platform != "auto" else other.platform,
            packages=self.packages or other.packages,
            cargo_packages=self.cargo_packages or other.cargo_packages,
            directories=self.directories or other.directories,
            plugins=merged_plugins,
            dotfiles=dotfiles,
            preferences=preferences,
            source=self.source or other.source,
        )


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is unreadable or invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Tries YAML first, falls back to a JSON sibling if the YAML is invalid.

    Args:
        file_path: Path to configuration file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)
        if data is None:
            json_path = os.path.splitext(file_path)[0] + ".json"
            if os.path.exists(json_path):
                vlog(f"Invalid YAML, trying JSON: {json_path}", verbose)
                data = _load_json(json_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError, AttributeError) as e:
        get_logger().warning(f"Ignoring {file_path}: {e}")
        return None


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (if provided)
    2. Project .devsetup.yml
    3. User ~/.config/devsetup/config.yml
    4. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is provided but file cannot be loaded
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)
            vlog(f"Found config at: {location}", verbose)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged


def validate_config(config: Config) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Args:
        config: Config object to validate

    Returns:
        List of validation warning messages (empty if valid)
    """
    warnings = []

    for label, values in (
        ("packages", config.packages),
        ("cargo_packages", config.cargo_packages),
        ("directories", config.directories),
    ):
        if len(values) != len(set(values)):
            warnings.append(f"Duplicate entries in {label}")

    for name, group in config.plugins.items():
        if group.repositories and not group.directory:
            warnings.append(f"Plugin group '{name}' has repositories but no directory")

    return warnings
