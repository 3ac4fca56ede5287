"""
Desired items and the operations that reconcile them.
"""

from __future__ import annotations

from dataclasses import dataclass


# Item kinds
PACKAGE = "package"
DIRECTORY = "directory"
REPOSITORY = "repository"
DOTFILE_PACKAGE = "dotfile_package"

ITEM_KINDS = (PACKAGE, DIRECTORY, REPOSITORY, DOTFILE_PACKAGE)

# Reconciliation modes
PRESENT = "present"
ABSENT = "absent"
REFRESH = "refresh"

MODES = (PRESENT, ABSENT, REFRESH)

# Operation kinds
INSTALL = "install"
REMOVE = "remove"
CREATE = "create"
DELETE = "delete"
CLONE = "clone"
PULL = "pull"
STOW = "stow"
UNSTOW = "unstow"
RESTOW = "restow"

OPERATION_KINDS = (INSTALL, REMOVE, CREATE, DELETE, CLONE, PULL, STOW, UNSTOW, RESTOW)


@dataclass(frozen=True)
class DesiredItem:
    """
    One entry of a desired-state list.

    Attributes:
        kind: Item kind (package, directory, repository, dotfile_package)
        identifier: Package name, directory path, repository URL or dotfile package name
    """
    kind: str
    identifier: str

    def __post_init__(self):
        if self.kind not in ITEM_KINDS:
            raise ValueError(
                f"Invalid item kind: {self.kind}. "
                f"Must be one of: {', '.join(ITEM_KINDS)}"
            )
        if not self.identifier:
            raise ValueError(f"Empty identifier for {self.kind} item")

    def __str__(self) -> str:
        return f"{self.kind}:{self.identifier}"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "identifier": self.identifier}


@dataclass(frozen=True)
class Operation:
    """
    A single mutation tagged with its target item.

    Attributes:
        kind: Operation kind (install, remove, create, ...)
        item: Target item
    """
    kind: str
    item: DesiredItem

    def __post_init__(self):
        if self.kind not in OPERATION_KINDS:
            raise ValueError(f"Invalid operation kind: {self.kind}")

    def __str__(self) -> str:
        return f"{self.kind} {self.item.identifier}"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "item": self.item.to_dict()}


def packages(names) -> list[DesiredItem]:
    """Build package items from names."""
    return [DesiredItem(PACKAGE, name) for name in names]


def directories(paths) -> list[DesiredItem]:
    """Build directory items from paths."""
    return [DesiredItem(DIRECTORY, path) for path in paths]


def repositories(urls) -> list[DesiredItem]:
    """Build repository items from URLs."""
    return [DesiredItem(REPOSITORY, url) for url in urls]


def dotfile_packages(names) -> list[DesiredItem]:
    """Build dotfile package items from stow package names."""
    return [DesiredItem(DOTFILE_PACKAGE, name) for name in names]
