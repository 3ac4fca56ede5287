"""
Tests for backends (devsetup/backends.py).
"""

from __future__ import annotations

import os
import sys
from unittest.mock import patch

import pytest

from devsetup.backends import (
    DirectoryBackend,
    PackageBackend,
    RepositoryBackend,
    StowBackend,
    discover_packages,
    has_links,
    is_stowed,
)
from devsetup.items import (
    ABSENT,
    CLONE,
    CREATE,
    DELETE,
    DOTFILE_PACKAGE,
    INSTALL,
    PACKAGE,
    PRESENT,
    PULL,
    REFRESH,
    REMOVE,
    RESTOW,
    STOW,
    UNSTOW,
    DesiredItem,
    Operation,
    directories,
    dotfile_packages,
    repositories,
)
from devsetup.package_managers import get_package_manager
from devsetup.reconcile import (
    APPLIED,
    SKIPPED,
    OperationError,
    PreconditionError,
    plan_operations,
    reconcile,
)
from devsetup.runner import CommandStep, StepResult

skip_on_windows = pytest.mark.skipif(
    sys.platform == "win32",
    reason="Uses POSIX symlinks"
)


def make_result(exit_code=0, stdout="", stderr="", error_message=None):
    return StepResult(
        step=CommandStep("test", ("test",)),
        success=exit_code == 0,
        stdout=stdout,
        stderr=stderr,
        exit_code=exit_code,
        duration_seconds=0.1,
        error_message=error_message,
    )


class TestPackageBackend:
    """Tests for PackageBackend."""

    @patch("devsetup.backends.execute_step")
    def test_apt_exists_when_installed(self, mock_execute):
        mock_execute.return_value = make_result(0, stdout="install ok installed")
        backend = PackageBackend(get_package_manager("apt"))

        assert backend.exists(DesiredItem(PACKAGE, "ripgrep")) is True
        step = mock_execute.call_args[0][0]
        assert step.command == ("dpkg-query", "-W", "-f=${Status}", "ripgrep")
        assert step.requires_sudo is False

    @patch("devsetup.backends.execute_step")
    def test_apt_config_files_only_is_not_installed(self, mock_execute):
        mock_execute.return_value = make_result(0, stdout="deinstall ok config-files")
        backend = PackageBackend(get_package_manager("apt"))
        assert backend.exists(DesiredItem(PACKAGE, "ripgrep")) is False

    @patch("devsetup.backends.execute_step")
    def test_brew_unknown_package(self, mock_execute):
        mock_execute.return_value = make_result(1, stderr="Error: No such keg")
        backend = PackageBackend(get_package_manager("brew"))
        assert backend.exists(DesiredItem(PACKAGE, "htop")) is False

    @patch("devsetup.backends.execute_step")
    def test_cargo_list_parsing(self, mock_execute):
        mock_execute.return_value = make_result(
            0,
            stdout="cargo-update v13.4.0:\n    cargo-install-update\ngit-delta v0.18.2:\n    delta\n",
        )
        backend = PackageBackend(get_package_manager("cargo"))
        assert backend.exists(DesiredItem(PACKAGE, "git-delta")) is True
        assert backend.exists(DesiredItem(PACKAGE, "delta")) is False

    @patch("devsetup.backends.execute_step")
    def test_query_command_missing_raises(self, mock_execute):
        mock_execute.return_value = make_result(-1, error_message="Command not found: brew")
        backend = PackageBackend(get_package_manager("brew"))
        with pytest.raises(OperationError, match="Could not query Homebrew"):
            backend.exists(DesiredItem(PACKAGE, "htop"))

    @patch("devsetup.backends.command_exists")
    def test_binary_presence_check(self, mock_exists):
        mock_exists.side_effect = lambda name: name == "git"
        backend = PackageBackend(get_package_manager("apt"), presence_check="binary")

        assert backend.exists(DesiredItem(PACKAGE, "git")) is True
        assert backend.exists(DesiredItem(PACKAGE, "stow")) is False

    def test_invalid_presence_check(self):
        with pytest.raises(ValueError):
            PackageBackend(get_package_manager("apt"), presence_check="vibes")

    @patch("devsetup.backends.execute_step")
    def test_install_uses_sudo_for_apt(self, mock_execute):
        mock_execute.return_value = make_result(0)
        backend = PackageBackend(get_package_manager("apt"))
        backend.apply(Operation(INSTALL, DesiredItem(PACKAGE, "jq")))

        step = mock_execute.call_args[0][0]
        assert step.command == ("apt-get", "install", "-y", "jq")
        assert step.requires_sudo is True

    @patch("devsetup.backends.execute_step")
    def test_remove_with_brew(self, mock_execute):
        mock_execute.return_value = make_result(0)
        backend = PackageBackend(get_package_manager("brew"))
        backend.apply(Operation(REMOVE, DesiredItem(PACKAGE, "jq")))

        step = mock_execute.call_args[0][0]
        assert step.command == ("brew", "uninstall", "jq")
        assert step.requires_sudo is False

    @patch("devsetup.backends.execute_step")
    def test_failed_install_raises(self, mock_execute):
        failed = make_result(100, stderr="E: Unable to locate package nope",
                             error_message="Command failed with exit code 100")
        mock_execute.return_value = failed
        backend = PackageBackend(get_package_manager("apt"))

        with pytest.raises(OperationError) as excinfo:
            backend.apply(Operation(INSTALL, DesiredItem(PACKAGE, "nope")))
        assert excinfo.value.result is failed
        assert "exit code 100" in excinfo.value.message

    def test_name_follows_manager(self):
        assert PackageBackend(get_package_manager("cargo")).name == "cargo"

    @patch("devsetup.backends.execute_step")
    def test_scenario_ripgrep_htop(self, mock_execute):
        """Both absent -> both applied; then both present -> both skipped."""
        installed = set()

        def fake_execute(step, timeout=None, verbose=False):
            if step.command[0] == "brew" and step.command[1] == "list":
                name = step.command[-1]
                return make_result(0 if name in installed else 1, stdout=f"{name} 1.0\n")
            if step.command[1] == "install":
                installed.add(step.command[-1])
            return make_result(0)

        mock_execute.side_effect = fake_execute
        backend = PackageBackend(get_package_manager("brew"))
        items = [DesiredItem(PACKAGE, "ripgrep"), DesiredItem(PACKAGE, "htop")]

        first = reconcile(items, PRESENT, backend)
        assert [(o.status, o.item.identifier) for o in first.outcomes] == [
            (APPLIED, "ripgrep"), (APPLIED, "htop"),
        ]

        second = reconcile(items, PRESENT, backend)
        assert [(o.status, o.item.identifier) for o in second.outcomes] == [
            (SKIPPED, "ripgrep"), (SKIPPED, "htop"),
        ]


class TestDirectoryBackend:
    """Tests for DirectoryBackend."""

    def test_create_nested(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        backend = DirectoryBackend()
        item = DesiredItem("directory", str(target))

        assert backend.exists(item) is False
        backend.apply(Operation(CREATE, item))
        assert target.is_dir()
        assert backend.exists(item) is True

    def test_delete_tree(self, tmp_path):
        target = tmp_path / "dotfiles"
        (target / "zsh").mkdir(parents=True)
        (target / "zsh" / ".zshrc").write_text("export EDITOR=nvim\n")

        backend = DirectoryBackend()
        backend.apply(Operation(DELETE, DesiredItem("directory", str(target))))
        assert not target.exists()

    def test_expands_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        backend = DirectoryBackend()
        backend.apply(Operation(CREATE, DesiredItem("directory", "~/Repos")))
        assert (tmp_path / "Repos").is_dir()

    def test_file_is_not_a_directory(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("")
        assert DirectoryBackend().exists(DesiredItem("directory", str(path))) is False

    def test_idempotent_reconcile(self, tmp_path):
        items = directories([str(tmp_path / "x"), str(tmp_path / "y")])
        backend = DirectoryBackend()

        assert len(reconcile(items, PRESENT, backend).applied) == 2
        assert reconcile(items, PRESENT, backend).applied == ()

    def test_create_failure_is_recorded(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        report = reconcile(directories([str(blocker / "child")]), PRESENT, DirectoryBackend())
        assert report.outcomes[0].status == "failed"


class TestRepositoryBackend:
    """Tests for RepositoryBackend."""

    def test_checkout_path(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path))
        assert backend.checkout_path("https://github.com/sindresorhus/pure") == str(tmp_path / "pure")
        assert backend.checkout_path("git@github.com:tmux-plugins/tpm.git") == str(tmp_path / "tpm")

    def test_checkout_path_explicit_target(self, tmp_path):
        url = "https://example.com/me/my-dots.git"
        backend = RepositoryBackend(str(tmp_path), targets={url: str(tmp_path / "dotfiles")})
        assert backend.checkout_path(url) == str(tmp_path / "dotfiles")

    def test_exists_requires_git_dir(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path))
        item = DesiredItem("repository", "https://github.com/sindresorhus/pure")

        (tmp_path / "pure").mkdir()
        assert backend.exists(item) is False
        (tmp_path / "pure" / ".git").mkdir()
        assert backend.exists(item) is True

    @patch("devsetup.backends.execute_step")
    def test_clone(self, mock_execute, tmp_path):
        mock_execute.return_value = make_result(0)
        parent = tmp_path / "zsh"
        backend = RepositoryBackend(str(parent))
        url = "https://github.com/sindresorhus/pure"

        backend.apply(Operation(CLONE, DesiredItem("repository", url)))

        step = mock_execute.call_args[0][0]
        assert step.command == ("git", "clone", url, str(parent / "pure"))
        assert parent.is_dir()

    @patch("devsetup.backends.execute_step")
    def test_pull_autostash(self, mock_execute, tmp_path):
        mock_execute.return_value = make_result(0)
        backend = RepositoryBackend(str(tmp_path))
        backend.apply(Operation(PULL, DesiredItem("repository", "https://github.com/sindresorhus/pure")))

        checkout = str(tmp_path / "pure")
        step = mock_execute.call_args[0][0]
        assert step.command == (
            "git",
            f"--git-dir={os.path.join(checkout, '.git')}",
            f"--work-tree={checkout}",
            "pull",
            "--autostash",
        )

    def test_delete(self, tmp_path):
        checkout = tmp_path / "pure"
        (checkout / ".git").mkdir(parents=True)
        backend = RepositoryBackend(str(tmp_path))
        backend.apply(Operation(DELETE, DesiredItem("repository", "https://github.com/sindresorhus/pure")))
        assert not checkout.exists()

    def test_refresh_requires_parent(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path / "missing"))
        with pytest.raises(PreconditionError, match="isn't made"):
            reconcile(repositories(["https://github.com/sindresorhus/pure"]), REFRESH, backend)

    def test_refresh_skips_uncloned(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path))
        report = reconcile(repositories(["https://github.com/sindresorhus/pure"]), REFRESH, backend)
        assert report.outcomes[0].status == SKIPPED
        assert report.outcomes[0].reason == "not present"

    def test_refresh_plans_pull(self, tmp_path):
        (tmp_path / "pure" / ".git").mkdir(parents=True)
        backend = RepositoryBackend(str(tmp_path))
        ops = plan_operations(repositories(["https://github.com/sindresorhus/pure"]), REFRESH, backend)
        assert [op.kind for op in ops] == [PULL]

    def test_absent_mode_has_no_precondition(self, tmp_path):
        backend = RepositoryBackend(str(tmp_path / "missing"))
        report = reconcile(repositories(["https://github.com/sindresorhus/pure"]), ABSENT, backend)
        assert report.outcomes[0].status == SKIPPED


@skip_on_windows
class TestIsStowed:
    """Tests for symlink farm detection."""

    @pytest.fixture
    def farm(self, tmp_path):
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        (root / "zsh").mkdir(parents=True)
        (root / "zsh" / ".zshrc").write_text("autoload -U promptinit\n")
        (root / "nvim" / ".config" / "nvim").mkdir(parents=True)
        (root / "nvim" / ".config" / "nvim" / "init.lua").write_text("vim.o.number = true\n")
        home.mkdir()
        return root, home

    def test_not_stowed(self, farm):
        root, home = farm
        assert is_stowed(str(root / "zsh"), str(home)) is False

    def test_relative_link(self, farm):
        root, home = farm
        os.symlink(os.path.relpath(root / "zsh" / ".zshrc", home), home / ".zshrc")
        assert is_stowed(str(root / "zsh"), str(home)) is True

    def test_link_elsewhere(self, farm, tmp_path):
        root, home = farm
        other = tmp_path / "other_zshrc"
        other.write_text("")
        os.symlink(other, home / ".zshrc")
        assert is_stowed(str(root / "zsh"), str(home)) is False

    def test_regular_file_in_target(self, farm):
        root, home = farm
        (home / ".zshrc").write_text("mine\n")
        assert is_stowed(str(root / "zsh"), str(home)) is False

    def test_folded_directory(self, farm):
        root, home = farm
        os.symlink(root / "nvim" / ".config", home / ".config")
        assert is_stowed(str(root / "nvim"), str(home)) is True

    def test_unfolded_directory(self, farm):
        root, home = farm
        (home / ".config").mkdir()
        (home / ".config" / "fish").mkdir()
        os.symlink(root / "nvim" / ".config" / "nvim", home / ".config" / "nvim")
        assert is_stowed(str(root / "nvim"), str(home)) is True

    def test_ignores_readme(self, farm):
        root, home = farm
        (root / "zsh" / "README.md").write_text("# zsh\n")
        os.symlink(root / "zsh" / ".zshrc", home / ".zshrc")
        assert is_stowed(str(root / "zsh"), str(home)) is True

    def test_missing_package(self, farm):
        root, home = farm
        assert is_stowed(str(root / "fish"), str(home)) is False


@skip_on_windows
class TestHasLinks:
    """Tests for partial link detection."""

    @pytest.fixture
    def farm(self, tmp_path):
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        (root / "zsh").mkdir(parents=True)
        (root / "zsh" / ".zshrc").write_text("autoload -U promptinit\n")
        (root / "zsh" / ".zshenv").write_text("export EDITOR=nvim\n")
        (root / "nvim" / ".config" / "nvim").mkdir(parents=True)
        (root / "nvim" / ".config" / "nvim" / "init.lua").write_text("vim.o.number = true\n")
        home.mkdir()
        return root, home

    def test_no_links(self, farm):
        root, home = farm
        assert has_links(str(root / "zsh"), str(home)) is False

    def test_partly_linked(self, farm):
        root, home = farm
        os.symlink(root / "zsh" / ".zshrc", home / ".zshrc")
        assert has_links(str(root / "zsh"), str(home)) is True
        assert is_stowed(str(root / "zsh"), str(home)) is False

    def test_link_elsewhere(self, farm, tmp_path):
        root, home = farm
        other = tmp_path / "other_zshrc"
        other.write_text("")
        os.symlink(other, home / ".zshrc")
        assert has_links(str(root / "zsh"), str(home)) is False

    def test_folded_directory(self, farm):
        root, home = farm
        os.symlink(root / "nvim" / ".config", home / ".config")
        assert has_links(str(root / "nvim"), str(home)) is True

    def test_unfolded_directory(self, farm):
        root, home = farm
        (home / ".config").mkdir()
        os.symlink(root / "nvim" / ".config" / "nvim", home / ".config" / "nvim")
        assert has_links(str(root / "nvim"), str(home)) is True

    def test_missing_package(self, farm):
        root, home = farm
        assert has_links(str(root / "fish"), str(home)) is False


class TestDiscoverPackages:
    """Tests for dotfile package discovery."""

    def test_lists_visible_subdirectories(self, tmp_path):
        for name in ("zsh", "nvim", ".git"):
            (tmp_path / name).mkdir()
        (tmp_path / "README.md").write_text("")
        assert discover_packages(str(tmp_path)) == ["nvim", "zsh"]

    def test_missing_root(self, tmp_path):
        assert discover_packages(str(tmp_path / "missing")) == []


class TestStowBackend:
    """Tests for StowBackend."""

    def test_present_plans_one_stow_per_package(self, tmp_path):
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        home.mkdir()
        for name in ("zsh", "nvim"):
            (root / name).mkdir(parents=True)
            (root / name / f".{name}rc").write_text("")

        backend = StowBackend(str(root), str(home))
        ops = plan_operations(dotfile_packages(discover_packages(str(root))), PRESENT, backend)

        assert sorted(op.item.identifier for op in ops) == ["nvim", "zsh"]
        assert all(op.kind == STOW for op in ops)

    @pytest.fixture
    def partly_stowed(self, tmp_path):
        """zsh with .zshrc linked and a newly pulled .zshenv not yet linked."""
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        home.mkdir()
        (root / "zsh").mkdir(parents=True)
        (root / "zsh" / ".zshrc").write_text("")
        (root / "zsh" / ".zshenv").write_text("")
        os.symlink(root / "zsh" / ".zshrc", home / ".zshrc")
        return StowBackend(str(root), str(home))

    @skip_on_windows
    @pytest.mark.parametrize("mode, kind", [
        (PRESENT, STOW),
        (ABSENT, UNSTOW),
        (REFRESH, RESTOW),
    ])
    def test_partly_stowed_package(self, partly_stowed, mode, kind):
        ops = plan_operations(dotfile_packages(["zsh"]), mode, partly_stowed)
        assert [(op.kind, op.item.identifier) for op in ops] == [(kind, "zsh")]

    def test_unlinked_package_is_skipped_by_unstow_and_restow(self, tmp_path):
        root = tmp_path / "dotfiles"
        home = tmp_path / "home"
        home.mkdir()
        (root / "zsh").mkdir(parents=True)
        (root / "zsh" / ".zshrc").write_text("")
        backend = StowBackend(str(root), str(home))

        assert plan_operations(dotfile_packages(["zsh"]), ABSENT, backend) == []
        assert plan_operations(dotfile_packages(["zsh"]), REFRESH, backend) == []

    @pytest.mark.parametrize("kind, flags", [
        (STOW, ()),
        (UNSTOW, ("--delete",)),
        (RESTOW, ("--restow",)),
    ])
    @patch("devsetup.backends.execute_step")
    def test_apply_commands(self, mock_execute, kind, flags, tmp_path):
        mock_execute.return_value = make_result(0)
        backend = StowBackend(str(tmp_path / "dotfiles"), str(tmp_path / "home"))
        backend.apply(Operation(kind, DesiredItem(DOTFILE_PACKAGE, "zsh")))

        step = mock_execute.call_args[0][0]
        assert step.command == (
            "stow", "-d", str(tmp_path / "dotfiles"), "-t", str(tmp_path / "home"),
        ) + flags + ("zsh",)

    def test_absent_requires_root(self, tmp_path):
        backend = StowBackend(str(tmp_path / "dotfiles"), str(tmp_path))
        with pytest.raises(PreconditionError, match="Dotfiles folder required"):
            reconcile(dotfile_packages(["zsh"]), ABSENT, backend)

    def test_refresh_requires_root(self, tmp_path):
        backend = StowBackend(str(tmp_path / "dotfiles"), str(tmp_path))
        with pytest.raises(PreconditionError):
            reconcile([], REFRESH, backend)

    def test_unsupported_operation(self, tmp_path):
        backend = StowBackend(str(tmp_path), str(tmp_path))
        with pytest.raises(OperationError):
            backend.apply(Operation(INSTALL, DesiredItem(DOTFILE_PACKAGE, "zsh")))
